import unittest
from pathlib import Path
import tempfile
import sys
import numpy as np

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from WAKE.config import Config
from WAKE.src.core.analysis import half_max_width, measure_beamlet, measure_profile, radial_cutoff, segment_charge
from WAKE.src.core.context import (
    SimulationContext,
    box_axis,
    length_scale,
    linear_axis,
    nearest_index,
    resolve_limits,
    resolve_scaling,
)
from WAKE.src.core.errors import InvalidRange
from WAKE.src.core.peaks import find_segments, local_maxima, select_by_distance
from WAKE.src.core.smoothing import loess_smooth, span_to_window
from WAKE.src.core.spectra import wavelet_scales, wavelet_transform
from WAKE.src.core.statistics import weighted_cov, weighted_mean, weighted_percentile, weighted_std
from WAKE.src.core.types import BeamletOptions, PeakSegment


def two_bumps(n=200, centres=(50, 150), width=5.0):
    x = np.arange(n, dtype=np.float64)
    return sum(np.exp(-((x - c) ** 2) / (2 * width ** 2)) for c in centres)


class TestConfig(unittest.TestCase):
    def test_save_load_roundtrip(self):
        cfg = Config()
        cfg.UNITS = "SI"
        cfg.BEAM_PROMINENCE = 0.3
        cfg.SAMPLE_COUNT = 50
        cfg.X1_LIM = [1.0, 5.0]

        with tempfile.TemporaryDirectory() as td:
            path = Path(td) / "config.json"
            cfg.save(path)
            loaded = Config.load(path)

        self.assertEqual(loaded.UNITS, "SI")
        self.assertAlmostEqual(loaded.BEAM_PROMINENCE, 0.3, places=6)
        self.assertEqual(loaded.SAMPLE_COUNT, 50)
        self.assertEqual(loaded.X1_LIM, [1.0, 5.0])
        self.assertIsNone(loaded.X2_LIM)

    def test_missing_file_gives_defaults(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = Config.load(Path(td) / "nothing.json")
        self.assertEqual(cfg.UNITS, "N")
        self.assertEqual(cfg.beamlet_options(), BeamletOptions())

    def test_normalize_swaps_inverted_limits(self):
        cfg = Config()
        cfg.X2_LIM = [3.0, -1.0]
        cfg.normalize()
        self.assertEqual(cfg.X2_LIM, [-1.0, 3.0])


class TestAxisScaling(unittest.TestCase):
    def setUp(self):
        self.ctx = SimulationContext(
            box_min=(0.0, -2.0, 0.0),
            box_max=(10.0, 2.0, 1.0),
            box_cells=(100, 40, 1),
            length_factor=1.0e-5,
        )

    def test_axis_length_and_monotonic(self):
        scaling = resolve_scaling(self.ctx, "N")
        for axis, cells in ((0, 100), (1, 40)):
            arr = box_axis(self.ctx, scaling, axis)
            self.assertEqual(arr.size, cells)
            self.assertTrue(np.all(np.diff(arr) > 0))

    def test_si_auto_prefix(self):
        scaling = resolve_scaling(self.ctx, "SI")
        self.assertEqual(scaling.units, "SI")
        self.assertEqual(scaling.axis_units[0], "um")
        self.assertAlmostEqual(scaling.axis_fac[0], 10.0)
        self.assertAlmostEqual(box_axis(self.ctx, scaling, 0)[-1], 100.0)

    def test_explicit_scale(self):
        fac, unit = length_scale("mm")
        self.assertEqual((fac, unit), (1.0e3, "mm"))

    def test_invalid_ranges(self):
        with self.assertRaises(InvalidRange):
            linear_axis(1.0, 0.0, 10)
        with self.assertRaises(InvalidRange):
            linear_axis(0.0, 1.0, 0)
        with self.assertRaises(InvalidRange):
            linear_axis(1.0, 1.0, 5)
        self.assertEqual(linear_axis(1.0, 1.0, 1).size, 1)

    def test_limits_out_of_range_are_clamped(self):
        scaling = resolve_scaling(self.ctx, "N")
        with self.assertLogs("WAKE.src.core.context", level="WARNING"):
            limits = resolve_limits(self.ctx, scaling, x1_lim=[-5.0, 4.0])
        self.assertEqual(limits.x1, (0.0, 4.0))

    def test_malformed_limits_raise(self):
        scaling = resolve_scaling(self.ctx, "N")
        with self.assertRaises(InvalidRange):
            resolve_limits(self.ctx, scaling, x1_lim=[4.0, 1.0])
        with self.assertRaises(InvalidRange):
            resolve_limits(self.ctx, scaling, x2_lim=[0.0, 1.0, 2.0])

    def test_cylindrical_default_x2_is_symmetric(self):
        ctx = SimulationContext(coordinates="cylindrical", box_min=(0, 0, 0), box_max=(1, 3, 1), box_cells=(2, 2, 1))
        limits = resolve_limits(ctx, resolve_scaling(ctx, "N"))
        self.assertEqual(limits.x2, (-3.0, 3.0))

    def test_nearest_index(self):
        self.assertEqual(nearest_index(np.array([0.0, 0.5, 1.0]), 0.7), 1)


class TestWeightedStatistics(unittest.TestCase):
    def test_uniform_weights_match_numpy(self):
        values = np.array([3.0, 1.0, 4.0, 1.0, 5.0, 9.0, 2.0])
        weights = np.ones_like(values)
        self.assertAlmostEqual(weighted_mean(values, weights), np.mean(values))
        self.assertAlmostEqual(weighted_std(values, weights), np.std(values))
        self.assertAlmostEqual(weighted_percentile(values, 50, weights), np.median(values))
        self.assertAlmostEqual(weighted_percentile(values[:4], 50, weights[:4]), np.median(values[:4]))

    def test_signed_weights(self):
        values = np.array([1.0, 3.0])
        weights = np.array([-1.0, -1.0])
        self.assertAlmostEqual(weighted_mean(values, weights), 2.0)
        self.assertAlmostEqual(weighted_std(values, weights), 1.0)
        self.assertAlmostEqual(weighted_percentile(values, 50, weights), 2.0)

    def test_degenerate_inputs_return_zero(self):
        values = np.array([1.0, 2.0, 3.0])
        zeros = np.zeros(3)
        self.assertEqual(weighted_mean(values, zeros), 0.0)
        self.assertEqual(weighted_std(values, zeros), 0.0)
        self.assertEqual(weighted_percentile(values, 50, zeros), 0.0)
        self.assertEqual(weighted_mean([], []), 0.0)
        np.testing.assert_array_equal(weighted_cov(values, values, zeros), np.zeros((2, 2)))

    def test_percentile_range_checked(self):
        with self.assertRaises(ValueError):
            weighted_percentile([1.0], 101, [1.0])

    def test_covariance(self):
        x = np.array([-1.0, -1.0, 1.0, 1.0])
        y = np.array([-2.0, 2.0, -2.0, 2.0])
        cov = weighted_cov(x, y, np.ones(4))
        np.testing.assert_allclose(cov, [[1.0, 0.0], [0.0, 4.0]])


class TestSignalSmoother(unittest.TestCase):
    def test_span_to_window(self):
        self.assertEqual(span_to_window(np.pi, 0.1, 400), 31)
        self.assertEqual(span_to_window(0.05, 0.1, 400), 1)
        self.assertEqual(span_to_window(100.0, 0.1, 400), 399)
        self.assertEqual(span_to_window(1.0, 0.0, 400), 1)

    def test_quadratic_is_reproduced(self):
        x = np.arange(50, dtype=np.float64)
        y = 0.5 * x ** 2 - 3.0 * x + 2.0
        np.testing.assert_allclose(loess_smooth(y, 7), y, atol=1e-6)

    def test_reduces_noise(self):
        rng = np.random.default_rng(1)
        noise = rng.normal(0.0, 1.0, 500)
        smooth = loess_smooth(noise, 21)
        self.assertEqual(smooth.shape, noise.shape)
        self.assertLess(np.std(smooth), 0.6 * np.std(noise))

    def test_deterministic_and_window_one(self):
        y = two_bumps()
        np.testing.assert_array_equal(loess_smooth(y, 9), loess_smooth(y, 9))
        np.testing.assert_array_equal(loess_smooth(y, 1), y)


class TestPeakSegmenter(unittest.TestCase):
    def test_local_maxima_plateaus(self):
        y = np.array([0.0, 1.0, 0.0, 2.0, 2.0, 0.0, 3.0, 3.0])
        np.testing.assert_array_equal(local_maxima(y), [1, 3])

    def test_select_by_distance(self):
        kept = select_by_distance(np.array([10, 14, 30]), np.array([1.0, 2.0, 1.0]), 5)
        np.testing.assert_array_equal(kept, [14, 30])

    def test_select_by_distance_tie_prefers_earlier(self):
        kept = select_by_distance(np.array([10, 13]), np.array([1.0, 1.0]), 5)
        np.testing.assert_array_equal(kept, [10])

    def test_two_bumps_partition(self):
        y = two_bumps()
        segments = find_segments(y, 20, 0.5)
        self.assertEqual(len(segments), 2)
        self.assertEqual([s.peak_index for s in segments], [50, 150])
        self.assertEqual(segments[0].start, 0)
        self.assertEqual(segments[0].stop, 100)
        self.assertEqual(segments[1].start, 101)
        self.assertEqual(segments[-1].stop, y.size - 1)
        for s in segments:
            self.assertGreater(s.prominence, 0.9)
            self.assertLessEqual(s.start, s.peak_index)
            self.assertLessEqual(s.peak_index, s.stop)

    def test_boundaries_cover_noisy_signal(self):
        rng = np.random.default_rng(7)
        y = loess_smooth(two_bumps(400, (60, 170, 300), 8.0) + rng.normal(0, 0.05, 400), 9)
        segments = find_segments(y, 10, 0.2)
        self.assertGreater(len(segments), 0)
        self.assertEqual(segments[0].start, 0)
        self.assertEqual(segments[-1].stop, y.size - 1)
        for left, right in zip(segments, segments[1:]):
            self.assertLessEqual(left.stop, right.start)
            self.assertLess(left.peak_index, right.peak_index)

    def test_low_prominence_flat_top_gives_no_segments(self):
        x = np.arange(100)
        y = 1.0 + 0.8 * ((x >= 40) & (x < 60))
        self.assertEqual(find_segments(y, 5, 0.5), [])

    def test_flat_and_empty_signals(self):
        self.assertEqual(find_segments(np.ones(50), 5, 0.5), [])
        self.assertEqual(find_segments(np.zeros(0), 5, 0.5), [])


class TestBeamletMeasurer(unittest.TestCase):
    def test_half_max_width(self):
        self.assertEqual(half_max_width([0, 1, 2, 4, 2, 1, 0]), (2, 4))

    def test_half_max_width_falls_back_to_boundaries(self):
        self.assertEqual(half_max_width([1.0, 2.0, 3.0, 4.0]), (1, 3))
        self.assertEqual(half_max_width([3.0, 3.5, 4.0]), (0, 2))
        self.assertEqual(half_max_width([4.0, 3.5, 3.0]), (0, 2))

    def test_measure_profile(self):
        axis = np.linspace(-5.0, 5.0, 101)
        profile = np.exp(-(axis ** 2) / 2.0)
        meas = measure_profile(axis, profile)
        self.assertAlmostEqual(meas.peak, 0.0)
        self.assertLessEqual(meas.fwhm_index[0], meas.peak_index)
        self.assertLessEqual(meas.peak_index, meas.fwhm_index[1])
        self.assertAlmostEqual(meas.fwhm[1] - meas.fwhm[0], 2.355, delta=0.15)
        self.assertAlmostEqual(meas.mean, 0.0, places=6)
        self.assertAlmostEqual(meas.std, 1.0, delta=0.01)

    def test_radial_cutoff(self):
        self.assertEqual(radial_cutoff([1, 1, 1, 1], 0.5), 1)
        self.assertEqual(radial_cutoff([1, 1, 1, 1], 1.0), 3)
        self.assertEqual(radial_cutoff([0.1] * 10, 1.0), 9)
        self.assertEqual(radial_cutoff([0.0, 0.0], 0.9), 0)

    def test_segment_charge_is_closed_interval(self):
        x1 = np.array([1.0, 2.0, 3.0, 3.0001, 0.9999])
        q = np.ones(5)
        self.assertEqual(segment_charge(x1, q, 1.0, 3.0), 3.0)

    def test_measure_beamlet_boundaries_and_mirroring(self):
        x1_axis = np.arange(5, dtype=np.float64)
        x2_axis = np.array([0.0, 1.0, 2.0])
        grid = np.array([[0, 0, 0], [1, 1, 0], [2, 2, 1], [1, 1, 0], [0, 0, 0]], dtype=np.float64)
        projection = grid.sum(axis=1)
        seg = PeakSegment(peak_index=2, height=5.0, prominence=5.0, start=1, stop=3)
        particles_x1 = np.array([1.0, 3.0, 3.5, 0.5])
        charge = np.array([-1.0, -1.0, -1.0, -1.0])

        b = measure_beamlet(seg, projection, grid, x1_axis, x2_axis, True,
                            particles_x1, charge, 0.9, 2.0, 3.0)

        self.assertEqual((b.x1_start, b.x1_stop), (1.0, 3.0))
        self.assertEqual(b.x1.peak, 2.0)
        self.assertAlmostEqual(b.charge, -4.0)
        self.assertAlmostEqual(b.particles, -6.0)
        np.testing.assert_array_equal(b.x2_projection, [1, 4, 4, 4, 4, 1])
        self.assertEqual(b.radial_cutoff_index, 2)
        self.assertAlmostEqual(b.x2.mean, 0.0)

    def test_zero_charge_segment(self):
        seg = PeakSegment(1, 1.0, 1.0, 0, 2)
        grid = np.array([[0.0], [1.0], [0.0]])
        b = measure_beamlet(seg, grid[:, 0], grid, np.arange(3.0), np.array([0.0]), False,
                            np.zeros(0), np.zeros(0), 0.9, 1.0, 1.0)
        self.assertEqual(b.charge, 0.0)
        self.assertEqual(b.particles, 0.0)


class TestWaveletTransform(unittest.TestCase):
    def test_scales(self):
        scales = wavelet_scales(5)
        self.assertEqual(scales.size, 251)
        self.assertAlmostEqual(scales[0], 2.0)
        self.assertAlmostEqual(scales[-1], 64.0)

    def test_peak_power_at_signal_period(self):
        spacing = 0.1
        x = np.arange(1024) * spacing
        result = wavelet_transform(np.sin(2.0 * np.pi * x / 2.0), spacing, octaves=5)

        self.assertEqual(result.coefficients.shape, (251, 1024))
        self.assertEqual(result.coi.size, 1024)
        self.assertAlmostEqual(result.scale[0], 0.2)
        self.assertTrue(np.all(np.diff(result.period) > 0))

        power = np.mean(np.abs(result.coefficients[:, 256:768]) ** 2, axis=1)
        self.assertLess(abs(result.period[np.argmax(power)] - 2.0), 0.2)

    def test_cone_of_influence_is_symmetric(self):
        result = wavelet_transform(np.zeros(101), 0.5, octaves=3)
        np.testing.assert_allclose(result.coi, result.coi[::-1])
        self.assertEqual(int(np.argmax(result.coi)), 50)


if __name__ == "__main__":
    unittest.main()
