"""Species charge analysis: density maps, spectra, beam charge and beamlets."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import numpy as np
from scipy import fft

from WAKE.config import Config
from WAKE.src.core.analysis import measure_beamlet
from WAKE.src.core.context import box_axis, mirror_axis, nearest_index
from WAKE.src.core.errors import ConfigurationError
from WAKE.src.core.frame import AnalysisFrame
from WAKE.src.core.peaks import find_segments
from WAKE.src.core.smoothing import loess_smooth, span_to_window
from WAKE.src.core.spectra import wavelet_transform
from WAKE.src.core.types import (
    BeamChargeResult,
    BeamletAnalysis,
    BeamletOptions,
    DensityResult,
    FourierResult,
    ParticleSample,
    WaveletResult,
)
from WAKE.src.drivers.data import SimulationData

logger = logging.getLogger(__name__)


class ChargeAnalyzer:
    def __init__(self, data: SimulationData, config: Config):
        self.data = data
        self.config = config
        self.context = data.context
        self.frame = AnalysisFrame(self.context, config)
        self.scaling = self.frame.scaling
        self.limits = self.frame.limits

    def density(self, dump: int, species: str) -> DensityResult:
        """Charge density cropped to the axis limits, normalized to the plasma density."""
        grid = self.data.read_grid(dump, "DENSITY", "charge", species)
        x1_axis = box_axis(self.context, self.scaling, 0)
        x2_axis = box_axis(self.context, self.scaling, 1)

        if self.context.cylindrical:
            grid = np.concatenate((grid[:, ::-1], grid), axis=1)
            x2_axis = mirror_axis(x2_axis)
        data = np.transpose(grid)

        x2_lo, x2_hi = self.limits.scaled(self.scaling, 1)
        i1 = self.frame.x1_slice(x1_axis)
        i2 = slice(nearest_index(x2_axis, x2_lo), nearest_index(x2_axis, x2_hi) + 1)

        return DensityResult(
            data[i2, i1] / self.context.max_plasma_factor,
            x1_axis[i1],
            x2_axis[i2],
            self.context.z_position(dump),
        )

    def _projection(self, dump: int, species: str, cells: Optional[Union[int, Sequence[int]]]) -> np.ndarray:
        """Absolute x1 projection over all x2 cells, one cell or an inclusive cell range."""
        grid = self.data.read_grid(dump, "DENSITY", "charge", species)
        if cells is None:
            return np.abs(np.sum(grid, axis=1))
        if np.isscalar(cells):
            return np.abs(grid[:, int(cells)])
        first, last = int(cells[0]), int(cells[-1])
        return np.abs(np.sum(grid[:, first:last + 1], axis=1))

    def fourier(
        self, dump: int, species: str, cells: Optional[Union[int, Sequence[int]]] = None
    ) -> FourierResult:
        """Single-sided FFT amplitude of the x1 projection; k axis in units of k_p.

        ``cells`` restricts the projection to one x2 cell or an inclusive
        (first, last) range of cells.
        """
        proj = self._projection(dump, species, cells)

        n = proj.size
        n_fft = int(2 ** np.ceil(np.log2(max(n, 1))))
        spectrum = fft.fft(proj, n_fft) / n
        box_size = self.context.box_max[0] - self.context.box_min[0]
        k_axis = (
            2 * np.pi * n / box_size / 2
            * np.linspace(0.0, 1.0, n_fft // 2 + 1)
            / np.sqrt(self.context.max_plasma_factor)
        )
        return FourierResult(proj, 2 * np.abs(spectrum[:n_fft // 2 + 1]), k_axis, self.context.z_position(dump))

    def wavelet(
        self,
        dump: int,
        species: str,
        cells: Optional[Union[int, Sequence[int]]] = None,
        octaves: float = 7,
    ) -> WaveletResult:
        """Morlet wavelet spectrum of the x1 projection normalized to its maximum.

        The sample spacing is the x1 cell size in units of the plasma skin
        depth at the maximum plasma density.
        """
        proj = self._projection(dump, species, cells)
        peak = float(np.max(proj)) if proj.size else 0.0
        if peak > 0:
            proj = proj / peak

        box_size = self.context.box_max[0] - self.context.box_min[0]
        dz = box_size / self.context.box_cells[0] / np.sqrt(self.context.max_plasma_factor)
        cwt = wavelet_transform(proj, dz, octaves)
        logger.debug("Wavelet %s dump %d: %d scales, dz %.4g", species, dump, cwt.scale.size, dz)

        return WaveletResult(
            proj,
            cwt.coefficients,
            np.abs(cwt.coefficients),
            np.angle(cwt.coefficients),
            np.abs(cwt.coefficients) ** 2,
            cwt.period,
            cwt.scale,
            cwt.coi,
            box_axis(self.context, self.scaling, 0),
            self.context.z_position(dump),
        )

    def beam_charge(
        self, dump: int, species: str, ellipse: Optional[Sequence[float]] = None
    ) -> BeamChargeResult:
        """
        Total beam charge inside the axis limits.
        ``ellipse`` = (z, r, z_radius, r_radius) in display units further
        restricts the particles to an ellipse in the x1-x2 plane.
        """
        beam = self.context.beam(species)
        raw = self.data.read_raw(dump, species)
        raw_count = int(raw.shape[0])

        x1 = self.frame.box_frame_x1(raw, dump)
        x2 = raw[:, 1]
        mask = self.frame.limit_mask(x1, x2)

        ellipse_norm = None
        if ellipse is not None:
            if len(ellipse) != 4:
                raise ConfigurationError("Ellipse needs four values: z, r, z_radius, r_radius")
            f1, f2 = self.scaling.axis_fac[0], self.scaling.axis_fac[1]
            z_pos, r_pos = ellipse[0] / f1, ellipse[1] / f2
            z_rad, r_rad = ellipse[2] / f1, ellipse[3] / f2
            mask &= ((x1 - z_pos) ** 2 / z_rad ** 2 + (x2 - r_pos) ** 2 / r_rad ** 2) <= 1
            ellipse_norm = (z_pos, r_pos, z_rad, r_rad)

        q = np.where(mask, raw[:, 7], 0.0)
        q_sum = float(np.sum(q)) / beam.raw_fraction
        particles = q_sum * self.scaling.particle_fac
        q_total = q_sum * self.scaling.charge_fac

        sample_count = int(np.count_nonzero(q))
        exact = q_total / np.sqrt(raw_count / beam.raw_fraction) if raw_count else 0.0
        if sample_count:
            charge_err = abs(q_total / (beam.raw_fraction * np.sqrt(sample_count)) - exact)
            particle_err = abs(particles / (beam.raw_fraction * np.sqrt(sample_count)) - exact)
        else:
            charge_err = particle_err = 0.0

        return BeamChargeResult(
            q_total,
            particles * beam.sign,
            beam.raw_fraction,
            raw_count,
            sample_count,
            float(charge_err),
            float(particle_err),
            ellipse_norm,
        )

    def beamlets(self, dump: int, species: str, options: Optional[BeamletOptions] = None) -> BeamletAnalysis:
        """Split a beam into longitudinal beamlets and measure each one."""
        options = options or self.config.beamlet_options()
        options.validate()
        if not self.context.is_beam(species):
            raise ConfigurationError(f"Species {species} is not a beam.")
        beam = self.context.beam(species)
        cylindrical = self.context.cylindrical

        grid = np.abs(np.asarray(self.data.read_grid(dump, "DENSITY", "charge", species), dtype=np.float64))
        x1_axis = box_axis(self.context, self.scaling, 0)
        x2_axis = box_axis(self.context, self.scaling, 1)
        if not options.ignore_limits:
            rows = self.frame.x1_slice(x1_axis)
            cols = self.frame.x2_slice(x2_axis)
            grid = grid[rows, cols]
            x1_axis = x1_axis[rows]
            x2_axis = x2_axis[cols]

        projection = np.abs(np.sum(grid, axis=1))
        n = projection.size
        dx = float(x1_axis[1] - x1_axis[0]) if n > 1 else 1.0
        lambda_p = self.context.plasma_wavelength * self.scaling.axis_fac[0]

        window = span_to_window(options.smooth_span * lambda_p, dx, n)
        smooth = loess_smooth(projection, window)
        min_distance = options.min_peak_distance * lambda_p / dx
        segments = find_segments(smooth, min_distance, options.beam_prominence)
        logger.debug("Beamlets: window %d samples, min distance %.1f samples, %d peaks",
                     window, min_distance, len(segments))

        raw = self.data.read_raw(dump, species)
        x1 = self.frame.box_frame_x1(raw, dump)
        if options.ignore_limits:
            charge = raw[:, 7]
        else:
            charge = np.where(self.frame.limit_mask(x1, raw[:, 1]), raw[:, 7], 0.0)
        x1 = x1 * self.scaling.axis_fac[0]

        charge_scale = self.scaling.charge_fac / beam.raw_fraction
        particle_scale = beam.sign * self.scaling.particle_fac / beam.raw_fraction

        beamlets = [
            measure_beamlet(
                seg, projection, grid, x1_axis, x2_axis, cylindrical, x1, charge,
                options.radial_include, charge_scale, particle_scale,
            )
            for seg in segments
        ]

        return BeamletAnalysis(
            raw_data=grid,
            x1_axis=x1_axis,
            x2_axis=mirror_axis(x2_axis) if cylindrical else x2_axis,
            projection=projection,
            smooth=smooth,
            window=window,
            peaks=len(segments),
            prominence=np.array([seg.prominence for seg in segments]),
            spans=[(seg.start, seg.stop) for seg in segments],
            beamlets=beamlets,
            total_charge=float(np.sum(charge)) * charge_scale,
            z_pos=self.context.z_position(dump),
        )

    def particle_sample(
        self,
        dump: int,
        species: str,
        sample: Optional[int] = None,
        filter: Optional[str] = None,
        seed: Optional[int] = None,
    ) -> ParticleSample:
        """A subset of RAW particles inside the axis limits, in display units.

        filter "random" draws uniformly, "charge" keeps the particles carrying
        the most charge. Cylindrical weights are divided by r and mirrored.
        """
        sample = int(sample if sample is not None else self.config.SAMPLE_COUNT)
        mode = (filter or self.config.SAMPLE_FILTER).lower()
        if mode not in ("random", "charge"):
            raise ConfigurationError(f"Unknown sample filter '{mode}'")
        sign = 1.0 if self.context.rqm(species) >= 0 else -1.0

        raw = np.array(self.data.read_raw(dump, species), dtype=np.float64)
        raw[:, 0] = self.frame.box_frame_x1(raw, dump)
        raw = raw[self.frame.limit_mask(raw[:, 0], raw[:, 1]) & (raw[:, 7] != 0)]

        if self.context.cylindrical:
            r = raw[:, 1]
            raw[:, 7] = np.divide(raw[:, 7], r, out=np.zeros_like(r), where=r != 0)
            mirrored = raw.copy()
            mirrored[:, 1] = -mirrored[:, 1]
            raw = np.vstack((raw, mirrored))

        count = raw[:, 7] * sign
        take = min(sample, raw.shape[0])
        if mode == "random":
            order = np.random.default_rng(seed).permutation(raw.shape[0])[:take]
        else:
            order = np.argsort(count, kind="stable")[raw.shape[0] - take:]
        raw = raw[order]
        count = count[order]

        peak = float(np.max(count)) if count.size else 0.0
        norm = count / peak if peak != 0 else np.zeros_like(count)
        fac = self.scaling.axis_fac
        return ParticleSample(
            raw[:, 0] * fac[0],
            raw[:, 1] * fac[1],
            raw[:, 2] * fac[2],
            raw[:, 3],
            raw[:, 4],
            raw[:, 5],
            raw[:, 6],
            raw[:, 7] * self.scaling.charge_fac,
            count * self.scaling.particle_fac,
            norm,
        )
