"""Shared core data structures used across analysis and orchestration."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NamedTuple, Optional

import numpy as np

from WAKE.src.core.errors import ConfigurationError


@dataclass(frozen=True)
class BeamletOptions:
    """Options for beamlet segmentation.

    ignore_limits:     use the whole box instead of the configured axis limits.
    beam_prominence:   minimum peak prominence, as a fraction of the range of
                       the smoothed projection (0, 1].
    min_peak_distance: minimum peak separation in plasma wavelengths.
    smooth_span:       loess smoothing span in plasma wavelengths.
    radial_include:    fraction of radial charge inside the radial cutoff (0, 1].
    """

    ignore_limits: bool = False
    beam_prominence: float = 0.5
    min_peak_distance: float = 0.5
    smooth_span: float = 0.5
    radial_include: float = 0.9

    def validate(self) -> None:
        if not 0.0 < self.beam_prominence <= 1.0:
            raise ConfigurationError(f"beam_prominence must be in (0, 1], got {self.beam_prominence}")
        if not self.min_peak_distance > 0.0:
            raise ConfigurationError(f"min_peak_distance must be positive, got {self.min_peak_distance}")
        if not self.smooth_span > 0.0:
            raise ConfigurationError(f"smooth_span must be positive, got {self.smooth_span}")
        if not 0.0 < self.radial_include <= 1.0:
            raise ConfigurationError(f"radial_include must be in (0, 1], got {self.radial_include}")


class PeakSegment(NamedTuple):
    """A retained peak of the smoothed projection and its closed index span."""

    peak_index: int
    height: float
    prominence: float
    start: int
    stop: int


class ProfileMeasurement(NamedTuple):
    """Peak, FWHM and weighted moments of a 1D profile."""

    peak_index: int
    peak: float
    fwhm_index: tuple[int, int]
    fwhm: tuple[float, float]
    mean: float
    std: float


class Beamlet(NamedTuple):
    start_index: int
    stop_index: int
    x1_start: float
    x1_stop: float
    x1_projection: np.ndarray
    x1: ProfileMeasurement
    x2_projection: np.ndarray
    x2: ProfileMeasurement
    radial_cutoff_index: int
    radial_cutoff: float
    charge: float
    particles: float


class BeamletAnalysis(NamedTuple):
    raw_data: np.ndarray
    x1_axis: np.ndarray
    x2_axis: np.ndarray
    projection: np.ndarray
    smooth: np.ndarray
    window: int
    peaks: int
    prominence: np.ndarray
    spans: list[tuple[int, int]]
    beamlets: list[Beamlet]
    total_charge: float
    z_pos: float


class DensityResult(NamedTuple):
    """Gridded data laid out (x2, x1) for display."""

    data: np.ndarray
    x1_axis: np.ndarray
    x2_axis: np.ndarray
    z_pos: float


class LineoutResult(NamedTuple):
    data: np.ndarray
    x1_axis: np.ndarray
    x1_range: tuple[float, float]
    x2_range: tuple[float, float]
    z_pos: float


class FieldIntegralResult(NamedTuple):
    """Averaged field per dump and its running integral over propagation distance.

    ``energy`` and ``integral`` are laid out (n_v, n_dumps). ``v_axis`` runs
    along the field direction (x1 for component 1, x2 for component 2).
    """

    energy: np.ndarray
    integral: np.ndarray
    gain_fac: float
    v_axis: np.ndarray
    t_axis: np.ndarray
    v_unit: str
    t_unit: str
    dumps: tuple[int, int]
    v_range: tuple[float, float]


class FourierResult(NamedTuple):
    projection: np.ndarray
    spectrum: np.ndarray
    k_axis: np.ndarray
    z_pos: float


class WaveletResult(NamedTuple):
    """Morlet CWT of the normalized x1 projection. Period, scale and COI in c/ω_p."""

    projection: np.ndarray
    coefficients: np.ndarray
    amplitude: np.ndarray
    phase: np.ndarray
    power: np.ndarray
    period: np.ndarray
    scale: np.ndarray
    coi: np.ndarray
    x1_axis: np.ndarray
    z_pos: float


class BeamChargeResult(NamedTuple):
    q_total: float
    particles: float
    raw_fraction: float
    raw_count: int
    sample_count: int
    charge_sample_error: float
    particle_sample_error: float
    ellipse: Optional[tuple[float, float, float, float]]


class ParticleSample(NamedTuple):
    x1: np.ndarray
    x2: np.ndarray
    x3: np.ndarray
    p1: np.ndarray
    p2: np.ndarray
    p3: np.ndarray
    energy: np.ndarray
    charge: np.ndarray
    count: np.ndarray
    norm: np.ndarray


class EnergySummary(NamedTuple):
    """Weighted energy statistics in MeV."""

    mean: float
    std: float
    median: float
    first_quartile: float
    third_quartile: float
    spread: float


class EmittanceResult(NamedTuple):
    """Transverse emittance in the x2 plane.

    ``e_rms`` and ``e_norm`` are means over the azimuth samples and the errors
    are 95% intervals on those means. ``x``, ``x_prime`` and ``charge`` hold
    the accumulated phase space, mirrored through the axis in cylindrical runs.
    """

    covariance: np.ndarray
    e_rms: float
    e_norm: float
    gamma: float
    x_unit: str
    x_prime_unit: str
    e_rms_error: float = 0.0
    e_norm_error: float = 0.0
    samples: int = 1
    x: Optional[np.ndarray] = None
    x_prime: Optional[np.ndarray] = None
    charge: Optional[np.ndarray] = None
    weight: Optional[np.ndarray] = None
    histogram: Optional[np.ndarray] = None
    x_axis: Optional[np.ndarray] = None
    x_prime_axis: Optional[np.ndarray] = None


class MomentumEvolution(NamedTuple):
    """Weighted momentum statistics per dump, in MeV/c."""

    axis: str
    average: np.ndarray
    median: np.ndarray
    percentiles: dict
    t_axis: np.ndarray
    dumps: tuple[int, int]


class EnergySpreadEvolution(NamedTuple):
    mean: np.ndarray
    sigma: np.ndarray
    ratio: np.ndarray
    t_axis: np.ndarray
    dumps: tuple[int, int]


class BeamSlip(NamedTuple):
    """Per-dump slippage of a beam behind the moving box.

    Every dict is keyed by statistic (average, median, p10, p90, q1, q3).
    ``expected`` is the position predicted from the first dump and the
    accumulated slip. The ``*_added`` entries repeat average and median with
    ``added`` units of m c on top of the longitudinal momentum.
    """

    slip: dict
    position: dict
    expected: dict
    slip_added: dict
    expected_added: dict
    added: float
    delta_z: float
    t_axis: np.ndarray
    unit: str
    dumps: tuple[int, int]


EMPTY_ENERGY = EnergySummary(0.0, 0.0, 0.0, 0.0, 0.0, 0.0)
