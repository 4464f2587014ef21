"""Per-segment beamlet measurements."""

from __future__ import annotations

import numpy as np

from WAKE.src.core.context import mirror_axis
from WAKE.src.core.statistics import weighted_mean, weighted_std
from WAKE.src.core.types import Beamlet, PeakSegment, ProfileMeasurement


def half_max_width(profile) -> tuple[int, int]:
    """
    Indices bounding the half maximum of a profile.
    Scans outward from the peak for the first sample at or below half maximum;
    a side without a crossing ends at the array boundary.
    """
    profile = np.asarray(profile, dtype=np.float64)
    if profile.size == 0:
        return 0, 0
    i_max = int(np.argmax(profile))
    half = profile[i_max] / 2.0

    upper = profile.size - 1
    below = np.nonzero(profile[i_max:] <= half)[0]
    if below.size:
        upper = i_max + int(below[0])

    lower = 0
    below = np.nonzero(profile[:i_max + 1][::-1] <= half)[0]
    if below.size:
        lower = i_max - int(below[0])

    return lower, upper


def measure_profile(axis, profile) -> ProfileMeasurement:
    axis = np.asarray(axis, dtype=np.float64)
    profile = np.asarray(profile, dtype=np.float64)
    if profile.size == 0:
        return ProfileMeasurement(0, 0.0, (0, 0), (0.0, 0.0), 0.0, 0.0)
    i_max = int(np.argmax(profile))
    lower, upper = half_max_width(profile)
    return ProfileMeasurement(
        i_max,
        float(axis[i_max]),
        (lower, upper),
        (float(axis[lower]), float(axis[upper])),
        weighted_mean(axis, profile),
        weighted_std(axis, profile),
    )


def radial_cutoff(profile, fraction: float) -> int:
    """Smallest index where the cumulative profile reaches fraction of its total."""
    profile = np.asarray(profile, dtype=np.float64)
    if profile.size == 0:
        return 0
    cumulative = np.cumsum(profile)
    reached = np.nonzero(cumulative >= fraction * cumulative[-1])[0]
    if reached.size == 0:
        return profile.size - 1
    return int(reached[0])


def segment_charge(x1, charge, lower: float, upper: float) -> float:
    """Sum of charge for particles with lower <= x1 <= upper."""
    x1 = np.asarray(x1)
    charge = np.asarray(charge)
    inside = (x1 >= lower) & (x1 <= upper)
    return float(np.sum(charge[inside]))


def measure_beamlet(
    segment: PeakSegment,
    projection: np.ndarray,
    grid: np.ndarray,
    x1_axis: np.ndarray,
    x2_axis: np.ndarray,
    cylindrical: bool,
    x1: np.ndarray,
    charge: np.ndarray,
    radial_include: float,
    charge_scale: float,
    particle_scale: float,
) -> Beamlet:
    """Measure one segment.

    ``x2_axis`` is one-sided in cylindrical coordinates. ``charge`` holds the
    per-particle charge already masked to the axis limits. Its sum over the
    segment is multiplied by ``charge_scale`` (charge factor over raw fraction)
    for the beamlet charge and by ``particle_scale`` (sign-corrected particle
    factor over raw fraction) for the particle count.
    """
    start, stop = segment.start, segment.stop

    x1_proj = np.asarray(projection[start:stop + 1], dtype=np.float64)
    x1_seg_axis = x1_axis[start:stop + 1]
    x1_meas = measure_profile(x1_seg_axis, x1_proj)

    x2_proj = np.sum(grid[start:stop + 1, :], axis=0)
    i_cut = radial_cutoff(x2_proj, radial_include)
    cutoff = float(x2_axis[i_cut])
    if cylindrical:
        x2_proj = np.concatenate((x2_proj[::-1], x2_proj))
        x2_full = mirror_axis(x2_axis)
    else:
        x2_full = x2_axis
    x2_meas = measure_profile(x2_full, x2_proj)

    q_raw = segment_charge(x1, charge, x1_axis[start], x1_axis[stop])

    return Beamlet(
        start,
        stop,
        float(x1_seg_axis[0]),
        float(x1_seg_axis[-1]),
        x1_proj,
        x1_meas,
        x2_proj,
        x2_meas,
        i_cut,
        cutoff,
        q_raw * charge_scale,
        q_raw * particle_scale,
    )
