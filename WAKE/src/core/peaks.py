"""Peak detection and valley-to-valley segmentation of a smoothed projection."""

from __future__ import annotations

import logging

import numpy as np
from scipy.signal import peak_prominences

from WAKE.src.core.types import PeakSegment

logger = logging.getLogger(__name__)


def local_maxima(signal) -> np.ndarray:
    """Indices of interior local maxima. Plateaus report their leftmost index."""
    y = np.asarray(signal, dtype=np.float64)
    n = y.size
    peaks: list[int] = []
    i = 1
    while i < n - 1:
        if y[i - 1] < y[i]:
            ahead = i + 1
            while ahead < n - 1 and y[ahead] == y[i]:
                ahead += 1
            if y[ahead] < y[i]:
                peaks.append(i)
            i = ahead
        else:
            i += 1
    return np.asarray(peaks, dtype=np.intp)


def select_by_distance(locs: np.ndarray, heights: np.ndarray, distance: float) -> np.ndarray:
    """Keep the highest peaks so that no two kept peaks are closer than distance.

    Equal heights favour the earlier index. Returns kept locations in
    ascending order.
    """
    locs = np.asarray(locs, dtype=np.intp)
    heights = np.asarray(heights, dtype=np.float64)
    if locs.size < 2 or distance <= 1:
        return np.sort(locs)

    keep = np.ones(locs.size, dtype=bool)
    for k in np.lexsort((locs, -heights)):
        if not keep[k]:
            continue
        close = np.abs(locs - locs[k]) < distance
        close[k] = False
        keep[close] = False
    return np.sort(locs[keep])


def prominences(signal, locs: np.ndarray) -> np.ndarray:
    locs = np.asarray(locs, dtype=np.intp)
    if locs.size == 0:
        return np.zeros(0)
    proms, _, _ = peak_prominences(np.asarray(signal, dtype=np.float64), locs)
    return proms


def valley_index(signal: np.ndarray, left: int, right: int) -> int:
    """First index of the minimum strictly between two peaks."""
    if right - left < 2:
        return left
    return left + 1 + int(np.argmin(signal[left + 1:right]))


def find_segments(signal, min_peak_distance: float, prominence_fraction: float) -> list[PeakSegment]:
    """Find prominent peaks and partition the signal between them.

    min_peak_distance is in samples. Peaks with prominence below
    ``prominence_fraction * (max - min) + min`` or equal to zero are dropped.
    The first segment starts at 0, the last ends at len(signal) - 1, and a
    shared valley v ends one segment at v and starts the next at v + 1.
    """
    y = np.asarray(signal, dtype=np.float64)
    if y.size == 0:
        return []

    candidates = local_maxima(y)
    locs = select_by_distance(candidates, y[candidates], min_peak_distance)
    proms = prominences(y, locs)

    y_max = float(np.max(y))
    y_min = float(np.min(y))
    threshold = prominence_fraction * (y_max - y_min) + y_min
    keep = (proms >= threshold) & (proms != 0)
    locs = locs[keep]
    proms = proms[keep]
    logger.debug(
        "Peaks: %d candidates, %d separated, %d above threshold %.4g",
        candidates.size, keep.size, locs.size, threshold,
    )

    segments: list[PeakSegment] = []
    start = 0
    for k, loc in enumerate(locs):
        if k + 1 < locs.size:
            stop = valley_index(y, int(loc), int(locs[k + 1]))
        else:
            stop = y.size - 1
        segments.append(PeakSegment(int(loc), float(y[loc]), float(proms[k]), start, stop))
        start = stop + 1
    return segments
