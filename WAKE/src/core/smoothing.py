"""Local regression smoothing of 1D projections."""

from __future__ import annotations

import numpy as np


def span_to_window(span_length: float, spacing: float, n: int) -> int:
    """Convert a span in physical units to an odd window size in samples."""
    if n <= 0:
        return 1
    if spacing <= 0 or not np.isfinite(spacing):
        return 1
    window = int(np.ceil(span_length / spacing))
    if window % 2 == 0:
        window -= 1
    limit = n if n % 2 == 1 else n - 1
    return int(min(max(window, 1), max(limit, 1)))


def loess_smooth(signal, window: int) -> np.ndarray:
    """Loess smoothing with tricube weights and a quadratic local fit.

    The window is centred on each sample and shrinks at the array edges;
    the fit degree drops when fewer than three samples are available.
    """
    y = np.asarray(signal, dtype=np.float64)
    n = y.size
    half = int(window) // 2
    if half < 1 or n < 3:
        return y.copy()

    out = np.empty(n, dtype=np.float64)
    scale = float(half + 1)
    for i in range(n):
        lo = max(0, i - half)
        hi = min(n, i + half + 1)
        u = np.arange(lo, hi, dtype=np.float64) - i
        w = (1.0 - (np.abs(u) / scale) ** 3) ** 3
        degree = min(2, u.size - 1)

        sw = np.sqrt(w)
        design = np.vander(u, degree + 1, increasing=True) * sw[:, None]
        coef, *_ = np.linalg.lstsq(design, y[lo:hi] * sw, rcond=None)
        # Local coordinates are centred on i, so the intercept is the fit value
        out[i] = coef[0]
    return out
