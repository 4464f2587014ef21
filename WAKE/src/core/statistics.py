"""Weighted statistics over particle or profile data.

All functions return 0.0 (or a zero matrix) for empty input or a zero
weight sum instead of raising.
"""

from __future__ import annotations

import numpy as np


def _prepare(values, weights) -> tuple[np.ndarray, np.ndarray]:
    values = np.asarray(values, dtype=np.float64).ravel()
    weights = np.asarray(weights, dtype=np.float64).ravel()
    if values.shape != weights.shape:
        raise ValueError(f"values and weights differ in length: {values.size} != {weights.size}")
    return values, weights


def weighted_mean(values, weights) -> float:
    values, weights = _prepare(values, weights)
    total = float(np.sum(weights))
    if values.size == 0 or total == 0.0:
        return 0.0
    return float(np.dot(values, weights) / total)


def weighted_std(values, weights) -> float:
    """Population standard deviation."""
    values, weights = _prepare(values, weights)
    total = float(np.sum(weights))
    if values.size == 0 or total == 0.0:
        return 0.0
    mean = np.dot(values, weights) / total
    variance = float(np.dot(weights, (values - mean) ** 2) / total)
    return float(np.sqrt(max(variance, 0.0)))


def weighted_percentile(values, p: float, weights) -> float:
    """Percentile p in [0, 100], interpolated on the cumulative weight midpoints.

    Weights are taken by magnitude so signed charge can be passed directly.
    """
    if not 0.0 <= p <= 100.0:
        raise ValueError(f"Percentile must be in [0, 100], got {p}")
    values, weights = _prepare(values, weights)
    weights = np.abs(weights)
    total = float(np.sum(weights))
    if values.size == 0 or total == 0.0:
        return 0.0

    sorter = np.argsort(values, kind="stable")
    values = values[sorter]
    weights = weights[sorter]
    keep = weights > 0
    values = values[keep]
    weights = weights[keep]

    cumulative = (np.cumsum(weights) - 0.5 * weights) / total
    return float(np.interp(p / 100.0, cumulative, values))


def weighted_cov(x, y, weights) -> np.ndarray:
    """2x2 weighted covariance matrix of (x, y)."""
    x, weights = _prepare(x, weights)
    y, _ = _prepare(y, weights)
    total = float(np.sum(weights))
    if x.size == 0 or total == 0.0:
        return np.zeros((2, 2))

    dx = x - np.dot(x, weights) / total
    dy = y - np.dot(y, weights) / total
    cxx = np.dot(weights, dx * dx) / total
    cyy = np.dot(weights, dy * dy) / total
    cxy = np.dot(weights, dx * dy) / total
    return np.array([[cxx, cxy], [cxy, cyy]])
