"""Continuous wavelet transform of 1D projections."""

from __future__ import annotations

from typing import NamedTuple

import numpy as np
import pywt

WAVELET = "morl"


class WaveletTransform(NamedTuple):
    coefficients: np.ndarray  # (n_scales, n)
    period: np.ndarray
    scale: np.ndarray
    coi: np.ndarray


def wavelet_scales(octaves: float, dj: float = 0.02, s0: float = 2.0) -> np.ndarray:
    """Scales in samples, s0 * 2**(j*dj) for j = 0..octaves/dj."""
    steps = int(round(octaves / dj))
    return s0 * 2.0 ** (np.arange(steps + 1) * dj)


def wavelet_transform(signal, spacing: float, octaves: float = 7, dj: float = 0.02) -> WaveletTransform:
    """
    Morlet CWT of a uniformly sampled signal.

    The smallest scale is two samples and ``octaves`` doublings are covered
    in steps of ``dj`` octaves. Periods, scales and the cone of influence
    are returned in the units of ``spacing``.
    """
    y = np.asarray(signal, dtype=np.float64)
    scales = wavelet_scales(octaves, dj)
    coefs, freqs = pywt.cwt(y, scales, WAVELET, sampling_period=spacing, method="fft")

    # Fourier period per unit scale; the e-folding time of a scale s is sqrt(2) s
    fourier_factor = 1.0 / pywt.scale2frequency(WAVELET, 1.0)
    n = y.size
    edge = np.minimum(np.arange(1, n + 1), np.arange(n, 0, -1)).astype(np.float64)
    coi = fourier_factor / np.sqrt(2.0) * edge * spacing

    return WaveletTransform(coefs, 1.0 / freqs, scales * spacing, coi)
