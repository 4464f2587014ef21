"""Beam energy, momentum evolution, slippage and transverse emittance from RAW particle data."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import numpy as np

from WAKE.config import Config
from WAKE.src.core.errors import ConfigurationError
from WAKE.src.core.frame import AnalysisFrame
from WAKE.src.core.statistics import weighted_cov, weighted_mean, weighted_percentile, weighted_std
from WAKE.src.core.types import (
    EMPTY_ENERGY,
    BeamSlip,
    EmittanceResult,
    EnergySpreadEvolution,
    EnergySummary,
    MomentumEvolution,
)
from WAKE.src.drivers.data import SimulationData

logger = logging.getLogger(__name__)

MOMENTUM_AXES = {"p1": 3, "p2": 4, "p3": 5}

# Statistic name -> percentile, None for the weighted mean
SLIP_STATISTICS = {
    "average": None,
    "median": 50.0,
    "p10": 10.0,
    "p90": 90.0,
    "q1": 25.0,
    "q3": 75.0,
}


def _statistic(values: np.ndarray, weights: np.ndarray, percentile: Optional[float]) -> float:
    if percentile is None:
        return weighted_mean(values, weights)
    return weighted_percentile(values, percentile, weights)


def _expected(first: float, slip: np.ndarray) -> np.ndarray:
    """Position predicted from the first dump, less the slip accumulated before each dump."""
    return first - np.concatenate(([0.0], np.cumsum(slip)[:-1]))


def _confidence(values: np.ndarray) -> float:
    """Half width of the 95% interval on the mean of repeated samples."""
    if values.size < 2:
        return 0.0
    return float(1.96 * np.std(values, ddof=1) / np.sqrt(values.size - 1))


class MomentumAnalyzer:
    def __init__(self, data: SimulationData, config: Config):
        self.data = data
        self.config = config
        self.context = data.context
        self.frame = AnalysisFrame(self.context, config)
        self.scaling = self.frame.scaling
        self.limits = self.frame.limits

    def _particles(self, dump: int, species: str) -> tuple[np.ndarray, np.ndarray]:
        """RAW records and their absolute charge weights, zero outside the limits."""
        raw = self.data.read_raw(dump, species)
        inside = self.frame.limit_mask(self.frame.box_frame_x1(raw, dump), raw[:, 1])
        return raw, np.where(inside, np.abs(raw[:, 7]), 0.0)

    def _momentum_fac(self, species: str) -> float:
        """MeV/c per unit of m c for the species."""
        return abs(self.context.rqm(species)) * self.context.electron_mass_mev

    def momentum_to_energy(self, species: str, momentum: np.ndarray) -> np.ndarray:
        """Total energy in MeV for longitudinal momentum in units of m c."""
        return np.sqrt(np.asarray(momentum) ** 2 + 1.0) * self._momentum_fac(species)

    def energy(self, dump: int, species: str) -> EnergySummary:
        raw, weights = self._particles(dump, species)
        if raw.shape[0] == 0 or not np.any(weights):
            return EMPTY_ENERGY

        energy = self.momentum_to_energy(species, raw[:, 3])
        mean = weighted_mean(energy, weights)
        std = weighted_std(energy, weights)
        return EnergySummary(
            mean,
            std,
            weighted_percentile(energy, 50, weights),
            weighted_percentile(energy, 25, weights),
            weighted_percentile(energy, 75, weights),
            std / mean if mean else 0.0,
        )

    def sigma_e_to_e_mean(
        self, species: str, start: Union[str, int] = "start", stop: Union[str, int] = "end"
    ) -> EnergySpreadEvolution:
        """Weighted energy mean, spread and spread-to-mean ratio per dump."""
        i_start, i_stop = self.data.dump_range(start, stop)
        n = i_stop - i_start + 1
        mean, sigma, ratio = np.zeros(n), np.zeros(n), np.zeros(n)

        for k, dump in enumerate(range(i_start, i_stop + 1)):
            summary = self.energy(dump, species)
            mean[k], sigma[k], ratio[k] = summary.mean, summary.std, summary.spread

        t_axis = self.context.time_axis(i_start, i_stop)
        return EnergySpreadEvolution(mean, sigma, ratio, t_axis, (i_start, i_stop))

    def evolution(
        self,
        species: str,
        axis: str = "p1",
        start: Union[str, int] = "start",
        stop: Union[str, int] = "end",
        percentiles: Sequence[float] = (),
    ) -> MomentumEvolution:
        """Weighted average, median and optional percentiles of one momentum component per dump."""
        key = axis.lower()
        if key not in MOMENTUM_AXES:
            raise ConfigurationError(f"Unknown momentum axis '{axis}'")
        column = MOMENTUM_AXES[key]

        levels = []
        for p in percentiles:
            if 1 <= p <= 100:
                levels.append(p)
            else:
                logger.warning("Skipping percentile %s, valid range is 1-100", p)

        i_start, i_stop = self.data.dump_range(start, stop)
        n = i_stop - i_start + 1
        fac = self._momentum_fac(species)
        average, median = np.zeros(n), np.zeros(n)
        spread = {p: np.zeros(n) for p in levels}

        for k, dump in enumerate(range(i_start, i_stop + 1)):
            raw, weights = self._particles(dump, species)
            momentum = raw[:, column] * fac
            average[k] = weighted_mean(momentum, weights)
            median[k] = weighted_percentile(momentum, 50, weights)
            for p in levels:
                spread[p][k] = weighted_percentile(momentum, p, weights)

        t_axis = self.context.time_axis(i_start, i_stop)
        return MomentumEvolution(key, average, median, spread, t_axis, (i_start, i_stop))

    def beam_slip(
        self,
        species: str,
        start: Union[str, int] = "start",
        stop: Union[str, int] = "end",
        added: float = 0.0,
    ) -> BeamSlip:
        """
        Distance the beam falls behind the moving box between consecutive dumps.

        The box moves ``time_factor`` per dump at c; a particle with
        longitudinal momentum p moves beta*``time_factor``. Slip and positions
        are scaled to the x1 display unit. Dumps without particles report zero.
        """
        i_start, i_stop = self.data.dump_range(start, stop)
        n = i_stop - i_start + 1
        delta_z = self.context.time_factor
        fac = self.scaling.axis_fac[0]

        def slip_of(momentum: float) -> float:
            beta = momentum / np.sqrt(momentum ** 2 + 1.0)
            return delta_z * (1.0 - beta) * fac

        slip = {name: np.zeros(n) for name in SLIP_STATISTICS}
        position = {name: np.zeros(n) for name in SLIP_STATISTICS}
        slip_added = {name: np.zeros(n) for name in ("average", "median")}

        for k, dump in enumerate(range(i_start, i_stop + 1)):
            raw, weights = self._particles(dump, species)
            if not np.any(weights):
                logger.debug("No %s particles in dump %d", species, dump)
                continue
            x1 = self.frame.box_frame_x1(raw, dump)
            for name, level in SLIP_STATISTICS.items():
                p1 = _statistic(raw[:, 3], weights, level)
                slip[name][k] = slip_of(p1)
                position[name][k] = _statistic(x1, weights, level) * fac
                if name in slip_added:
                    slip_added[name][k] = slip_of(p1 + added)

        expected = {name: _expected(position[name][0], slip[name]) for name in SLIP_STATISTICS}
        expected_added = {name: _expected(position[name][0], slip_added[name]) for name in slip_added}

        return BeamSlip(
            slip,
            position,
            expected,
            slip_added,
            expected_added,
            float(added),
            delta_z,
            self.context.time_axis(i_start, i_stop),
            self.scaling.axis_units[0],
            (i_start, i_stop),
        )

    def _transverse(self, raw: np.ndarray, theta: Optional[np.ndarray]) -> tuple[np.ndarray, np.ndarray]:
        """Transverse position (display units) and angle (mrad) in the x2 plane."""
        fac2 = self.scaling.axis_fac[1]
        if theta is not None:
            p_r, p_th = raw[:, 4], raw[:, 5]
            p_x = p_r * np.cos(theta) - p_th * np.sin(theta)
            x = raw[:, 1] * np.cos(theta) * fac2
        else:
            p_x = raw[:, 4]
            x = raw[:, 1] * fac2
        return x, np.arctan2(p_x, raw[:, 3]) * 1e3

    def emittance(
        self,
        dump: int,
        species: str,
        seed: Optional[int] = None,
        samples: int = 1,
        min_particles: int = 100000,
        grid: Optional[Sequence[int]] = None,
    ) -> EmittanceResult:
        """
        RMS and normalized emittance in the x2 plane.

        In 2D cylindrical runs the azimuth of each particle is drawn at random
        to project r onto a transverse Cartesian coordinate. The projection is
        repeated at least ``samples`` times, and often enough that the draws
        cover ``min_particles`` particles; emittances are averaged over the
        draws. Other geometries give a single deterministic sample.

        ``grid`` (n_x, n_x') requests a charge histogram of the accumulated
        phase space.
        """
        raw, weights = self._particles(dump, species)
        n = raw.shape[0]
        cylindrical = self.context.cylindrical
        random_azimuth = cylindrical and self.context.box_cells[2] == 1

        draws = 1
        if random_azimuth and n > 0:
            draws = max(int(samples), int(np.ceil(min_particles / n)))
        rng = np.random.default_rng(seed)

        p_total = np.sqrt(raw[:, 3] ** 2 + raw[:, 4] ** 2 + raw[:, 5] ** 2)
        gamma = weighted_mean(np.sqrt(p_total ** 2 + 1.0), weights)
        beta = np.sqrt(1.0 - 1.0 / gamma ** 2) if gamma >= 1.0 else 0.0
        charge = raw[:, 7] * self.scaling.charge_fac * (weights > 0)

        e_rms = np.zeros(draws)
        xs, x_primes, charges = [], [], []
        kept = 0
        for s in range(draws):
            if random_azimuth:
                theta = rng.uniform(0.0, 2.0 * np.pi, n)
            elif cylindrical:
                theta = raw[:, 2]
            else:
                theta = None
            x, x_prime = self._transverse(raw, theta)
            cov = weighted_cov(x, x_prime, weights)
            e_rms[s] = np.sqrt(max(np.linalg.det(cov), 0.0))

            if kept < min_particles:
                if cylindrical:
                    x, x_prime = np.concatenate((-x, x)), np.concatenate((-x_prime, x_prime))
                    q = np.tile(charge, 2)
                else:
                    q = charge
                xs.append(x)
                x_primes.append(x_prime)
                charges.append(q)
                kept += x.size

        e_norm = e_rms * gamma * beta
        x_all = np.concatenate(xs)
        xp_all = np.concatenate(x_primes)
        q_all = np.concatenate(charges)
        q_max = np.max(np.abs(q_all)) if q_all.size else 0.0
        weight = np.abs(q_all) / q_max if q_max > 0 else np.zeros_like(q_all)

        histogram = x_axis = xp_axis = None
        if grid is not None and x_all.size:
            histogram, x_axis, xp_axis = self._phase_space_histogram(x_all, xp_all, q_all, grid)

        logger.debug(
            "Emittance %s dump %d: %.4g (rms) over %d samples, gamma %.2f", species, dump, e_rms.mean(), draws, gamma
        )
        return EmittanceResult(
            cov,
            float(np.mean(e_rms)),
            float(np.mean(e_norm)),
            gamma,
            self.scaling.axis_units[1],
            "mrad",
            _confidence(e_rms),
            _confidence(e_norm),
            draws,
            x_all,
            xp_all,
            q_all,
            weight,
            histogram,
            x_axis,
            xp_axis,
        )

    @staticmethod
    def _phase_space_histogram(x, x_prime, charge, grid):
        """Absolute charge binned on a grid symmetric about zero, shape (n_x', n_x)."""
        n_x, n_xp = int(grid[0]), int(grid[-1])
        if n_x < 2 or n_xp < 2:
            raise ConfigurationError(f"Phase space grid {tuple(grid)} needs at least 2x2 cells")
        x_max = float(np.max(np.abs(x))) or 1.0
        xp_max = float(np.max(np.abs(x_prime))) or 1.0
        hist, x_edges, xp_edges = np.histogram2d(
            x, x_prime, bins=(n_x, n_xp), range=((-x_max, x_max), (-xp_max, xp_max)), weights=charge
        )
        x_axis = 0.5 * (x_edges[:-1] + x_edges[1:])
        xp_axis = 0.5 * (xp_edges[:-1] + xp_edges[1:])
        return np.abs(hist.T), x_axis, xp_axis
