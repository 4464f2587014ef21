"""Simulation context, unit scaling and axis handling."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Mapping, NamedTuple, Optional, Sequence

import numpy as np

from WAKE.src.core.errors import ConfigurationError, InvalidRange

logger = logging.getLogger(__name__)

# Display unit -> factor applied to a length in metres
LENGTH_PREFIXES = {
    "pm": 1.0e12,
    "nm": 1.0e9,
    "um": 1.0e6,
    "mm": 1.0e3,
    "cm": 1.0e2,
    "m": 1.0,
    "km": 1.0e-3,
}

NORM_LENGTH_UNIT = "c/ω_p"


@dataclass(frozen=True)
class BeamSpecies:
    raw_fraction: float = 1.0
    rqm: float = -1.0

    @property
    def sign(self) -> float:
        return 1.0 if self.rqm >= 0 else -1.0


@dataclass(frozen=True)
class SimulationContext:
    """Read-only description of one simulation.

    Box bounds are in normalized units (c/ω_p). ``time_factor`` is the
    normalized time between dumps; ``length_factor`` converts c/ω_p to metres.
    """

    coordinates: str = "cartesian"
    box_min: tuple[float, float, float] = (0.0, 0.0, 0.0)
    box_max: tuple[float, float, float] = (1.0, 1.0, 1.0)
    box_cells: tuple[int, int, int] = (1, 1, 1)
    time_factor: float = 0.0
    plasma_start: float = 0.0
    length_factor: float = 1.0
    charge_factor_si: float = 1.0
    particle_factor_si: float = 1.0
    charge_factor_norm: float = 1.0
    particle_factor_norm: float = 1.0
    e0: float = 1.0
    b0: float = 1.0
    max_plasma_factor: float = 1.0
    electron_mass_mev: float = 0.51099895
    beams: tuple[tuple[str, BeamSpecies], ...] = ()
    plasmas: tuple[tuple[str, float], ...] = ()

    def __post_init__(self):
        # Species tables are held as sorted (name, value) pairs
        for name in ("beams", "plasmas"):
            table = getattr(self, name)
            if isinstance(table, Mapping):
                object.__setattr__(self, name, tuple(sorted(table.items())))

    @property
    def cylindrical(self) -> bool:
        return self.coordinates.lower() == "cylindrical"

    @property
    def plasma_wavelength(self) -> float:
        """Plasma wavelength at the maximum plasma density, in c/ω_p."""
        return 2.0 * np.pi / np.sqrt(self.max_plasma_factor)

    def is_beam(self, species: str) -> bool:
        return species in dict(self.beams)

    def beam(self, species: str) -> BeamSpecies:
        beams = dict(self.beams)
        if species not in beams:
            raise ConfigurationError(f"Species {species} is not a beam.")
        return beams[species]

    def rqm(self, species: str) -> float:
        if self.is_beam(species):
            return self.beam(species).rqm
        plasmas = dict(self.plasmas)
        if species in plasmas:
            return plasmas[species]
        raise ConfigurationError(f"Unknown species type: {species}")

    def z_position(self, dump: int) -> float:
        """Propagation distance of the box in metres."""
        return (dump * self.time_factor - self.plasma_start) * self.length_factor

    def time_axis(self, start: int, stop: int) -> np.ndarray:
        """Propagation distance in metres for dumps start..stop inclusive."""
        dumps = np.arange(int(start), int(stop) + 1, dtype=np.float64)
        return (dumps * self.time_factor - self.plasma_start) * self.length_factor

    @classmethod
    def from_dict(cls, data: dict) -> "SimulationContext":
        kwargs = dict(data)
        for key in ("box_min", "box_max"):
            if key in kwargs:
                kwargs[key] = tuple(float(v) for v in kwargs[key])
        if "box_cells" in kwargs:
            kwargs["box_cells"] = tuple(int(v) for v in kwargs["box_cells"])
        kwargs["beams"] = {
            name: BeamSpecies(**params) for name, params in dict(kwargs.get("beams", {})).items()
        }
        kwargs["plasmas"] = {name: float(rqm) for name, rqm in dict(kwargs.get("plasmas", {})).items()}
        return cls(**kwargs)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["beams"] = {name: asdict(beam) for name, beam in self.beams}
        data["plasmas"] = dict(self.plasmas)
        return data

    @classmethod
    def load(cls, path: Path) -> "SimulationContext":
        return cls.from_dict(json.loads(Path(path).read_text()))

    def save(self, path: Path) -> None:
        Path(path).write_text(json.dumps(self.to_dict(), indent=2, sort_keys=True))


class AxisScaling(NamedTuple):
    units: str
    axis_fac: tuple[float, float, float]
    axis_units: tuple[str, str, str]
    charge_fac: float
    particle_fac: float


class AxisLimits(NamedTuple):
    """Axis limits in normalized units."""

    x1: tuple[float, float]
    x2: tuple[float, float]
    x3: tuple[float, float]

    def scaled(self, scaling: AxisScaling, axis: int) -> tuple[float, float]:
        lo, hi = self[axis]
        return lo * scaling.axis_fac[axis], hi * scaling.axis_fac[axis]


def length_scale(scale: str, reference_m: float = 1.0) -> tuple[float, str]:
    """Return (factor, unit) converting metres to the requested display unit."""
    key = scale.strip()
    if key.lower() == "auto":
        ref = abs(float(reference_m))
        if ref == 0.0 or not np.isfinite(ref):
            return 1.0, "m"
        for unit in ("km", "m", "mm", "um", "nm", "pm"):
            if 1.0 <= ref * LENGTH_PREFIXES[unit] < 1000.0:
                return LENGTH_PREFIXES[unit], unit
        return (LENGTH_PREFIXES["pm"], "pm") if ref < 1.0 else (LENGTH_PREFIXES["km"], "km")
    if key == "µm":
        key = "um"
    if key not in LENGTH_PREFIXES:
        raise ConfigurationError(f"Unknown length scale '{scale}'")
    return LENGTH_PREFIXES[key], key


def resolve_scaling(
    context: SimulationContext, units: str = "N", scales: Sequence[str] = ("Auto", "Auto", "Auto")
) -> AxisScaling:
    if units.upper() == "SI":
        facs = []
        labels = []
        for i, scale in enumerate(scales):
            extent = (context.box_max[i] - context.box_min[i]) * context.length_factor
            fac, unit = length_scale(scale, extent)
            facs.append(context.length_factor * fac)
            labels.append(unit)
        return AxisScaling(
            "SI",
            (facs[0], facs[1], facs[2]),
            (labels[0], labels[1], labels[2]),
            context.charge_factor_si,
            context.particle_factor_si,
        )

    if units.upper() != "N":
        logger.warning("Unknown unit system '%s'. Falling back to normalized units.", units)
    third = "rad" if context.cylindrical else NORM_LENGTH_UNIT
    return AxisScaling(
        "N",
        (1.0, 1.0, 1.0),
        (NORM_LENGTH_UNIT, NORM_LENGTH_UNIT, third),
        context.charge_factor_norm,
        context.particle_factor_norm,
    )


def linear_axis(x_min: float, x_max: float, cells: int, fac: float = 1.0) -> np.ndarray:
    if cells <= 0:
        raise InvalidRange(f"Cell count must be positive, got {cells}")
    if x_max < x_min or (x_max == x_min and cells > 1):
        raise InvalidRange(f"Invalid axis bounds [{x_min}, {x_max}]")
    return np.linspace(x_min, x_max, int(cells)) * fac


def box_axis(context: SimulationContext, scaling: AxisScaling, axis: int) -> np.ndarray:
    """Physical coordinates of the box cells along axis 0, 1 or 2."""
    return linear_axis(
        context.box_min[axis], context.box_max[axis], context.box_cells[axis], scaling.axis_fac[axis]
    )


def box_range(context: SimulationContext, axis: int) -> tuple[float, float]:
    if axis == 1 and context.cylindrical:
        return -context.box_max[1], context.box_max[1]
    return context.box_min[axis], context.box_max[axis]


def _check_limit(
    lim: Optional[Sequence[float]], box: tuple[float, float], fac: float, name: str, unit: str
) -> tuple[float, float]:
    if lim is None:
        return box
    if len(lim) != 2:
        raise InvalidRange(f"{name} limit needs to be a vector of dimension 2.")
    lo, hi = float(lim[0]) / fac, float(lim[1]) / fac
    if hi < lo:
        raise InvalidRange(f"{name} limit: second value must be larger than first value.")
    if lo < box[0] or lo > box[1] or hi < box[0] or hi > box[1]:
        logger.warning(
            "%s limit is out of range. Range is %.2f-%.2f %s.", name, box[0] * fac, box[1] * fac, unit
        )
        lo = min(max(lo, box[0]), box[1])
        hi = min(max(hi, box[0]), box[1])
    return lo, hi


def resolve_limits(
    context: SimulationContext,
    scaling: AxisScaling,
    x1_lim: Optional[Sequence[float]] = None,
    x2_lim: Optional[Sequence[float]] = None,
    x3_lim: Optional[Sequence[float]] = None,
) -> AxisLimits:
    """Validate limits given in display units and return them in normalized units."""
    limits = [
        _check_limit(lim, box_range(context, i), scaling.axis_fac[i], f"X{i + 1}", scaling.axis_units[i])
        for i, lim in enumerate((x1_lim, x2_lim, x3_lim))
    ]
    return AxisLimits(limits[0], limits[1], limits[2])


def nearest_index(axis: np.ndarray, value: float) -> int:
    return int(np.argmin(np.abs(np.asarray(axis) - value)))


def mirror_axis(axis: np.ndarray) -> np.ndarray:
    """Mirror a one-sided radial axis to the full symmetric extent."""
    return np.concatenate((-axis[::-1], axis))
