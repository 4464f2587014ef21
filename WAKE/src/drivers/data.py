"""Simulation data sources: OSIRIS HDF5 dumps and a synthetic mock."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional, Union

import h5py
import numpy as np

from WAKE.src.core.context import BeamSpecies, SimulationContext
from WAKE.src.core.errors import ConfigurationError, InvalidRange

logger = logging.getLogger(__name__)

RAW_COLUMNS = ("x1", "x2", "x3", "p1", "p2", "p3", "ene", "q")
CONTEXT_FILE = "wake_simulation.json"


class SimulationData(ABC):
    @property
    @abstractmethod
    def context(self) -> SimulationContext: pass
    @property
    @abstractmethod
    def last_dump(self) -> int: pass
    @abstractmethod
    def read_grid(self, dump: int, kind: str, name: str, species: str = "") -> np.ndarray:
        """Gridded data shaped (n_x1, n_x2). kind is DENSITY or FLD."""
    @abstractmethod
    def read_raw(self, dump: int, species: str) -> np.ndarray:
        """RAW particle records shaped (N, 8): x1 x2 x3 p1 p2 p3 ene q."""
    @abstractmethod
    def close(self) -> None: pass

    def string_to_dump(self, value: Union[str, int], current: int = 0) -> int:
        """Resolve next/prev/start/pstart/end or a dump number, clamped to the available dumps."""
        text = str(value).strip().lower()
        if text in ("next", "n"):
            dump = current + 1
        elif text in ("prev", "previous", "p"):
            dump = current - 1
        elif text in ("start", "first"):
            dump = 0
        elif text == "pstart":
            tf = self.context.time_factor
            dump = int(np.ceil(self.context.plasma_start / tf)) if tf > 0 else 0
        elif text in ("end", "last"):
            dump = self.last_dump
        else:
            try:
                dump = int(float(text))
            except ValueError:
                raise ConfigurationError(f"Cannot interpret '{value}' as a dump") from None
        return int(min(max(dump, 0), self.last_dump))

    def dump_range(self, start: Union[str, int] = "start", stop: Union[str, int] = "end") -> tuple[int, int]:
        """Resolve an inclusive (start, stop) dump range."""
        i_start = self.string_to_dump(start)
        i_stop = self.string_to_dump(stop)
        if i_stop < i_start:
            raise InvalidRange(f"Dump range {i_start}-{i_stop} is inverted")
        return i_start, i_stop


class OsirisData(SimulationData):
    """Reads OSIRIS MS/ output with h5py.

    The simulation description is read from ``wake_simulation.json`` in the
    data directory. OSIRIS stores 2D grids with x1 as the fastest index, so
    grids are transposed on read to (n_x1, n_x2).
    """

    def __init__(self, path: Union[str, Path], context: Optional[SimulationContext] = None):
        self.path = Path(path)
        if not (self.path / "MS").is_dir():
            raise FileNotFoundError(f"No OSIRIS MS folder in {self.path}")
        self._context = context or SimulationContext.load(self.path / CONTEXT_FILE)
        self._last_dump = self._scan_last_dump()
        logger.info("Opened %s (%d dumps)", self.path, self._last_dump + 1)

    def _scan_last_dump(self) -> int:
        files = sorted((self.path / "MS").glob("**/*-[0-9][0-9][0-9][0-9][0-9][0-9].h5"))
        if not files:
            return 0
        return max(int(f.stem[-6:]) for f in files)

    @property
    def context(self) -> SimulationContext:
        return self._context

    @property
    def last_dump(self) -> int:
        return self._last_dump

    def _file(self, folder: Path, prefix: str, dump: int) -> Path:
        fname = folder / f"{prefix}-{dump:06d}.h5"
        if not fname.exists():
            raise FileNotFoundError(f"Missing dump file {fname}")
        return fname

    def read_grid(self, dump: int, kind: str, name: str, species: str = "") -> np.ndarray:
        kind = kind.upper()
        if kind == "DENSITY":
            folder = self.path / "MS" / "DENSITY" / species / name
            fname = self._file(folder, f"{name}-{species}", dump)
        elif kind == "FLD":
            folder = self.path / "MS" / "FLD" / name
            fname = self._file(folder, name, dump)
        else:
            raise ConfigurationError(f"Unknown grid kind '{kind}'")

        with h5py.File(fname, "r") as f:
            data = np.asarray(f[name][()], dtype=np.float64)
        return np.transpose(data)

    def read_raw(self, dump: int, species: str) -> np.ndarray:
        fname = self._file(self.path / "MS" / "RAW" / species, f"RAW-{species}", dump)
        with h5py.File(fname, "r") as f:
            columns = [np.asarray(f[key][()], dtype=np.float64) for key in RAW_COLUMNS]
        return np.column_stack(columns) if columns[0].size else np.zeros((0, len(RAW_COLUMNS)))

    def close(self) -> None:
        logger.debug("Closed %s", self.path)


class MockSimulationData(SimulationData):
    """Synthetic cylindrical simulation with a two-beamlet electron beam."""

    def __init__(self, seed: int = 0):
        logger.info("--- Initializing MOCK simulation data ---")
        self.seed = seed
        self._context = SimulationContext(
            coordinates="cylindrical",
            box_min=(0.0, 0.0, 0.0),
            box_max=(24.0, 4.0, 2.0 * np.pi),
            box_cells=(480, 80, 1),
            time_factor=2.0,
            plasma_start=0.0,
            length_factor=5.31e-6,
            charge_factor_si=1.0e-12,
            particle_factor_si=6.24e6,
            e0=9.6e9,
            b0=32.0,
            max_plasma_factor=1.0,
            beams={"electron_beam": BeamSpecies(raw_fraction=0.5, rqm=-1.0)},
            plasmas={"plasma_electrons": -1.0},
        )
        self.beamlet_centres = (8.0, 16.0)
        self.sigma_z = 1.0
        self.sigma_r = 0.5
        self.particle_count = 20000

        ctx = self._context
        self._x1 = np.linspace(ctx.box_min[0], ctx.box_max[0], ctx.box_cells[0])
        self._x2 = np.linspace(ctx.box_min[1], ctx.box_max[1], ctx.box_cells[1])

    @property
    def context(self) -> SimulationContext:
        return self._context

    @property
    def last_dump(self) -> int:
        return 20

    def read_grid(self, dump: int, kind: str, name: str, species: str = "") -> np.ndarray:
        zz, rr = np.meshgrid(self._x1, self._x2, indexing="ij")
        kind = kind.upper()
        if kind == "DENSITY":
            if not self._context.is_beam(species):
                return np.zeros_like(zz)
            rng = np.random.default_rng(self.seed + dump)
            density = np.zeros_like(zz)
            for zc in self.beamlet_centres:
                density += np.exp(-((zz - zc) ** 2) / (2 * self.sigma_z ** 2))
            density *= np.exp(-(rr ** 2) / (2 * self.sigma_r ** 2))
            density += rng.normal(0.0, 0.01, density.shape)
            return -density
        if kind == "FLD":
            envelope = np.exp(-(rr ** 2) / 2.0)
            phase = zz - 0.1 * dump
            waves = {
                "e1": 0.5 * np.sin(phase) * envelope,
                "e2": 0.3 * rr * np.cos(phase) * envelope,
                "e3": np.zeros_like(zz),
                "b1": np.zeros_like(zz),
                "b2": np.zeros_like(zz),
                "b3": 0.1 * rr * np.cos(phase) * envelope,
            }
            if name not in waves:
                raise ConfigurationError(f"Unknown field '{name}'")
            return waves[name]
        raise ConfigurationError(f"Unknown grid kind '{kind}'")

    def read_raw(self, dump: int, species: str) -> np.ndarray:
        if not self._context.is_beam(species):
            return np.zeros((0, len(RAW_COLUMNS)))
        rng = np.random.default_rng(self.seed + 1000 + dump)
        n = self.particle_count
        centres = rng.choice(self.beamlet_centres, size=n)
        x1 = centres + rng.normal(0.0, self.sigma_z, n) + self._context.time_factor * dump
        x2 = np.abs(rng.normal(0.0, self.sigma_r, n))
        x3 = rng.uniform(0.0, 2.0 * np.pi, n)
        p1 = rng.normal(200.0, 5.0, n)
        p2 = rng.normal(0.0, 0.5, n)
        p3 = rng.normal(0.0, 0.5, n)
        ene = np.sqrt(p1 ** 2 + p2 ** 2 + p3 ** 2 + 1.0) - 1.0
        q = np.full(n, -1.0 / n)
        return np.column_stack((x1, x2, x3, p1, p2, p3, ene, q))

    def close(self) -> None:
        logger.info("MOCK simulation data closed.")
