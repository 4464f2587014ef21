"""Application configuration with simple JSON persistence."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Optional

from WAKE.src.core.types import BeamletOptions

logger = logging.getLogger(__name__)


@dataclass
class Config:
    # Data source
    DATA_PATH: str = ""

    # Units and axes
    UNITS: str = "N"  # N, SI
    X1_SCALE: str = "Auto"
    X2_SCALE: str = "Auto"
    X3_SCALE: str = "Auto"
    X1_LIM: Optional[list] = None
    X2_LIM: Optional[list] = None
    X3_LIM: Optional[list] = None

    # Beamlet analysis
    IGNORE_LIMITS: bool = False
    BEAM_PROMINENCE: float = 0.5  # fraction of projection range
    MIN_PEAK_DISTANCE: float = 0.5  # plasma wavelengths
    SMOOTH_SPAN: float = 0.5  # plasma wavelengths
    RADIAL_INCLUDE: float = 0.9  # fraction of radial charge

    # Particle sampling
    SAMPLE_COUNT: int = 200
    SAMPLE_FILTER: str = "Random"  # Random, Charge

    # Field lineouts (x2 cells)
    LINEOUT_START: int = 2
    LINEOUT_AVERAGE: int = 1

    # Output
    REPORT_DIR: str = "reports"

    @staticmethod
    def default_path() -> Path:
        return Path.home() / ".wake_config.json"

    @classmethod
    def load(cls, path: Optional[Path] = None) -> "Config":
        cfg = cls()
        cfg_path = path or cls.default_path()
        if not cfg_path.exists():
            return cfg

        try:
            data = json.loads(cfg_path.read_text())
        except Exception:
            logger.exception("Failed to read config file: %s", cfg_path)
            return cfg

        for f in fields(cfg):
            if f.name not in data:
                continue
            raw = data[f.name]
            try:
                if f.type in (bool, "bool"):
                    val = bool(raw)
                elif f.type in (int, "int"):
                    val = int(raw)
                elif f.type in (float, "float"):
                    val = float(raw)
                elif f.type == "Optional[list]":
                    val = None if raw is None else [float(v) for v in raw]
                else:
                    val = raw
                setattr(cfg, f.name, val)
            except Exception:
                logger.warning("Ignoring invalid config value for %s", f.name)

        cfg.normalize()
        return cfg

    def save(self, path: Optional[Path] = None) -> None:
        cfg_path = path or self.default_path()
        cfg_path.write_text(json.dumps(asdict(self), indent=2, sort_keys=True))

    def normalize(self) -> None:
        for name in ("X1_LIM", "X2_LIM", "X3_LIM"):
            lim = getattr(self, name)
            if lim is not None and len(lim) == 2 and lim[0] > lim[1]:
                setattr(self, name, [lim[1], lim[0]])
        if self.SAMPLE_COUNT < 1:
            self.SAMPLE_COUNT = 1
        if self.LINEOUT_AVERAGE < 1:
            self.LINEOUT_AVERAGE = 1

    def beamlet_options(self) -> BeamletOptions:
        return BeamletOptions(
            ignore_limits=bool(self.IGNORE_LIMITS),
            beam_prominence=float(self.BEAM_PROMINENCE),
            min_peak_distance=float(self.MIN_PEAK_DISTANCE),
            smooth_span=float(self.SMOOTH_SPAN),
            radial_include=float(self.RADIAL_INCLUDE),
        )
