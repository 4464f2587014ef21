"""Units, limits and the moving-box frame shared by the analyzers."""

from __future__ import annotations

import numpy as np

from WAKE.config import Config
from WAKE.src.core.context import SimulationContext, nearest_index, resolve_limits, resolve_scaling


class AnalysisFrame:
    """
    Resolved scaling and axis limits for one simulation and configuration.
    Grid crops and particle masks are both derived from the limits held here,
    so gridded profiles and particle sums always cover the same region.
    """

    def __init__(self, context: SimulationContext, config: Config):
        self.context = context
        self.scaling = resolve_scaling(
            context, config.UNITS, (config.X1_SCALE, config.X2_SCALE, config.X3_SCALE)
        )
        self.limits = resolve_limits(context, self.scaling, config.X1_LIM, config.X2_LIM, config.X3_LIM)

    def box_frame_x1(self, raw: np.ndarray, dump: int) -> np.ndarray:
        """RAW x1 shifted into the moving box frame, normalized units."""
        return raw[:, 0] - self.context.time_factor * dump

    def x2_bounds(self) -> tuple[float, float]:
        """
        Transverse limits applied to grid columns and particles, normalized units.
        In cylindrical coordinates the signed x2 limits are folded onto r >= 0:
        a range crossing the axis keeps r up to the larger magnitude.
        """
        lo, hi = self.limits.x2
        if not self.context.cylindrical:
            return lo, hi
        if lo >= 0.0:
            return lo, hi
        if hi <= 0.0:
            return -hi, -lo
        return 0.0, max(-lo, hi)

    def limit_mask(self, x1: np.ndarray, x2: np.ndarray) -> np.ndarray:
        """Particles inside the x1/x2 limits, coordinates in normalized units."""
        x1_lo, x1_hi = self.limits.x1
        x2_lo, x2_hi = self.x2_bounds()
        return (x1 >= x1_lo) & (x1 <= x1_hi) & (x2 >= x2_lo) & (x2 <= x2_hi)

    def x1_slice(self, x1_axis: np.ndarray) -> slice:
        lo, hi = self.limits.scaled(self.scaling, 0)
        return slice(nearest_index(x1_axis, lo), nearest_index(x1_axis, hi) + 1)

    def x2_slice(self, x2_axis: np.ndarray) -> slice:
        """Grid columns inside the transverse limits; x2_axis is one-sided in cylindrical."""
        fac = self.scaling.axis_fac[1]
        lo, hi = self.x2_bounds()
        return slice(nearest_index(x2_axis, lo * fac), nearest_index(x2_axis, hi * fac) + 1)
