"""Electromagnetic field maps, lineouts and field integrals over dumps."""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Union

import numpy as np
from scipy.integrate import cumulative_trapezoid

from WAKE.config import Config
from WAKE.src.core.context import box_axis, mirror_axis, nearest_index
from WAKE.src.core.errors import ConfigurationError
from WAKE.src.core.frame import AnalysisFrame
from WAKE.src.core.types import DensityResult, FieldIntegralResult, LineoutResult
from WAKE.src.drivers.data import SimulationData

logger = logging.getLogger(__name__)

FIELDS = ("e1", "e2", "e3", "b1", "b2", "b3")

# Default averaging cells (first, last) across the field direction
INTEGRAL_CELLS = {"1": (2, 2), "2": (0, 9)}


class FieldAnalyzer:
    def __init__(self, data: SimulationData, config: Config):
        self.data = data
        self.config = config
        self.context = data.context
        self.frame = AnalysisFrame(self.context, config)
        self.scaling = self.frame.scaling
        self.limits = self.frame.limits

    @staticmethod
    def _check_field(field: str) -> str:
        name = field.lower()
        if name not in FIELDS:
            raise ConfigurationError(f"'{field}' is not a recognised field.")
        return name

    def field_factor(self, field: str) -> tuple[float, str]:
        """Scale factor and unit for a field component."""
        name = self._check_field(field)
        if self.scaling.units != "SI":
            return 1.0, "E_0" if name.startswith("e") else "B_0"
        if name.startswith("e"):
            return self.context.e0, "V/m"
        return self.context.b0, "T"

    def density2d(self, dump: int, field: str) -> DensityResult:
        name = self._check_field(field)
        fac, _ = self.field_factor(name)
        grid = self.data.read_grid(dump, "FLD", name)
        x1_axis = box_axis(self.context, self.scaling, 0)
        x2_axis = box_axis(self.context, self.scaling, 1)

        if self.context.cylindrical:
            # Azimuthal components change sign across the axis
            mirrored = -grid[:, ::-1] if name.endswith("3") else grid[:, ::-1]
            grid = np.concatenate((mirrored, grid), axis=1)
            x2_axis = mirror_axis(x2_axis)
        data = np.transpose(grid)

        x2_lo, x2_hi = self.limits.scaled(self.scaling, 1)
        i1 = self.frame.x1_slice(x1_axis)
        i2 = slice(nearest_index(x2_axis, x2_lo), nearest_index(x2_axis, x2_hi) + 1)

        return DensityResult(data[i2, i1] * fac, x1_axis[i1], x2_axis[i2], self.context.z_position(dump))

    def lineout(
        self, dump: int, field: str, start: Optional[int] = None, average: Optional[int] = None
    ) -> LineoutResult:
        """Field along x1 averaged over ``average`` x2 cells from cell ``start``."""
        name = self._check_field(field)
        fac, _ = self.field_factor(name)
        start = int(start if start is not None else self.config.LINEOUT_START)
        average = max(1, int(average if average is not None else self.config.LINEOUT_AVERAGE))

        grid = self.data.read_grid(dump, "FLD", name)
        x1_axis = box_axis(self.context, self.scaling, 0)
        x2_axis = box_axis(self.context, self.scaling, 1)
        if not 0 <= start < x2_axis.size:
            raise ConfigurationError(f"Lineout start cell {start} is outside 0-{x2_axis.size - 1}")
        end = min(start + average, x2_axis.size)

        i1 = self.frame.x1_slice(x1_axis)
        data = np.mean(grid[i1, start:end], axis=1) * fac

        fac1 = self.scaling.axis_fac[0]
        return LineoutResult(
            data,
            x1_axis[i1],
            (self.context.box_min[0] * fac1, self.context.box_max[0] * fac1),
            (float(x2_axis[start]), float(x2_axis[end - 1])),
            self.context.z_position(dump),
        )

    def integral(
        self,
        field: str,
        start: Union[str, int] = "pstart",
        stop: Union[str, int] = "end",
        cells: Optional[Sequence[int]] = None,
    ) -> FieldIntegralResult:
        """
        Longitudinal or transverse field, averaged across ``cells`` (inclusive
        cell range perpendicular to the field) at every dump, and its running
        trapezoid integral over the propagation distance.
        """
        name = self._check_field(field)
        direction = name[-1]
        if direction not in INTEGRAL_CELLS:
            raise ConfigurationError(f"Field integral is not defined for '{field}'")
        fac, _ = self.field_factor(name)
        i_start, i_stop = self.data.dump_range(start, stop)

        axis = 0 if direction == "1" else 1
        across = 1 - axis
        v_axis = box_axis(self.context, self.scaling, axis)
        n_across = self.context.box_cells[across]
        first, last = INTEGRAL_CELLS[direction] if cells is None else (int(cells[0]), int(cells[-1]))
        first = min(max(first, 0), n_across - 1)
        last = min(max(last, first), n_across - 1)

        v_slice = self.frame.x1_slice(v_axis) if axis == 0 else self.frame.x2_slice(v_axis)
        v_range = (float(v_axis[0]), float(v_axis[-1]))
        v_axis = v_axis[v_slice]

        t_axis = self.context.time_axis(i_start, i_stop)
        energy = np.zeros((v_axis.size, t_axis.size))
        for k, dump in enumerate(range(i_start, i_stop + 1)):
            grid = self.data.read_grid(dump, "FLD", name)
            if axis == 0:
                energy[:, k] = np.mean(grid[v_slice, first:last + 1], axis=1)
            else:
                energy[:, k] = np.mean(grid[first:last + 1, v_slice], axis=0)

        # Dumps are one time_factor apart, converted to metres
        step = self.context.time_factor * self.context.length_factor
        integral = cumulative_trapezoid(energy, axis=1, initial=0) * fac * step
        t_span = float(t_axis[-1] - t_axis[0])
        logger.debug("Field integral %s: dumps %d-%d, cells %d-%d", name, i_start, i_stop, first, last)

        return FieldIntegralResult(
            energy * fac,
            integral,
            1.0 / t_span if t_span > 0 else 0.0,
            v_axis,
            t_axis,
            self.scaling.axis_units[axis],
            "m",
            (i_start, i_stop),
            v_range,
        )
