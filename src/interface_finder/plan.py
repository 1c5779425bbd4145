from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray


@dataclass(frozen=True, slots=True, eq=False)
class ScanPlan:
    """Symmetric set of Z offsets (nm) visited by one sweep.

    Offsets run from ``-range_nm / 2`` to ``+range_nm / 2`` in uniform steps,
    so a plan always holds ``range_nm / step_nm + 1`` positions with the
    starting position itself at the centre.
    """

    range_nm: float
    step_nm: float
    offsets_nm: NDArray[np.float64]

    def __len__(self) -> int:
        return int(self.offsets_nm.size)

    def absolute_positions(self, start_nm: float) -> NDArray[np.float64]:
        return float(start_nm) + self.offsets_nm


def build_scan_plan(range_nm: float, step_nm: float) -> ScanPlan:
    if range_nm <= 0:
        raise ValueError("range_nm must be > 0")
    if step_nm <= 0:
        raise ValueError("step_nm must be > 0")

    n_intervals = range_nm / step_nm
    rounded = round(n_intervals)
    if rounded < 1 or not math.isclose(n_intervals, rounded, rel_tol=0.0, abs_tol=1e-9):
        raise ValueError(
            f"range_nm={range_nm:g} must be an integer multiple of step_nm={step_nm:g}"
        )

    half = range_nm / 2.0
    offsets = np.linspace(-half, half, int(rounded) + 1)
    offsets.setflags(write=False)
    return ScanPlan(range_nm=float(range_nm), step_nm=float(step_nm), offsets_nm=offsets)
