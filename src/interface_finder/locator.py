from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

import numpy as np
from numpy.typing import NDArray

from .decision import PassKind

logger = logging.getLogger(__name__)


@dataclass(slots=True, eq=False)
class InterfaceEstimate:
    """Result of one accepted sweep.

    ``index`` addresses both the plan offsets (``offset_nm``, relative to the
    sweep's start position) and the absolute stage targets (``position_nm``).
    """

    pass_kind: PassKind
    index: int
    offset_nm: float
    position_nm: float
    start_nm: float
    threshold: float
    scores: NDArray[np.float64]
    max_brightness: float
    exposure_ms: float


def locate_interface(scores: Sequence[float]) -> int:
    """Return the index of the highest score; ties go to the first occurrence."""
    arr = np.asarray(scores, dtype=float)
    if arr.ndim != 1 or arr.size == 0:
        raise ValueError("scores must be a non-empty 1D sequence")
    idx = int(np.argmax(arr))
    if arr.size > 1 and np.all(arr == arr[0]):
        logger.debug("All %d interface scores equal %g; using first slice", arr.size, arr[0])
    return idx
