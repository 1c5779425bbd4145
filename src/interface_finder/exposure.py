from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np


DIM_EXPOSURE_FACTOR = 1.5
BRIGHT_EXPOSURE_FACTOR = 0.5


class ExposureVerdict(str, Enum):
    OK = "ok"
    TOO_DIM = "too dim"
    TOO_BRIGHT = "too bright"


@dataclass(slots=True)
class ExposureState:
    """Camera exposure plus the brightness window a batch maximum must hit.

    Bounds are calibrated against the camera's raw intensity scale (0-255 for
    an 8-bit channel). Only the scan controller mutates ``exposure_ms``.
    """

    exposure_ms: float
    min_brightness: float = 80.0
    max_brightness: float = 200.0

    def __post_init__(self) -> None:
        if self.exposure_ms <= 0:
            raise ValueError("exposure_ms must be > 0")
        if self.min_brightness > self.max_brightness:
            raise ValueError("min_brightness must be <= max_brightness")


def evaluate_exposure(maxima: Sequence[float], state: ExposureState) -> ExposureVerdict:
    """Decide whether a batch was exposed well enough to be evaluated.

    Only the global maximum matters. Values equal to either bound are
    accepted.
    """
    if len(maxima) == 0:
        raise ValueError("Need at least one brightness maximum")
    peak = float(np.max(maxima))
    if peak < state.min_brightness:
        return ExposureVerdict.TOO_DIM
    if peak > state.max_brightness:
        return ExposureVerdict.TOO_BRIGHT
    return ExposureVerdict.OK


def adjusted_exposure_ms(verdict: ExposureVerdict, exposure_ms: float) -> float:
    if verdict is ExposureVerdict.TOO_DIM:
        return exposure_ms * DIM_EXPOSURE_FACTOR
    if verdict is ExposureVerdict.TOO_BRIGHT:
        return exposure_ms * BRIGHT_EXPOSURE_FACTOR
    return exposure_ms
