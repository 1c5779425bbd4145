from __future__ import annotations

from typing import Any, Protocol

import numpy as np
from numpy.typing import NDArray


Image2D = NDArray[np.float64]


class CameraInterface(Protocol):
    """Interface for a software-triggered camera cropped to the scan ROI."""

    def start(self) -> None:
        """Start acquisition."""

    def stop(self) -> None:
        """Stop acquisition."""

    def configure_exposure(self, exposure_ms: float) -> None:
        """Apply a new exposure time in milliseconds."""

    def trigger(self) -> None:
        """Request exactly one frame."""

    def frame_ready(self) -> bool:
        """Return True once the triggered frame has been captured."""

    def fetch_frame(self) -> Any:
        """Return the captured frame (2-D mono or H x W x C colour)."""


class StageInterface(Protocol):
    """Interface for an absolute Z stage controller."""

    def get_z_nm(self) -> float:
        """Read current stage Z in nanometres."""

    def move_z_nm(self, target_z_nm: float) -> None:
        """Command stage to a new absolute Z position in nanometres."""
