from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np

from .interfaces import Image2D


@dataclass(slots=True)
class Roi:
    """Axis-aligned region of interest in sensor coordinates."""

    x: int
    y: int
    width: int
    height: int


def to_intensity_array(frame: Any) -> np.ndarray:
    """Convert a camera frame to a float array.

    Accepts numpy arrays, nested lists/tuples, and array-likes exposing
    ``tolist()``. Frames must be 2-D (mono) or 3-D (H x W x C colour).
    """

    if not isinstance(frame, np.ndarray) and hasattr(frame, "tolist") and callable(frame.tolist):
        frame = frame.tolist()
    if not isinstance(frame, (np.ndarray, list, tuple)):
        raise TypeError("Frame must be an array, a 2D list/tuple or expose tolist()")
    try:
        arr = np.asarray(frame, dtype=float)
    except ValueError as exc:
        raise ValueError("Frame rows must have equal length") from exc

    if arr.ndim not in (2, 3):
        raise ValueError(f"Frame must be 2D or 3D, got {arr.ndim} dimension(s)")
    if arr.size == 0:
        raise ValueError("Empty frame")
    return arr


def select_channel(frame: Any, channel: int | None) -> Image2D:
    """Return one colour plane of a frame; mono frames pass through."""
    arr = to_intensity_array(frame)
    if arr.ndim == 2:
        return arr
    if channel is None:
        raise ValueError("Colour frame requires a channel index")
    n_channels = arr.shape[2]
    if not 0 <= channel < n_channels:
        raise ValueError(f"channel {channel} out of range for frame with {n_channels} channel(s)")
    return arr[:, :, channel]


def crop_edges(image: Image2D, margin_px: int) -> Image2D:
    """Drop ``margin_px`` pixels from every border of the image.

    Sensor rows/columns at the ROI boundary carry unexplained noise, so they
    are removed before any brightness statistic is taken.
    """
    if margin_px < 0:
        raise ValueError("margin_px must be >= 0")
    if margin_px == 0:
        return image
    h, w = image.shape[:2]
    if h <= 2 * margin_px or w <= 2 * margin_px:
        raise ValueError(
            f"Edge margin of {margin_px} px leaves nothing of a {w}x{h} px image"
        )
    return image[margin_px : h - margin_px, margin_px : w - margin_px]


def prepare_slice(frame: Any, channel: int | None, margin_px: int) -> Image2D:
    return crop_edges(select_channel(frame, channel), margin_px)


def max_brightness(image: Image2D) -> float:
    return float(np.max(image))


def above_threshold_sum(image: Image2D, threshold: float) -> float:
    """Sum of all pixel values strictly greater than ``threshold``."""
    return float(image[image > threshold].sum())


def batch_threshold(maxima: Sequence[float], threshold_factor: float) -> float:
    if len(maxima) == 0:
        raise ValueError("Need at least one brightness maximum")
    return float(np.max(maxima)) * threshold_factor
