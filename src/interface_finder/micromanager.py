"""Micro-Manager integration for interface-finder.

Drives the camera and the Z focus device through MMCore, either attached to a
running Micro-Manager GUI via the pycromanager bridge or, on request, through
a standalone pymmcore/MMCorePy core.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any

import numpy as np

from .interfaces import CameraInterface, StageInterface
from .slice_metric import to_intensity_array

logger = logging.getLogger(__name__)

NM_PER_UM = 1000.0


class MicroManagerStage(StageInterface):
    """Z stage adapter that goes through Micro-Manager's device layer.

    Micro-Manager reports stage positions in microns.
    """

    def __init__(
        self,
        core: Any,
        z_stage_name: str | None = None,
        wait_for_device: bool = True,
    ) -> None:
        self._core = core
        self._wait_for_device = wait_for_device
        self._z_name = z_stage_name or core.getFocusDevice()

    def get_z_nm(self) -> float:
        return float(self._core.getPosition(self._z_name)) * NM_PER_UM

    def move_z_nm(self, target_z_nm: float) -> None:
        self._core.setPosition(self._z_name, target_z_nm / NM_PER_UM)
        if self._wait_for_device:
            self._core.waitForDevice(self._z_name)


class MicroManagerCamera(CameraInterface):
    """Active Micro-Manager camera, one single-frame sequence per trigger."""

    def __init__(self, core: Any) -> None:
        self._core = core

    @property
    def core(self) -> Any:
        return self._core

    def start(self) -> None:
        # No-op: each trigger starts its own one-frame sequence.
        pass

    def stop(self) -> None:
        if self._core.isSequenceRunning():
            self._core.stopSequenceAcquisition()

    def configure_exposure(self, exposure_ms: float) -> None:
        self._core.setExposure(float(exposure_ms))

    def trigger(self) -> None:
        self._core.startSequenceAcquisition(1, 0.0, True)

    def frame_ready(self) -> bool:
        return int(self._core.getRemainingImageCount()) > 0

    def fetch_frame(self) -> np.ndarray:
        frame = self._core.popNextImage()
        pix = getattr(frame, "pix", None)
        if pix is not None:
            frame = pix
        pixels = np.asarray(frame)
        if pixels.ndim == 1:
            pixels = self._reshape_flat(pixels)

        if pixels.ndim == 3 and pixels.shape[2] == 4:
            # RGB32 as BGRA bytes; keep R, G, B.
            return to_intensity_array(pixels[:, :, 2::-1])
        if pixels.ndim == 2 and self._core.getNumberOfComponents() == 4:
            # RGB32 packed one pixel per uint32 (BGRA); unpack to R, G, B planes.
            packed = pixels.astype(np.uint32)
            planes = [(packed >> shift) & 0xFF for shift in (16, 8, 0)]
            return to_intensity_array(np.stack(planes, axis=-1))
        return to_intensity_array(pixels)

    def _reshape_flat(self, pixels: np.ndarray) -> np.ndarray:
        """The pycromanager bridge hands frames over as a flat pixel buffer."""
        height = int(self._core.getImageHeight())
        width = int(self._core.getImageWidth())
        n_pixels = height * width
        if n_pixels <= 0 or pixels.size % n_pixels != 0:
            raise ValueError(
                f"Frame of {pixels.size} values does not fit the {width}x{height} camera image"
            )
        n_channels = pixels.size // n_pixels
        if n_channels > 1:
            return pixels.reshape(height, width, n_channels)
        return pixels.reshape(height, width)


def _attach_bridge_core(host: str, port: int) -> Any | None:
    """Attach to the pycromanager bridge, first at host:port, then at its default."""
    try:
        from pycromanager import Core
    except ImportError:
        logger.debug("pycromanager is not installed")
        return None

    attempts = ((f"{host}:{port}", {"host": host, "port": port}), ("default bridge", {}))
    for label, kwargs in attempts:
        try:
            core = Core(**kwargs)
            # A dead bridge only fails on the first real call.
            core.getVersionInfo()
        except Exception:
            logger.debug("pycromanager %s unavailable", label, exc_info=True)
            continue
        logger.info("Attached to Micro-Manager through pycromanager %s", label)
        return core
    return None


def _load_standalone_core() -> Any | None:
    for module_name in ("pymmcore", "MMCorePy"):
        try:
            module = importlib.import_module(module_name)
            core = module.CMMCore()
        except Exception:
            logger.debug("%s.CMMCore unavailable", module_name, exc_info=True)
            continue
        logger.warning(
            "Using a standalone %s core; it is not attached to the Micro-Manager GUI "
            "and needs its own hardware configuration.",
            module_name,
        )
        return core
    return None


def create_micromanager_core(
    *,
    host: str = "localhost",
    port: int = 4827,
    allow_standalone_core: bool = False,
) -> Any:
    """Return an MMCore handle for the stage and camera adapters.

    The pycromanager bridge of a running Micro-Manager is preferred. A
    standalone pymmcore/MMCorePy core is only used when explicitly allowed.
    """
    core = _attach_bridge_core(host=host, port=port)
    if core is None and allow_standalone_core:
        core = _load_standalone_core()
    if core is not None:
        return core

    hint = "" if allow_standalone_core else " or pass --mm-allow-standalone-core to use pymmcore directly"
    raise RuntimeError(
        f"Could not reach Micro-Manager through pycromanager at {host}:{port} or its default bridge. "
        "Enable the server in Micro-Manager (Tools -> Options -> Run server on port)"
        f"{hint}."
    )
