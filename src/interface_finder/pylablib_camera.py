from __future__ import annotations

from typing import Any

import numpy as np

from .interfaces import CameraInterface
from .slice_metric import Roi, to_intensity_array


class PylablibCamera(CameraInterface):
    """Adapter exposing a pylablib camera object through ``CameraInterface``.

    Triggering uses ``send_software_trigger`` when the backend offers it and
    otherwise falls back to a blocking ``snap``; readiness is polled with
    ``get_new_images_range``.
    """

    def __init__(self, camera: Any, roi: Roi | None = None) -> None:
        self._camera = camera
        self._roi = roi
        self._snapped: Any | None = None

    @property
    def camera(self) -> Any:
        return self._camera

    def start(self) -> None:
        if self._roi is not None:
            set_roi = getattr(self._camera, "set_roi", None)
            if callable(set_roi):
                r = self._roi
                set_roi(r.x, r.x + r.width, r.y, r.y + r.height)
        if callable(getattr(self._camera, "send_software_trigger", None)):
            setup = getattr(self._camera, "set_trigger_mode", None)
            if callable(setup):
                setup("software")
            start = getattr(self._camera, "start_acquisition", None)
            if callable(start):
                start()

    def stop(self) -> None:
        stop = getattr(self._camera, "stop_acquisition", None)
        if callable(stop):
            stop()
        self._snapped = None

    def configure_exposure(self, exposure_ms: float) -> None:
        # pylablib takes exposure in seconds.
        self._camera.set_exposure(exposure_ms / 1000.0)

    def trigger(self) -> None:
        send = getattr(self._camera, "send_software_trigger", None)
        if callable(send):
            send()
            return
        snap = getattr(self._camera, "snap", None)
        if not callable(snap):
            raise AttributeError("pylablib camera offers neither send_software_trigger nor snap")
        self._snapped = snap()

    def frame_ready(self) -> bool:
        if self._snapped is not None:
            return True
        new_range = getattr(self._camera, "get_new_images_range", None)
        if not callable(new_range):
            return False
        return new_range() is not None

    def fetch_frame(self) -> np.ndarray:
        if self._snapped is not None:
            frame, self._snapped = self._snapped, None
        else:
            frame = self._camera.read_newest_image()
        if frame is None:
            raise RuntimeError("pylablib camera returned no frame")
        return to_intensity_array(frame)


def create_pylablib_camera(camera_kind: str, roi: Roi | None = None, **camera_kwargs: Any) -> PylablibCamera:
    """Open an ORCA or Andor camera through pylablib.

    camera_kind: "orca" | "andor"
    """

    kind = camera_kind.strip().lower()
    try:
        if kind == "orca":
            from pylablib.devices.Hamamatsu import DCAMCamera

            camera = DCAMCamera(**camera_kwargs)
        elif kind == "andor":
            from pylablib.devices.Andor import AndorSDK2Camera

            camera = AndorSDK2Camera(**camera_kwargs)
        else:
            raise ValueError("camera_kind must be either 'orca' or 'andor'")
    except Exception as exc:
        raise RuntimeError(
            "Failed to initialize pylablib camera backend. Ensure pylablib and"
            " vendor drivers are installed on the microscope PC."
        ) from exc

    return PylablibCamera(camera=camera, roi=roi)
