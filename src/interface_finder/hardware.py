from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .interfaces import CameraInterface, StageInterface


class NotConnectedError(RuntimeError):
    pass


class SimulatedStage(StageInterface):
    """In-memory absolute Z stage. Every commanded target is kept in ``moves``."""

    def __init__(self, z_nm: float = 0.0) -> None:
        self._z_nm = float(z_nm)
        self.moves: list[float] = []

    def get_z_nm(self) -> float:
        return self._z_nm

    def move_z_nm(self, target_z_nm: float) -> None:
        self._z_nm = float(target_z_nm)
        self.moves.append(self._z_nm)

    def __enter__(self) -> "SimulatedStage":
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:
        pass


@dataclass(slots=True)
class SimulatedInterfaceScene:
    """Reflection of a focused laser spot off the glass/resist interface.

    Spot peak brightness follows a Gaussian axial profile centred on
    ``interface_nm`` and grows linearly with exposure until it clips at
    ``saturation``. The signal sits in one colour plane of an RGB frame.
    """

    interface_nm: float = 0.0
    axial_sigma_nm: float = 150.0
    counts_per_ms: float = 40.0
    spot_sigma_px: float = 2.5
    background: float = 2.0
    saturation: float = 255.0
    width: int = 48
    height: int = 48
    signal_channel: int = 2
    noise_std: float = 0.0
    seed: int | None = None

    def peak_brightness(self, z_nm: float, exposure_ms: float) -> float:
        dz = z_nm - self.interface_nm
        axial = float(np.exp(-0.5 * (dz / self.axial_sigma_nm) ** 2))
        return self.counts_per_ms * exposure_ms * axial

    def render(self, z_nm: float, exposure_ms: float, rng: np.random.Generator | None = None) -> np.ndarray:
        cy = (self.height - 1) / 2
        cx = (self.width - 1) / 2
        y, x = np.mgrid[0 : self.height, 0 : self.width]
        spot = np.exp(-(((x - cx) ** 2) + ((y - cy) ** 2)) / (2 * self.spot_sigma_px**2))
        signal = self.background + self.peak_brightness(z_nm, exposure_ms) * spot
        if self.noise_std > 0 and rng is not None:
            signal = signal + rng.normal(0.0, self.noise_std, size=signal.shape)

        frame = np.zeros((self.height, self.width, 3), dtype=float)
        frame[:, :, :] = self.background
        frame[:, :, self.signal_channel] = signal
        return np.clip(frame, 0.0, self.saturation)


class SimulatedCamera(CameraInterface):
    """Software-triggered camera imaging a :class:`SimulatedInterfaceScene`.

    The frame is exposed at trigger time from the current stage position and
    reported ready after ``ready_after_polls`` calls to :meth:`frame_ready`.
    """

    def __init__(
        self,
        stage: StageInterface,
        scene: SimulatedInterfaceScene | None = None,
        exposure_ms: float = 3.5,
        ready_after_polls: int = 1,
    ) -> None:
        self._stage = stage
        self._scene = scene or SimulatedInterfaceScene()
        self._exposure_ms = exposure_ms
        self._ready_after_polls = max(1, ready_after_polls)
        self._rng = np.random.default_rng(self._scene.seed)
        self._running = False
        self._pending: np.ndarray | None = None
        self._polls = 0
        self.triggered_at_nm: list[float] = []

    @property
    def exposure_ms(self) -> float:
        return self._exposure_ms

    def start(self) -> None:
        self._running = True

    def stop(self) -> None:
        self._running = False
        self._pending = None

    def __enter__(self) -> "SimulatedCamera":
        self.start()
        return self

    def __exit__(self, _exc_type, _exc, _tb) -> None:
        self.stop()

    def configure_exposure(self, exposure_ms: float) -> None:
        if exposure_ms <= 0:
            raise ValueError("exposure_ms must be > 0")
        self._exposure_ms = float(exposure_ms)

    def trigger(self) -> None:
        if not self._running:
            raise NotConnectedError("Simulated camera not started")
        z = self._stage.get_z_nm()
        self.triggered_at_nm.append(z)
        self._pending = self._scene.render(z_nm=z, exposure_ms=self._exposure_ms, rng=self._rng)
        self._polls = 0

    def frame_ready(self) -> bool:
        if self._pending is None:
            return False
        self._polls += 1
        return self._polls >= self._ready_after_polls

    def fetch_frame(self) -> np.ndarray:
        if not self._running:
            raise NotConnectedError("Simulated camera not started")
        if self._pending is None:
            raise RuntimeError("No frame captured; call trigger() first")
        frame, self._pending = self._pending, None
        return frame
