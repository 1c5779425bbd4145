from __future__ import annotations

from dataclasses import dataclass, field
from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from .decision import PassKind
from .exposure import ExposureVerdict
from .interfaces import Image2D


@dataclass(slots=True, eq=False)
class PassRecord:
    """Everything measured during one accepted sweep, for offline inspection."""

    pass_kind: PassKind
    exposure_ms: float
    start_nm: float
    offsets_nm: NDArray[np.float64]
    positions_nm: NDArray[np.float64]
    measured_positions_nm: NDArray[np.float64]
    maxima: NDArray[np.float64]
    acquisition_s: NDArray[np.float64]
    threshold: float
    scores: NDArray[np.float64]
    interface_index: int
    interface_offset_nm: float
    interface_position_nm: float
    images: list[Image2D] | None = None

    @property
    def position_error_nm(self) -> NDArray[np.float64]:
        """Measured minus commanded stage position for every slice."""
        return self.measured_positions_nm - self.positions_nm

    @property
    def interface_image(self) -> Image2D | None:
        if self.images is None:
            return None
        return self.images[self.interface_index]


@dataclass(slots=True, eq=False)
class RetryRecord:
    pass_kind: PassKind
    attempt: int
    verdict: ExposureVerdict
    maxima: NDArray[np.float64]
    measured_positions_nm: NDArray[np.float64]
    previous_exposure_ms: float
    exposure_ms: float


class DiagnosticsSink(Protocol):
    """Observer for completed and rejected sweeps. Never affects the search."""

    def record_pass(self, record: PassRecord) -> None:
        ...

    def record_retry(self, record: RetryRecord) -> None:
        ...


@dataclass
class DiagnosticsRecorder:
    """In-memory diagnostics collector kept across repeated passes."""

    passes: list[PassRecord] = field(default_factory=list)
    retries: list[RetryRecord] = field(default_factory=list)
    # Exposure of every sweep in acquisition order, rejected sweeps included.
    exposure_timeline_ms: list[float] = field(default_factory=list)

    def record_pass(self, record: PassRecord) -> None:
        self.passes.append(record)
        self.exposure_timeline_ms.append(record.exposure_ms)

    def record_retry(self, record: RetryRecord) -> None:
        self.retries.append(record)
        self.exposure_timeline_ms.append(record.previous_exposure_ms)

    def _passes_of(self, pass_kind: PassKind | None) -> list[PassRecord]:
        if pass_kind is None:
            return list(self.passes)
        return [p for p in self.passes if p.pass_kind is pass_kind]

    def interface_offsets(self, pass_kind: PassKind | None = None) -> list[float]:
        return [p.interface_offset_nm for p in self._passes_of(pass_kind)]

    def max_brightness_history(self, pass_kind: PassKind) -> NDArray[np.float64]:
        """Per-slice brightness maxima, one row per accepted pass of this kind."""
        records = self._passes_of(pass_kind)
        if not records:
            return np.empty((0, 0))
        return np.vstack([p.maxima for p in records])
