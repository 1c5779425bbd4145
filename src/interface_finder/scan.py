from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable

import numpy as np
from numpy.typing import NDArray

from .decision import Decision, DecisionSource, PassKind, allowed_decisions
from .diagnostics import DiagnosticsSink, PassRecord, RetryRecord
from .errors import DeviceUnresponsiveError, ExposureUnreachableError, FrameTimeoutError, ScanCancelledError
from .exposure import ExposureState, ExposureVerdict, adjusted_exposure_ms, evaluate_exposure
from .interfaces import CameraInterface, Image2D, StageInterface
from .locator import InterfaceEstimate, locate_interface
from .plan import ScanPlan, build_scan_plan
from .slice_metric import above_threshold_sum, batch_threshold, max_brightness, prepare_slice

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ScanConfig:
    # Coarse pass: total sweep and step, in nm. range_nm must be a multiple of the step.
    range_nm: float = 2000.0
    coarse_step_nm: float = 50.0
    # Fine pass around the coarse result.
    fine_range_nm: float = 400.0
    fine_step_nm: float = 10.0
    # Starting exposure; assumes an OD2 filter in the beam path.
    exposure_ms: float = 3.5
    # Window the batch-wide brightness maximum must fall in (raw 8-bit counts).
    min_brightness: float = 80.0
    max_brightness: float = 200.0
    # Fraction of the batch maximum used as the per-pixel cutoff.
    threshold_factor: float = 0.6
    # Fixed wait after every stage move.
    settle_s: float = 0.05
    # Noisy border removed from every frame before measuring.
    edge_margin_px: int = 5
    # Colour plane of RGB frames to evaluate (2 = blue). Ignored for mono frames.
    colour_channel: int | None = 2
    # Rejected sweeps tolerated per pass before giving up; None retries forever.
    max_exposure_retries: int | None = 10
    frame_timeout_s: float = 5.0
    frame_poll_s: float = 0.001
    # Keep every cropped slice image in the diagnostics records.
    retain_images: bool = False

    def validate(self) -> None:
        if not 0.0 < self.threshold_factor <= 1.0:
            raise ValueError("threshold_factor must be in (0.0, 1.0]")
        if self.exposure_ms <= 0:
            raise ValueError("exposure_ms must be > 0")
        if self.min_brightness > self.max_brightness:
            raise ValueError("min_brightness must be <= max_brightness")
        if self.settle_s < 0:
            raise ValueError("settle_s must be >= 0")
        if self.edge_margin_px < 0:
            raise ValueError("edge_margin_px must be >= 0")
        if self.max_exposure_retries is not None and self.max_exposure_retries < 0:
            raise ValueError("max_exposure_retries must be >= 0 when provided")
        if self.frame_timeout_s <= 0:
            raise ValueError("frame_timeout_s must be > 0")
        if self.frame_poll_s < 0:
            raise ValueError("frame_poll_s must be >= 0")
        # Raises ValueError for inconsistent range/step pairs.
        self.coarse_plan()
        self.fine_plan()

    def coarse_plan(self) -> ScanPlan:
        return build_scan_plan(self.range_nm, self.coarse_step_nm)

    def fine_plan(self) -> ScanPlan:
        return build_scan_plan(self.fine_range_nm, self.fine_step_nm)

    def plan_for(self, pass_kind: PassKind) -> ScanPlan:
        return self.coarse_plan() if pass_kind is PassKind.COARSE else self.fine_plan()


@dataclass(slots=True, eq=False)
class SliceSample:
    offset_nm: float
    position_nm: float
    # Stage readback after the move to this slice settled.
    measured_position_nm: float
    image: Image2D
    max_brightness: float
    acquisition_s: float


@dataclass(slots=True, eq=False)
class SweepBatch:
    """Slices of one sweep, in plan order, and where the sweep started."""

    start_nm: float
    plan: ScanPlan
    samples: list[SliceSample] = field(default_factory=list)

    @property
    def positions_nm(self) -> NDArray[np.float64]:
        return self.plan.absolute_positions(self.start_nm)

    @property
    def measured_positions_nm(self) -> NDArray[np.float64]:
        return np.array([s.measured_position_nm for s in self.samples], dtype=float)

    @property
    def maxima(self) -> NDArray[np.float64]:
        return np.array([s.max_brightness for s in self.samples], dtype=float)

    @property
    def acquisition_s(self) -> NDArray[np.float64]:
        return np.array([s.acquisition_s for s in self.samples], dtype=float)

    @property
    def images(self) -> list[Image2D]:
        return [s.image for s in self.samples]


@dataclass(slots=True)
class SweepRetry:
    """A sweep rejected for its brightness; exposure has already been corrected."""

    verdict: ExposureVerdict
    previous_exposure_ms: float
    exposure_ms: float
    max_brightness: float


SweepOutcome = InterfaceEstimate | SweepRetry


class ScanState(str, Enum):
    COARSE_SCANNING = "coarse scanning"
    COARSE_AWAITING_DECISION = "coarse awaiting decision"
    FINE_SCANNING = "fine scanning"
    FINE_AWAITING_DECISION = "fine awaiting decision"
    DONE = "done"


_TRANSITIONS: dict[tuple[ScanState, Decision], ScanState] = {
    (ScanState.COARSE_AWAITING_DECISION, Decision.REPEAT): ScanState.COARSE_SCANNING,
    (ScanState.COARSE_AWAITING_DECISION, Decision.FINE_SCAN): ScanState.FINE_SCANNING,
    (ScanState.COARSE_AWAITING_DECISION, Decision.EXIT): ScanState.DONE,
    (ScanState.FINE_AWAITING_DECISION, Decision.REPEAT): ScanState.FINE_SCANNING,
    (ScanState.FINE_AWAITING_DECISION, Decision.EXIT): ScanState.DONE,
}


_AWAITING_DECISION = {
    PassKind.COARSE: ScanState.COARSE_AWAITING_DECISION,
    PassKind.FINE: ScanState.FINE_AWAITING_DECISION,
}

def next_state(state: ScanState, decision: Decision) -> ScanState:
    try:
        return _TRANSITIONS[(state, decision)]
    except KeyError:
        raise ValueError(f"Decision {decision.value!r} is not valid in state {state.value!r}") from None


@dataclass(slots=True)
class InterfaceSearchResult:
    final: InterfaceEstimate
    coarse_estimates: list[InterfaceEstimate]
    fine_estimates: list[InterfaceEstimate]
    transitions: list[ScanState]

    @property
    def fine_scanned(self) -> bool:
        return bool(self.fine_estimates)


class InterfaceScanController:
    """Coarse-to-fine Z sweep that parks the stage on the glass/resist interface.

    Each sweep steps the stage through a symmetric plan around the current
    position, grabbing one frame per step:
    1) Frames are cropped and reduced to their brightness maximum.
    2) If the brightest slice falls outside the exposure window, exposure is
       rescaled, the stage returns to the start and the sweep is rejected.
    3) Otherwise each slice is scored by the summed intensity of pixels above
       ``threshold_factor * batch maximum`` and the stage moves to the best one.
    """

    def __init__(
        self,
        camera: CameraInterface,
        stage: StageInterface,
        config: ScanConfig | None = None,
        decision_source: DecisionSource | None = None,
        diagnostics: DiagnosticsSink | None = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        cancel_event: threading.Event | None = None,
    ) -> None:
        self._camera = camera
        self._stage = stage
        self._config = config or ScanConfig()
        self._config.validate()
        self._decision_source = decision_source
        self._diagnostics = diagnostics
        self._sleep = sleep
        self._clock = clock
        self._cancel_event = cancel_event if cancel_event is not None else threading.Event()
        self._exposure = ExposureState(
            exposure_ms=self._config.exposure_ms,
            min_brightness=self._config.min_brightness,
            max_brightness=self._config.max_brightness,
        )
        self._exposure_applied = False
        self._stage_trace: list[tuple[float, float]] = []

    @property
    def config(self) -> ScanConfig:
        return self._config

    @property
    def exposure(self) -> ExposureState:
        return self._exposure

    @property
    def stage_trace_nm(self) -> list[tuple[float, float]]:
        """(commanded, measured) stage position after every settled move of the current run."""
        return list(self._stage_trace)

    def cancel(self) -> None:
        """Ask a running search to stop at its next step or frame poll."""
        self._cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    def _check_cancelled(self) -> None:
        if self._cancel_event.is_set():
            raise ScanCancelledError("Interface search cancelled")

    def apply_exposure(self) -> None:
        self._camera.configure_exposure(self._exposure.exposure_ms)
        self._exposure_applied = True

    def _read_position(self) -> float:
        try:
            z_nm = self._stage.get_z_nm()
        except (OSError, TimeoutError) as exc:
            raise DeviceUnresponsiveError(f"Stage did not report its position: {exc}") from exc
        if z_nm is None or not math.isfinite(z_nm):
            raise DeviceUnresponsiveError(f"Stage reported an invalid position: {z_nm!r}")
        return float(z_nm)

    def _move_and_settle(self, target_nm: float) -> float:
        """Move, wait for the stage to settle and return where it actually is."""
        self._stage.move_z_nm(float(target_nm))
        if self._config.settle_s > 0:
            self._sleep(self._config.settle_s)
        measured_nm = self._read_position()
        self._stage_trace.append((float(target_nm), measured_nm))
        return measured_nm

    def _wait_for_frame(self) -> float:
        t0 = self._clock()
        deadline = t0 + self._config.frame_timeout_s
        while not self._camera.frame_ready():
            self._check_cancelled()
            if self._clock() >= deadline:
                raise FrameTimeoutError(
                    f"Camera did not deliver a frame within {self._config.frame_timeout_s:g} s"
                )
            self._sleep(self._config.frame_poll_s)
        return self._clock() - t0

    def acquire_batch(self, plan: ScanPlan) -> SweepBatch:
        """Step through ``plan`` around the current position, one frame per step.

        The move to step i+1 is issued once frame i has been captured, before it
        is read back from the camera.
        """
        start_nm = self._read_position()
        batch = SweepBatch(start_nm=start_nm, plan=plan)
        targets = batch.positions_nm
        offsets = plan.offsets_nm

        logger.info("Moving to %+.0f nm", offsets[0])
        measured_nm = self._move_and_settle(targets[0])

        n_steps = len(plan)
        for idx in range(n_steps):
            self._check_cancelled()
            slice_measured_nm = measured_nm
            logger.debug("Imaging at %+.0f nm", offsets[idx])
            self._camera.trigger()
            acquisition_s = self._wait_for_frame()

            if idx + 1 < n_steps:
                measured_nm = self._move_and_settle(targets[idx + 1])

            image = prepare_slice(
                self._camera.fetch_frame(),
                channel=self._config.colour_channel,
                margin_px=self._config.edge_margin_px,
            )
            batch.samples.append(
                SliceSample(
                    offset_nm=float(offsets[idx]),
                    position_nm=float(targets[idx]),
                    measured_position_nm=slice_measured_nm,
                    image=image,
                    max_brightness=max_brightness(image),
                    acquisition_s=acquisition_s,
                )
            )
        return batch

    def run_sweep(
        self,
        plan: ScanPlan,
        pass_kind: PassKind = PassKind.COARSE,
        *,
        attempt: int = 1,
    ) -> SweepOutcome:
        if not self._exposure_applied:
            self.apply_exposure()

        batch = self.acquire_batch(plan)
        maxima = batch.maxima
        peak = float(maxima.max())
        exposure_ms = self._exposure.exposure_ms

        verdict = evaluate_exposure(maxima, self._exposure)
        if verdict is not ExposureVerdict.OK:
            new_exposure_ms = adjusted_exposure_ms(verdict, exposure_ms)
            self._exposure.exposure_ms = new_exposure_ms
            self.apply_exposure()
            logger.warning(
                "Maximum brightness %s (%.0f), change exposure time from %.4g ms to %.4g ms.",
                verdict.value,
                peak,
                exposure_ms,
                new_exposure_ms,
            )
            logger.info("Moving back to %.0f nm", batch.start_nm)
            self._move_and_settle(batch.start_nm)
            if self._diagnostics is not None:
                self._diagnostics.record_retry(
                    RetryRecord(
                        pass_kind=pass_kind,
                        attempt=attempt,
                        verdict=verdict,
                        maxima=maxima,
                        measured_positions_nm=batch.measured_positions_nm,
                        previous_exposure_ms=exposure_ms,
                        exposure_ms=new_exposure_ms,
                    )
                )
            return SweepRetry(
                verdict=verdict,
                previous_exposure_ms=exposure_ms,
                exposure_ms=new_exposure_ms,
                max_brightness=peak,
            )

        threshold = batch_threshold(maxima, self._config.threshold_factor)
        scores = np.array([above_threshold_sum(s.image, threshold) for s in batch.samples], dtype=float)
        idx = locate_interface(scores)
        positions = batch.positions_nm
        offset_nm = float(plan.offsets_nm[idx])
        position_nm = float(positions[idx])

        logger.info("Moving to interface at %+.0f nm. Setting as new 0 nm position.", offset_nm)
        self._move_and_settle(position_nm)

        estimate = InterfaceEstimate(
            pass_kind=pass_kind,
            index=idx,
            offset_nm=offset_nm,
            position_nm=position_nm,
            start_nm=batch.start_nm,
            threshold=threshold,
            scores=scores,
            max_brightness=peak,
            exposure_ms=exposure_ms,
        )
        if self._diagnostics is not None:
            self._diagnostics.record_pass(
                PassRecord(
                    pass_kind=pass_kind,
                    exposure_ms=exposure_ms,
                    start_nm=batch.start_nm,
                    offsets_nm=plan.offsets_nm,
                    positions_nm=positions,
                    measured_positions_nm=batch.measured_positions_nm,
                    maxima=maxima,
                    acquisition_s=batch.acquisition_s,
                    threshold=threshold,
                    scores=scores,
                    interface_index=idx,
                    interface_offset_nm=offset_nm,
                    interface_position_nm=position_nm,
                    images=batch.images if self._config.retain_images else None,
                )
            )
        return estimate

    def run_pass(self, plan: ScanPlan, pass_kind: PassKind = PassKind.COARSE) -> InterfaceEstimate:
        """Repeat the sweep at the same start position until exposure is acceptable."""
        limit = self._config.max_exposure_retries
        retries = 0
        while True:
            outcome = self.run_sweep(plan, pass_kind, attempt=retries + 1)
            if isinstance(outcome, InterfaceEstimate):
                return outcome
            retries += 1
            if limit is not None and retries > limit:
                raise ExposureUnreachableError(
                    f"{pass_kind.value} scan still {outcome.verdict.value} after {retries} "
                    f"exposure correction(s); last exposure {outcome.exposure_ms:.4g} ms, "
                    f"peak brightness {outcome.max_brightness:.0f} outside "
                    f"[{self._exposure.min_brightness:g}, {self._exposure.max_brightness:g}]"
                )

    def find_interface(self, decision_source: DecisionSource | None = None) -> InterfaceSearchResult:
        source = decision_source if decision_source is not None else self._decision_source
        if source is None:
            raise ValueError("A decision source is required to review completed passes")

        plans = {PassKind.COARSE: self._config.coarse_plan(), PassKind.FINE: self._config.fine_plan()}
        estimates: dict[PassKind, list[InterfaceEstimate]] = {PassKind.COARSE: [], PassKind.FINE: []}
        self._stage_trace.clear()

        state = ScanState.COARSE_SCANNING
        transitions = [state]
        logger.info("Starting interface finder...")
        while True:
            pass_kind = PassKind.COARSE if state is ScanState.COARSE_SCANNING else PassKind.FINE
            last = self.run_pass(plans[pass_kind], pass_kind)
            estimates[pass_kind].append(last)
            state = _AWAITING_DECISION[pass_kind]
            transitions.append(state)

            decision = source.decide(pass_kind, last)
            if decision not in allowed_decisions(pass_kind):
                raise ValueError(f"Decision {decision.value!r} is not allowed after a {pass_kind.value} pass")
            state = next_state(state, decision)
            transitions.append(state)
            if state is ScanState.DONE:
                break
            if state is ScanState.FINE_SCANNING:
                logger.info("Starting fine scan...")

        logger.info("Interface found at %.0f nm", last.position_nm)
        return InterfaceSearchResult(
            final=last,
            coarse_estimates=estimates[PassKind.COARSE],
            fine_estimates=estimates[PassKind.FINE],
            transitions=transitions,
        )
