"""Coarse-to-fine Z sweep locating the glass/photoresist interface for laser writing."""

from .decision import (
    ConsoleDecisionSource,
    Decision,
    DecisionSource,
    PassKind,
    ScriptedDecisionSource,
)
from .diagnostics import DiagnosticsRecorder, DiagnosticsSink, PassRecord, RetryRecord
from .errors import (
    DeviceUnresponsiveError,
    ExposureUnreachableError,
    FrameTimeoutError,
    DecisionsExhaustedError,
    InterfaceFinderError,
    ScanCancelledError,
)
from .exposure import ExposureState, ExposureVerdict, adjusted_exposure_ms, evaluate_exposure
from .hardware import NotConnectedError, SimulatedCamera, SimulatedInterfaceScene, SimulatedStage
from .interfaces import CameraInterface, StageInterface
from .locator import InterfaceEstimate, locate_interface
from .plan import ScanPlan, build_scan_plan
from .pylablib_camera import PylablibCamera, create_pylablib_camera
from .scan import (
    InterfaceScanController,
    InterfaceSearchResult,
    ScanConfig,
    ScanState,
    SliceSample,
    SweepBatch,
    SweepRetry,
)
from .slice_metric import Roi, above_threshold_sum, crop_edges, max_brightness, prepare_slice

__all__ = [
    "ConsoleDecisionSource",
    "Decision",
    "DecisionSource",
    "PassKind",
    "ScriptedDecisionSource",
    "DiagnosticsRecorder",
    "DiagnosticsSink",
    "PassRecord",
    "RetryRecord",
    "DeviceUnresponsiveError",
    "ExposureUnreachableError",
    "FrameTimeoutError",
    "DecisionsExhaustedError",
    "InterfaceFinderError",
    "ScanCancelledError",
    "ExposureState",
    "ExposureVerdict",
    "adjusted_exposure_ms",
    "evaluate_exposure",
    "NotConnectedError",
    "SimulatedCamera",
    "SimulatedInterfaceScene",
    "SimulatedStage",
    "CameraInterface",
    "StageInterface",
    "InterfaceEstimate",
    "locate_interface",
    "ScanPlan",
    "build_scan_plan",
    "PylablibCamera",
    "create_pylablib_camera",
    "InterfaceScanController",
    "InterfaceSearchResult",
    "ScanConfig",
    "ScanState",
    "SliceSample",
    "SweepBatch",
    "SweepRetry",
    "Roi",
    "above_threshold_sum",
    "crop_edges",
    "max_brightness",
    "prepare_slice",
]
