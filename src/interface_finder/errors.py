from __future__ import annotations


class InterfaceFinderError(RuntimeError):
    """Base class for failures that end an interface search."""


class DeviceUnresponsiveError(InterfaceFinderError):
    """A stage or camera stopped answering; there is no recovery path."""


class FrameTimeoutError(DeviceUnresponsiveError):
    """The camera did not report a captured frame within the frame timeout."""


class ExposureUnreachableError(InterfaceFinderError):
    """Exposure corrections did not bring the batch brightness into range."""


class ScanCancelledError(InterfaceFinderError):
    """The search was cancelled from another thread while it was running."""


class DecisionsExhaustedError(InterfaceFinderError):
    """A scripted run completed more passes than it had answers for."""
