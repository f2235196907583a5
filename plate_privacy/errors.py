from __future__ import annotations

from typing import Optional

PUBLIC_PROCESSING_ERROR = "image_processing_failed"


class PlatePrivacyError(Exception):
    """Base class for everything raised by this package."""


class DetectionError(PlatePrivacyError):
    """
    Detection-layer failure.

    Never reaches the upload caller: the pipeline turns it into "no regions".
    """


class InferenceError(DetectionError):
    """A loaded session failed on one call (or returned an unusable tensor)."""


class ModelUnavailable(InferenceError):
    """The local model could not be loaded for this process."""


class RemoteDetectionError(DetectionError):
    """The remote plate API failed, timed out or answered garbage."""


class ProcessingError(PlatePrivacyError):
    """Fatal for one image; the photo is rejected at upload time."""

    stage = "process"

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        super().__init__(message)
        if stage:
            self.stage = stage

    @property
    def public_message(self) -> str:
        # Never echo decoder/encoder internals back to the uploader.
        return PUBLIC_PROCESSING_ERROR


class DecodeError(ProcessingError):
    stage = "decode"


class EncodeError(ProcessingError):
    stage = "encode"
