"""Failure taxonomy of the QR decoding pipeline.

Every stage raises one of these; the orchestrator turns them into a
failed DecodeResult, so none of them ever reaches the host process.
"""


class DecodeError(Exception):
    """Base class for all decode failures."""


class InsufficientContrast(DecodeError):
    """Binarization could not establish a usable threshold."""


class NotFound(DecodeError):
    """No consistent set of three finder patterns."""


class GeometryInvalid(DecodeError):
    """Version out of range or degenerate perspective transform."""


class FormatInfoUnrecoverable(DecodeError):
    pass


class VersionInfoUnrecoverable(DecodeError):
    pass


class UncorrectableBlock(DecodeError):
    """A Reed-Solomon block has more errors than it can correct."""

    def __init__(self, message, block=None):
        super().__init__(message)
        self.block = block


class ImageUnreadable(DecodeError):
    """The uploaded file could not be decoded into pixels."""


class MalformedPayload(DecodeError):
    """Corrected bitstream is not a valid segment sequence."""


class CameraUnavailable(RuntimeError):
    """The video capture device could not be opened."""
