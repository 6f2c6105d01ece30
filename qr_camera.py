"""
Camera path: poll the live video frame at a fixed cadence until a QR code decodes.

The capture device is owned by a CameraScanner for as long as it is open and
is released on every way out (success, cancel, timeout, error).
"""

import logging
import time

import cv2

from qr_config import ScanConfig
from qr_decode import decode
from qr_errors import CameraUnavailable
from qr_types import PixelBuffer

logger = logging.getLogger(__name__)


def _cancelled(cancel):
    if cancel is None:
        return False
    if hasattr(cancel, 'is_set'):
        return cancel.is_set()
    return bool(cancel())


class CameraScanner:
    """Scoped owner of one cv2.VideoCapture device."""

    def __init__(self, source=0, config=None, capture_factory=cv2.VideoCapture,
                 sleep=time.sleep, clock=time.monotonic):
        self.source = source
        self.config = config or ScanConfig()
        self.config.validate()
        self._factory = capture_factory
        self._sleep = sleep
        self._clock = clock
        self._capture = None

    @property
    def is_open(self):
        return self._capture is not None

    def open(self):
        if self._capture is not None:
            return self
        capture = self._factory(self.source)
        if not capture.isOpened():
            capture.release()
            raise CameraUnavailable(f"Unable to access camera {self.source!r}")
        self._capture = capture
        logger.info("[CAMERA] Opened source %r, polling every %d ms", self.source, self.config.poll_interval_ms)
        return self

    def close(self):
        if self._capture is not None:
            self._capture.release()
            self._capture = None
            logger.info("[CAMERA] Released source %r", self.source)

    def __enter__(self):
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def grab(self):
        """Most recent frame, or None if the device did not deliver one."""
        if self._capture is None:
            raise CameraUnavailable("Camera is not open")
        ok, frame = self._capture.read()
        return frame if ok and frame is not None else None

    def poll_once(self):
        """One pipeline pass over the current frame. None if there was no frame."""
        frame = self.grab()
        if frame is None:
            logger.debug("[CAMERA] No frame from source %r", self.source)
            return None
        try:
            buffer = PixelBuffer.from_array(frame)
        except ValueError as e:
            logger.warning("[CAMERA] Unusable frame from source %r: %s", self.source, e)
            return None
        result = decode(buffer, self.config)
        if not result.ok:
            logger.debug("[CAMERA] Frame skipped: %s", result.reason)
        return result

    def scan(self, cancel=None, timeout=None):
        """
        Poll until a frame decodes; return its DecodeResult.

        `cancel` is a threading.Event or a callable returning True to stop.
        Returns None on cancellation or once `timeout` seconds have passed.
        """
        interval = self.config.poll_interval
        deadline = None if timeout is None else self._clock() + timeout
        while not _cancelled(cancel):
            tick = self._clock()
            result = self.poll_once()
            if result is not None and result.ok:
                logger.info("[CAMERA] Decoded %d characters (version %d, EC %s)",
                            len(result.text), result.version, result.ec_level)
                return result
            now = self._clock()
            if deadline is not None and now >= deadline:
                logger.info("[CAMERA] No QR code within %.1fs", timeout)
                return None
            remaining = interval - (now - tick)
            if remaining > 0:
                self._sleep(remaining)
        logger.info("[CAMERA] Scan cancelled")
        return None


def scan_camera(source=0, config=None, cancel=None, timeout=None, **kwargs):
    """Open the camera, scan until success/cancel/timeout, always release it."""
    with CameraScanner(source, config, **kwargs) as scanner:
        return scanner.scan(cancel=cancel, timeout=timeout)


def camera_available(source=0, capture_factory=cv2.VideoCapture):
    capture = capture_factory(source)
    try:
        return bool(capture.isOpened())
    finally:
        capture.release()
