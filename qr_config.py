import codecs
import os
from dataclasses import dataclass, replace
from typing import Optional

DEFAULT_POLL_INTERVAL_MS = 500
DEFAULT_BYTE_ENCODING = 'utf-8'


@dataclass(frozen=True)
class ScanConfig:
    """
    Knobs of the scanner that are product choices rather than algorithm constants.

    The polling cadence only matters for the camera path. `byte_encoding` is used
    for byte-mode segments that are not preceded by an ECI designator.
    """

    poll_interval_ms: int = DEFAULT_POLL_INTERVAL_MS
    byte_encoding: str = DEFAULT_BYTE_ENCODING
    try_inverted: bool = True
    debug_dir: Optional[str] = None
    max_finder_candidates: int = 8

    def validate(self) -> None:
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be > 0")
        try:
            codecs.lookup(self.byte_encoding)
        except LookupError:
            raise ValueError(f"Unknown byte_encoding {self.byte_encoding!r}") from None
        if self.max_finder_candidates < 3:
            raise ValueError("max_finder_candidates must be >= 3")

    @property
    def poll_interval(self) -> float:
        return self.poll_interval_ms / 1000.0

    @classmethod
    def from_env(cls, environ=None):
        env = os.environ if environ is None else environ
        cfg = cls()
        if env.get('QR_POLL_INTERVAL_MS'):
            try:
                cfg = replace(cfg, poll_interval_ms=int(env['QR_POLL_INTERVAL_MS']))
            except ValueError:
                raise ValueError(f"QR_POLL_INTERVAL_MS is not an integer: {env['QR_POLL_INTERVAL_MS']!r}") from None
        if env.get('QR_BYTE_ENCODING'):
            cfg = replace(cfg, byte_encoding=env['QR_BYTE_ENCODING'])
        if env.get('QR_TRY_INVERTED'):
            cfg = replace(cfg, try_inverted=env['QR_TRY_INVERTED'].lower() not in ('0', 'false', 'no', 'off'))
        if env.get('QR_DEBUG_DIR'):
            cfg = replace(cfg, debug_dir=env['QR_DEBUG_DIR'])
        cfg.validate()
        return cfg
