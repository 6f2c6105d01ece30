#!/usr/bin/env python3
"""
QR Code Decoder - Pure Python
Usage: python3 qr_decode.py <image_path> [--debug] [--verbose]
       python3 qr_decode.py --camera [--source=N] [--interval=MS] [--timeout=S]
"""

import logging
import os
import sys
from dataclasses import replace

import cv2
import numpy as np

from qr_binarize import binarize_buffer
from qr_blocks import decode_codewords
from qr_config import ScanConfig
from qr_detect import find_finder_patterns, finder_triples, solve_geometry
from qr_errors import CameraUnavailable, DecodeError, GeometryInvalid, ImageUnreadable, NotFound
from qr_format import decode_format, decode_version
from qr_matrix import read_codewords, unmask
from qr_payload import decode_payload
from qr_sample import pattern_score, read_format_bits, read_version_bits, sample_grid
from qr_types import DecodeResult, PixelBuffer

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = ScanConfig()
# Versions this far from the geometric estimate are sampled and scored too
MAX_VERSION_DRIFT = 1
# Finder triples tried before giving up on a frame
MAX_TRIPLE_ATTEMPTS = 6
# A grid sampled from noise matches about half of the finder and timing modules
MIN_PATTERN_SCORE = 0.75


# ============================================================================
# SINGLE SYMBOL
# ============================================================================

def _best_geometry(bitmap, tl, tr, bl):
    """Estimate the version, then keep whichever nearby version best matches the fixed patterns."""
    estimate = solve_geometry(bitmap, tl, tr, bl)
    candidates = [estimate]
    for drift in range(1, MAX_VERSION_DRIFT + 1):
        for v in (estimate.version - drift, estimate.version + drift):
            if 1 <= v <= 40:
                try:
                    candidates.append(solve_geometry(bitmap, tl, tr, bl, version=v))
                except GeometryInvalid:
                    continue

    best, best_grid, best_s = None, None, -1.0
    for geometry in candidates:
        grid = sample_grid(bitmap, geometry)
        s = pattern_score(grid)
        if s > best_s:
            best, best_grid, best_s = geometry, grid, s
    logger.debug("[DECODE] Version %d (estimate %d, pattern score %.2f)",
                 best.version, estimate.version, best_s)
    return best, best_grid, best_s


def decode_symbol(bitmap, tl, tr, bl, config=DEFAULT_CONFIG, trace=None):
    """Run geometry -> sampling -> format -> unmask -> RS -> payload for one finder triple."""
    trace = {} if trace is None else trace
    geometry, grid, score = _best_geometry(bitmap, tl, tr, bl)
    trace.update(geometry=geometry, grid=grid)
    if score < MIN_PATTERN_SCORE:
        raise NotFound(f"Sampled grid does not show finder and timing patterns (score {score:.2f})")

    if geometry.version >= 7:
        version = decode_version(*read_version_bits(grid))
        if version != geometry.version:
            logger.debug("[DECODE] Version info says %d, geometry said %d", version, geometry.version)
            geometry = solve_geometry(bitmap, tl, tr, bl, version=version)
            grid = sample_grid(bitmap, geometry)
            trace.update(geometry=geometry, grid=grid)

    fmt = decode_format(*read_format_bits(grid))
    version = geometry.version
    logger.debug("[DECODE] Version: %d, EC level: %s (mask %d)", version, fmt.ec_level, fmt.mask)
    unmasked = unmask(grid, fmt.mask, version)
    codewords = read_codewords(unmasked, version)
    trace.update(format=fmt, unmasked=unmasked, codewords=codewords)

    data = decode_codewords(codewords, version, fmt.ec_level)
    payload = decode_payload(data, version, config.byte_encoding)
    trace['text'] = payload.text
    return DecodeResult(payload.text, version, fmt.ec_level, fmt.mask,
                        payload.segments, payload.structured_append)


def _decode_bitmap(bitmap, config):
    try:
        patterns = find_finder_patterns(bitmap, config.max_finder_candidates)
        triples = finder_triples(patterns)
    except NotFound as e:
        return DecodeResult.failure(e)

    first_error, first_trace, errors = None, None, []
    for tl, tr, bl in triples[:MAX_TRIPLE_ATTEMPTS]:
        trace = {'bitmap': bitmap}
        try:
            result = decode_symbol(bitmap, tl, tr, bl, config, trace)
        except DecodeError as e:
            logger.debug("[DECODE] Finder triple failed: %s: %s", type(e).__name__, e)
            trace['error'] = e
            errors.append(e)
            if first_error is None:
                first_error, first_trace = e, trace
            continue
        _dump(config, trace)
        return result
    _dump(config, first_trace)
    if all(isinstance(e, (NotFound, GeometryInvalid)) for e in errors):
        # No triple framed anything that reads like a symbol
        return DecodeResult.failure(NotFound(f"No symbol behind {len(errors)} finder triple(s): {first_error}"))
    return DecodeResult.failure(first_error)


def _dump(config, trace):
    if config.debug_dir and trace:
        from qr_debug import save_debug_all
        save_debug_all(config.debug_dir, trace)


# ============================================================================
# MAIN
# ============================================================================

def decode(buffer, config=None):
    """PixelBuffer -> DecodeResult. Never raises for undecodable input."""
    config = config or DEFAULT_CONFIG
    try:
        bitmap = binarize_buffer(buffer)
    except DecodeError as e:
        _dump(config, {'error': e})
        return DecodeResult.failure(e)

    result = _decode_bitmap(bitmap, config)
    # Light-on-dark symbols: the dark-on-light failure is the one reported
    if not result.ok and config.try_inverted:
        inverted = _decode_bitmap(~bitmap, config)
        if inverted.ok:
            return inverted
    return result


def decode_image(image, config=None):
    """Decode a numpy / cv2 image (grey, BGR or BGRA)."""
    return decode(PixelBuffer.from_array(image), config)


def decode_upload(data, config=None):
    """Upload path: decode an encoded image file (PNG, JPEG, ...) exactly once."""
    image = None
    if data:
        try:
            image = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_COLOR)
        except cv2.error as e:
            logger.info("[DECODE] Image decoder rejected upload: %s", e)
    if image is None or image.size == 0:
        result = DecodeResult.failure(ImageUnreadable(f"Cannot decode {len(data or b'')} byte upload"))
    else:
        result = decode_image(image, config)
    if not result.ok:
        logger.info("[DECODE] Upload failed: %s (%s)", result.reason, result.error)
    return result


def decode_file(image_path, config=None):
    image = cv2.imread(image_path)
    if image is None:
        return DecodeResult.failure(ImageUnreadable(f"Cannot load {image_path}"))
    return decode_image(image, config)


def _flag_value(flags, name, default):
    for f in flags:
        if f.startswith(f'--{name}='):
            return f.split('=', 1)[1]
    return default


def main(argv=None):
    argv = sys.argv[1:] if argv is None else argv
    args = [a for a in argv if not a.startswith('--')]
    flags = [a for a in argv if a.startswith('--')]
    logging.basicConfig(level=logging.DEBUG if '--verbose' in flags else logging.INFO,
                        format='%(asctime)s %(levelname)s %(message)s')
    config = ScanConfig.from_env()

    if '--camera' in flags:
        from qr_camera import scan_camera
        config = replace(config, poll_interval_ms=int(_flag_value(flags, 'interval', config.poll_interval_ms)))
        config.validate()
        timeout = _flag_value(flags, 'timeout', None)
        try:
            result = scan_camera(int(_flag_value(flags, 'source', 0)), config,
                                 timeout=float(timeout) if timeout else None)
        except CameraUnavailable as e:
            print(f"Error: {e}")
            return 1
        except KeyboardInterrupt:
            print("Cancelled")
            return 1
        if result is None:
            print("No QR code detected")
            return 1
        print(result.text)
        return 0

    if not args:
        print(__doc__.strip())
        return 2
    path = args[0]
    if '--debug' in flags:
        base = os.path.splitext(os.path.basename(path))[0]
        config = replace(config, debug_dir=os.path.join(os.path.dirname(path) or '.', f"{base}_debug"))
        print(f"Debug output -> {config.debug_dir}/")

    result = decode_file(path, config)
    if not result.ok:
        print(f"Error: {result.user_message} ({result.reason}: {result.error})")
        return 1
    print(result.text)
    return 0


if __name__ == "__main__":
    sys.exit(main())
