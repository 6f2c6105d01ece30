"""QR sampling: read the module grid through the perspective transform."""

import cv2
import numpy as np

# Half-width of the 3x3 sampling neighbourhood around each module center, in modules
SAMPLE_SPREAD = 0.2
# Votes (out of 9) needed to call a module dark
DARK_VOTES = 5

FINDER = np.array([[1,1,1,1,1,1,1],[1,0,0,0,0,0,1],[1,0,1,1,1,0,1],[1,0,1,1,1,0,1],[1,0,1,1,1,0,1],[1,0,0,0,0,0,1],[1,1,1,1,1,1,1]], dtype=np.uint8)


def sample_grid(bitmap, geometry):
    """Majority-vote every module of the symbol. Returns dim x dim uint8, 1 = dark."""
    dim = geometry.dimension
    h, w = bitmap.shape
    r, c = np.indices((dim, dim))
    centers = np.stack([c + 0.5, r + 0.5], axis=-1).reshape(-1, 1, 2)
    d = SAMPLE_SPREAD
    offsets = np.array([[dx, dy] for dy in (-d, 0, d) for dx in (-d, 0, d)]).reshape(1, 9, 2)
    pts = (centers + offsets).reshape(-1, 1, 2).astype(np.float32)

    pix = cv2.perspectiveTransform(pts, geometry.transform).reshape(dim, dim, 9, 2)
    xs = np.floor(pix[..., 0]).astype(int)
    ys = np.floor(pix[..., 1]).astype(int)
    inside = (xs >= 0) & (xs < w) & (ys >= 0) & (ys < h)
    votes = bitmap[np.clip(ys, 0, h - 1), np.clip(xs, 0, w - 1)] & inside
    return (votes.sum(axis=-1) >= DARK_VOTES).astype(np.uint8)


def pattern_score(m):
    """Fraction of finder and timing modules that read as expected."""
    size = m.shape[0]
    s = np.sum(m[0:7, 0:7] == FINDER) + np.sum(m[0:7, size-7:size] == FINDER) + np.sum(m[size-7:size, 0:7] == FINDER)
    timing = (np.arange(8, size-8) % 2 == 0).astype(np.uint8)
    s += np.sum(m[6, 8:size-8] == timing) + np.sum(m[8:size-8, 6] == timing)
    return s / (3 * 49 + 2 * len(timing))


def _to_int(bits):
    value = 0
    for b in bits:
        value = (value << 1) | int(b)
    return value


def read_format_bits(m):
    """Both 15-bit format info copies, most significant bit first."""
    size = m.shape[0]
    copy1 = [m[8, c] for c in [0,1,2,3,4,5,7,8]] + [m[r, 8] for r in [7,5,4,3,2,1,0]]
    copy2 = [m[r, 8] for r in range(size-1, size-8, -1)] + [m[8, c] for c in range(size-8, size)]
    return _to_int(copy1), _to_int(copy2)


def read_version_bits(m):
    """Both 18-bit version info copies (top-right, bottom-left), most significant bit first."""
    size = m.shape[0]
    copy1 = [m[r, c] for r in range(5, -1, -1) for c in range(size-9, size-12, -1)]
    copy2 = [m[r, c] for c in range(5, -1, -1) for r in range(size-9, size-12, -1)]
    return _to_int(copy1), _to_int(copy2)
