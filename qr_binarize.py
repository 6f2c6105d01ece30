"""
Adaptive binarization.

Luminance is thresholded per 8x8 block, using the mean of the surrounding
5x5 blocks so that uneven lighting across the frame does not wash out
half of the symbol.
"""

import cv2
import numpy as np

from qr_errors import InsufficientContrast

BLOCK_SIZE = 8
# A block whose max-min spread is at or below this is considered flat
MIN_DYNAMIC_RANGE = 24
# Whole-image spread below this means there is nothing to threshold
MIN_GLOBAL_CONTRAST = 24
NEIGHBOURHOOD = 5

_TO_GRAY = {
    'RGB': cv2.COLOR_RGB2GRAY,
    'BGR': cv2.COLOR_BGR2GRAY,
    'RGBA': cv2.COLOR_RGBA2GRAY,
    'BGRA': cv2.COLOR_BGRA2GRAY,
}


def luminance(buffer):
    """PixelBuffer -> uint8 grey image."""
    image = buffer.to_array()
    if buffer.layout == 'L':
        return image
    return cv2.cvtColor(image, _TO_GRAY[buffer.layout])


def _block_levels(lo, mean, flat):
    """Per-block threshold level.

    Flat blocks have no edge to threshold on. They get half their minimum
    (i.e. they read as white) unless a neighbouring level says the block is
    darker than its surroundings, in which case they inherit that level.
    """
    levels = mean.astype(np.float32)
    for y, x in zip(*np.nonzero(flat)):
        level = lo[y, x] / 2.0
        if y > 0 and x > 0:
            neighbour = (levels[y-1, x] + 2 * levels[y, x-1] + levels[y-1, x-1]) / 4.0
            if lo[y, x] < neighbour:
                level = neighbour
        levels[y, x] = level
    return levels


def binarize(gray):
    """Grey image -> bool bitmap, True = black."""
    gray = np.asarray(gray, dtype=np.uint8)
    h, w = gray.shape
    spread = int(gray.max()) - int(gray.min())
    if spread < MIN_GLOBAL_CONTRAST:
        raise InsufficientContrast(f"Intensity spread {spread} is below {MIN_GLOBAL_CONTRAST}")

    bh, bw = -(-h // BLOCK_SIZE), -(-w // BLOCK_SIZE)
    padded = np.pad(gray, ((0, bh * BLOCK_SIZE - h), (0, bw * BLOCK_SIZE - w)), mode='edge')
    blocks = padded.reshape(bh, BLOCK_SIZE, bw, BLOCK_SIZE).astype(np.int32)
    lo, hi = blocks.min(axis=(1, 3)), blocks.max(axis=(1, 3))
    mean = blocks.mean(axis=(1, 3))

    levels = _block_levels(lo, mean, (hi - lo) <= MIN_DYNAMIC_RANGE)
    thresholds = cv2.blur(levels, (NEIGHBOURHOOD, NEIGHBOURHOOD), borderType=cv2.BORDER_REPLICATE)
    full = np.repeat(np.repeat(thresholds, BLOCK_SIZE, axis=0), BLOCK_SIZE, axis=1)[:h, :w]
    return gray <= full


def binarize_buffer(buffer):
    return binarize(luminance(buffer))
