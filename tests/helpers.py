"""Synthetic QR images for the tests, built with the `qrcode` encoder."""

import cv2
import numpy as np
import qrcode
import qrcode.constants
import qrcode.util

from qr_types import PixelBuffer

EC_LEVELS = {
    'L': qrcode.constants.ERROR_CORRECT_L,
    'M': qrcode.constants.ERROR_CORRECT_M,
    'Q': qrcode.constants.ERROR_CORRECT_Q,
    'H': qrcode.constants.ERROR_CORRECT_H,
}
BORDER = 4


class KanjiData(qrcode.util.QRData):
    """Kanji-mode segment; the encoder only ships numeric, alphanumeric and byte writers."""

    def __init__(self, text):
        self.mode = qrcode.util.MODE_KANJI
        self.data = text.encode('shift_jis')

    def __len__(self):
        return len(self.data) // 2

    def write(self, buffer):
        for i in range(0, len(self.data), 2):
            value = (self.data[i] << 8) | self.data[i + 1]
            value -= 0x8140 if value <= 0x9FFC else 0xC140
            buffer.put((value >> 8) * 0xC0 + (value & 0xFF), 13)


def qr_matrix(text, version=1, ec_level='M', mask=None):
    """Module matrix including a 4-module quiet zone, True = dark."""
    qr = qrcode.QRCode(version=version, error_correction=EC_LEVELS[ec_level],
                       box_size=1, border=BORDER, mask_pattern=mask)
    qr.add_data(text)
    qr.make(fit=False)
    return np.array(qr.get_matrix(), dtype=bool)


def render(matrix, scale=4):
    """Module matrix -> grey uint8 image, black on white."""
    image = np.where(matrix, 0, 255).astype(np.uint8)
    return np.repeat(np.repeat(image, scale, axis=0), scale, axis=1)


def qr_image(text, version=1, ec_level='M', scale=4, mask=None):
    return render(qr_matrix(text, version, ec_level, mask), scale)


def qr_buffer(text, version=1, ec_level='M', scale=4, layout='L'):
    gray = qr_image(text, version, ec_level, scale)
    if layout == 'L':
        return PixelBuffer.from_array(gray)
    code = {'RGB': cv2.COLOR_GRAY2RGB, 'BGR': cv2.COLOR_GRAY2BGR,
            'RGBA': cv2.COLOR_GRAY2RGBA, 'BGRA': cv2.COLOR_GRAY2BGRA}[layout]
    return PixelBuffer.from_array(cv2.cvtColor(gray, code), layout)


def flip_codewords(matrix, version, indices):
    """Invert every module of the given codewords (positions are in symbol space)."""
    from qr_matrix import codeword_modules
    damaged = matrix.copy()
    for index in indices:
        for r, c in codeword_modules(version, index):
            damaged[r + BORDER, c + BORDER] = ~damaged[r + BORDER, c + BORDER]
    return damaged


def warp(image, corners):
    """Perspective-warp `image` so its corners land on `corners` (TL, TR, BR, BL)."""
    h, w = image.shape[:2]
    src = np.float32([[0, 0], [w, 0], [w, h], [0, h]])
    H = cv2.getPerspectiveTransform(src, np.float32(corners))
    return cv2.warpPerspective(image, H, (w, h), flags=cv2.INTER_LINEAR,
                               borderMode=cv2.BORDER_CONSTANT, borderValue=255)


def png_bytes(image):
    ok, encoded = cv2.imencode('.png', image)
    assert ok
    return encoded.tobytes()


class BitWriter:
    """MSB-first bit accumulator for hand-built payloads."""

    def __init__(self):
        self.bits = []

    def put(self, value, n):
        self.bits.extend((value >> (n - 1 - i)) & 1 for i in range(n))
        return self

    def to_bytes(self, length=None):
        bits = self.bits + [0] * (-len(self.bits) % 8)
        data = bytearray(int(''.join(map(str, bits[i:i+8])), 2) for i in range(0, len(bits), 8))
        pad = (0xEC, 0x11)
        while length is not None and len(data) < length:
            data.append(pad[len(data) % 2])
        return bytes(data)
