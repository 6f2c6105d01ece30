import unittest

from helpers import BitWriter
from qr_errors import MalformedPayload
from qr_payload import (ALNUM, MODE_ALNUM, MODE_BYTE, MODE_ECI, MODE_FNC1_FIRST, MODE_HANZI,
                        MODE_KANJI, MODE_NUMERIC, MODE_STRUCTURED_APPEND, BitReader, count_bits,
                        decode_payload)
from qr_types import DecodedSegment


def _alnum(w, text, version=1):
    w.put(MODE_ALNUM, 4).put(len(text), count_bits(MODE_ALNUM, version))
    for i in range(0, len(text) - 1, 2):
        w.put(ALNUM.index(text[i]) * 45 + ALNUM.index(text[i + 1]), 11)
    if len(text) % 2:
        w.put(ALNUM.index(text[-1]), 6)
    return w


def _byte(w, raw, version=1):
    w.put(MODE_BYTE, 4).put(len(raw), count_bits(MODE_BYTE, version))
    for b in raw:
        w.put(b, 8)
    return w


class TestBitReader(unittest.TestCase):
    def test_reads_msb_first(self):
        r = BitReader(b'\xA5\x0F')
        self.assertEqual(r.read(4), 0xA)
        self.assertEqual(r.read(8), 0x50)
        self.assertEqual(r.remaining(), 4)

    def test_overrun(self):
        with self.assertRaises(MalformedPayload):
            BitReader(b'\x00').read(9)


class TestModes(unittest.TestCase):
    def test_hello_world_alphanumeric(self):
        data = [32, 91, 11, 120, 209, 114, 220, 77, 67, 64, 236, 17, 236, 17, 236, 17]
        payload = decode_payload(data, 1)
        self.assertEqual(payload.text, 'HELLO WORLD')
        self.assertEqual(payload.segments, [DecodedSegment('alphanumeric', 'HELLO WORLD')])
        self.assertIsNone(payload.structured_append)

    def test_numeric_groups(self):
        for digits in ('01234567', '8', '42', '000'):
            w = BitWriter().put(MODE_NUMERIC, 4).put(len(digits), 10)
            for i in range(0, len(digits), 3):
                chunk = digits[i:i + 3]
                w.put(int(chunk), {1: 4, 2: 7, 3: 10}[len(chunk)])
            self.assertEqual(decode_payload(w.put(0, 4).to_bytes(19), 1).text, digits)

    def test_numeric_out_of_range(self):
        w = BitWriter().put(MODE_NUMERIC, 4).put(3, 10).put(1000, 10)
        with self.assertRaises(MalformedPayload):
            decode_payload(w.to_bytes(19), 1)

    def test_byte_utf8_default(self):
        w = _byte(BitWriter(), 'héllo ✓'.encode('utf-8')).put(0, 4)
        self.assertEqual(decode_payload(w.to_bytes(34), 2).text, 'héllo ✓')

    def test_byte_encoding_override(self):
        raw = 'テスト'.encode('shift_jis')
        w = _byte(BitWriter(), raw).put(0, 4)
        self.assertEqual(decode_payload(w.to_bytes(19), 1, 'shift_jis').text, 'テスト')

    def test_kanji(self):
        # Standard's example: 点 (0x935F) -> 0xD9F, 茗 (0xE4AA) -> 0x1AAA
        w = BitWriter().put(MODE_KANJI, 4).put(2, 8).put(0xD9F, 13).put(0x1AAA, 13).put(0, 4)
        payload = decode_payload(w.to_bytes(19), 1)
        self.assertEqual(payload.text, '点茗')
        self.assertEqual(payload.segments[0].mode, 'kanji')

    def test_hanzi(self):
        w = BitWriter().put(MODE_HANZI, 4).put(1, 4).put(2, 8)
        for ch in '中文':
            hi, lo = ch.encode('gb2312')
            value = (hi << 8 | lo) - (0xA1A1 if hi <= 0xAA else 0xA6A1)
            w.put((value >> 8) * 0x60 + (value & 0xFF), 13)
        self.assertEqual(decode_payload(w.put(0, 4).to_bytes(19), 1).text, '中文')

    def test_mixed_segments(self):
        w = BitWriter().put(MODE_NUMERIC, 4).put(3, 10).put(123, 10)
        w = _alnum(w, 'AB')
        w = _byte(w, b'xy').put(0, 4)
        payload = decode_payload(w.to_bytes(19), 1)
        self.assertEqual(payload.text, '123ABxy')
        self.assertEqual([s.mode for s in payload.segments], ['numeric', 'alphanumeric', 'byte'])

    def test_count_bits_by_version(self):
        self.assertEqual(count_bits(MODE_BYTE, 9), 8)
        self.assertEqual(count_bits(MODE_BYTE, 10), 16)
        self.assertEqual(count_bits(MODE_NUMERIC, 27), 14)


class TestExtensions(unittest.TestCase):
    def test_eci_selects_charset(self):
        w = BitWriter().put(MODE_ECI, 4).put(3, 8)  # ISO-8859-1
        w = _byte(w, b'caf\xe9').put(0, 4)
        self.assertEqual(decode_payload(w.to_bytes(19), 1).text, 'café')

    def test_without_eci_latin1_byte_is_not_utf8(self):
        w = _byte(BitWriter(), b'caf\xe9').put(0, 4)
        with self.assertRaises(MalformedPayload):
            decode_payload(w.to_bytes(19), 1)

    def test_two_byte_eci_designator(self):
        w = BitWriter().put(MODE_ECI, 4).put(0b10, 2).put(26, 14)  # UTF-8, long form
        w = _byte(w, 'ü'.encode('utf-8')).put(0, 4)
        self.assertEqual(decode_payload(w.to_bytes(19), 1).text, 'ü')

    def test_unknown_eci(self):
        w = BitWriter().put(MODE_ECI, 4).put(99, 8)
        with self.assertRaises(MalformedPayload):
            decode_payload(w.to_bytes(19), 1)

    def test_structured_append(self):
        w = BitWriter().put(MODE_STRUCTURED_APPEND, 4).put(0x12, 8).put(0xAB, 8)
        w = _alnum(w, 'PART').put(0, 4)
        payload = decode_payload(w.to_bytes(19), 1)
        self.assertEqual(payload.text, 'PART')
        self.assertEqual(payload.structured_append, (1, 3, 0xAB))

    def test_fnc1_percent_becomes_group_separator(self):
        w = _alnum(BitWriter().put(MODE_FNC1_FIRST, 4), 'AB%CD%%E').put(0, 4)
        self.assertEqual(decode_payload(w.to_bytes(19), 1).text, 'AB\x1dCD%E')


class TestMalformed(unittest.TestCase):
    def test_unknown_mode(self):
        with self.assertRaises(MalformedPayload):
            decode_payload(BitWriter().put(0b0110, 4).to_bytes(19), 1)

    def test_count_exceeds_data(self):
        w = BitWriter().put(MODE_BYTE, 4).put(200, 8).put(0x41, 8)
        with self.assertRaises(MalformedPayload):
            decode_payload(w.to_bytes(4), 1)

    def test_terminator_stops_before_padding(self):
        w = _alnum(BitWriter(), 'A').put(0, 4)
        self.assertEqual(decode_payload(w.to_bytes(19), 1).text, 'A')

    def test_short_tail_without_terminator(self):
        # Symbol exactly full: fewer than 4 bits left means an implicit terminator
        w = _alnum(BitWriter(), 'ABC').put(0b11, 2)
        self.assertEqual(decode_payload(w.to_bytes(), 1).text, 'ABC')


if __name__ == '__main__':
    unittest.main()
