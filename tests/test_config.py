import unittest

import numpy as np

from qr_config import DEFAULT_POLL_INTERVAL_MS, ScanConfig
from qr_errors import FormatInfoUnrecoverable, ImageUnreadable, InsufficientContrast, UncorrectableBlock
from qr_types import MSG_NOT_FOUND, MSG_UNREADABLE, DecodeResult, PixelBuffer


class TestScanConfig(unittest.TestCase):
    def test_defaults(self):
        config = ScanConfig()
        self.assertEqual(config.poll_interval_ms, DEFAULT_POLL_INTERVAL_MS)
        self.assertEqual(config.poll_interval, 0.5)
        self.assertEqual(config.byte_encoding, 'utf-8')
        self.assertTrue(config.try_inverted)
        self.assertIsNone(config.debug_dir)
        config.validate()

    def test_from_env(self):
        config = ScanConfig.from_env({
            'QR_POLL_INTERVAL_MS': '250',
            'QR_BYTE_ENCODING': 'iso-8859-1',
            'QR_TRY_INVERTED': 'false',
            'QR_DEBUG_DIR': '/tmp/qr',
        })
        self.assertEqual(config.poll_interval_ms, 250)
        self.assertEqual(config.byte_encoding, 'iso-8859-1')
        self.assertFalse(config.try_inverted)
        self.assertEqual(config.debug_dir, '/tmp/qr')

    def test_empty_env_gives_defaults(self):
        self.assertEqual(ScanConfig.from_env({}), ScanConfig())

    def test_invalid_values(self):
        with self.assertRaises(ValueError):
            ScanConfig.from_env({'QR_POLL_INTERVAL_MS': 'soon'})
        with self.assertRaises(ValueError):
            ScanConfig.from_env({'QR_POLL_INTERVAL_MS': '-5'})
        with self.assertRaises(ValueError):
            ScanConfig(byte_encoding='no-such-codec').validate()
        with self.assertRaises(ValueError):
            ScanConfig(max_finder_candidates=2).validate()


class TestPixelBuffer(unittest.TestCase):
    def test_from_array_layouts(self):
        self.assertEqual(PixelBuffer.from_array(np.zeros((4, 5), np.uint8)).layout, 'L')
        self.assertEqual(PixelBuffer.from_array(np.zeros((4, 5, 3), np.uint8)).layout, 'BGR')
        buffer = PixelBuffer.from_array(np.zeros((4, 5, 4), np.uint8))
        self.assertEqual((buffer.width, buffer.height, buffer.layout), (5, 4, 'BGRA'))
        with self.assertRaises(ValueError):
            PixelBuffer.from_array(np.zeros((4, 5, 2), np.uint8))

    def test_bytes_round_trip(self):
        raw = bytes(range(24))
        arr = PixelBuffer(2, 4, raw, 'RGB').to_array()
        self.assertEqual(arr.shape, (4, 2, 3))
        self.assertEqual(arr[1, 0].tolist(), [6, 7, 8])

    def test_sample_count_checked(self):
        with self.assertRaises(ValueError):
            PixelBuffer(2, 2, bytes(15), 'RGBA')
        with self.assertRaises(ValueError):
            PixelBuffer(0, 2, b'', 'L')


class TestDecodeResult(unittest.TestCase):
    def test_success(self):
        result = DecodeResult('hi', 1, 'L', 3)
        self.assertTrue(result.ok)
        self.assertIsNone(result.reason)
        self.assertIsNone(result.user_message)

    def test_user_messages(self):
        self.assertEqual(DecodeResult.failure(InsufficientContrast('flat')).user_message, MSG_UNREADABLE)
        self.assertEqual(DecodeResult.failure(ImageUnreadable('junk')).user_message, MSG_UNREADABLE)
        self.assertEqual(DecodeResult.failure(FormatInfoUnrecoverable('x')).user_message, MSG_NOT_FOUND)
        failed = DecodeResult.failure(UncorrectableBlock('block 3', block=3))
        self.assertEqual(failed.reason, 'UncorrectableBlock')
        self.assertEqual(failed.error.block, 3)
        self.assertFalse(failed.ok)

    def test_equality_compares_failures_by_reason(self):
        self.assertEqual(DecodeResult.failure(InsufficientContrast('a')),
                         DecodeResult.failure(InsufficientContrast('a')))
        self.assertNotEqual(DecodeResult.failure(InsufficientContrast('a')),
                            DecodeResult.failure(ImageUnreadable('a')))


if __name__ == '__main__':
    unittest.main()
