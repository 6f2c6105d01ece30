import random
import unittest

from qr_blocks import block_layout, decode_codewords, split_blocks, total_codewords
from qr_errors import GeometryInvalid, UncorrectableBlock
from reed_solomon import ReedSolomon


def _interleave(blocks):
    data_len = max(len(d) for d, _ in blocks)
    ec_len = len(blocks[0][1])
    out = []
    for i in range(data_len):
        out.extend(d[i] for d, _ in blocks if i < len(d))
    for i in range(ec_len):
        out.extend(ec[i] for _, ec in blocks)
    return out


def _symbol_codewords(version, ec_level, seed=0):
    rng = random.Random(seed)
    blocks, data = [], []
    for data_len, total in block_layout(version, ec_level):
        d = [rng.randrange(256) for _ in range(data_len)]
        blocks.append((d, ReedSolomon(total - data_len).encode(d)[data_len:]))
        data.extend(d)
    return _interleave(blocks), data


class TestBlockTable(unittest.TestCase):
    def test_known_layouts(self):
        self.assertEqual(block_layout(1, 'M'), [(16, 26)])
        self.assertEqual(block_layout(5, 'Q'), [(15, 33), (15, 33), (16, 34), (16, 34)])
        self.assertEqual(len(block_layout(40, 'H')), 81)

    def test_every_level_fills_the_symbol(self):
        for version in range(1, 41):
            for ec in 'LMQH':
                self.assertEqual(sum(t for _, t in block_layout(version, ec)), total_codewords(version))

    def test_totals(self):
        self.assertEqual(total_codewords(1), 26)
        self.assertEqual(total_codewords(7), 196)
        self.assertEqual(total_codewords(40), 3706)

    def test_unknown_version(self):
        with self.assertRaises(GeometryInvalid):
            block_layout(41, 'L')


class TestDeinterleave(unittest.TestCase):
    def test_split_recovers_blocks(self):
        codewords, data = _symbol_codewords(5, 'Q')
        blocks = split_blocks(codewords, 5, 'Q')
        self.assertEqual([b.data_count for b in blocks], [15, 15, 16, 16])
        self.assertEqual([b.ec_count for b in blocks], [18] * 4)
        self.assertEqual(sum((b.codewords[:b.data_count] for b in blocks), []), data)

    def test_decode_corrects_each_block(self):
        codewords, data = _symbol_codewords(7, 'M', seed=3)
        # 7-M: 4 blocks of 31 data + 18 EC codewords, 9 correctable each
        for i in range(4 * 9):
            codewords[i] ^= 0xA5
        self.assertEqual(decode_codewords(codewords, 7, 'M'), data)

    def test_reports_failing_block(self):
        codewords, _ = _symbol_codewords(5, 'Q', seed=9)
        blocks = split_blocks(codewords, 5, 'Q')
        # Positions of block 2's first 10 data bytes in the interleaved stream
        for col in range(10):
            codewords[col * len(blocks) + 2] ^= 0x3C
        with self.assertRaises(UncorrectableBlock) as ctx:
            decode_codewords(codewords, 5, 'Q')
        self.assertEqual(ctx.exception.block, 2)

    def test_too_few_codewords(self):
        with self.assertRaises(GeometryInvalid):
            split_blocks([0] * 100, 5, 'Q')


if __name__ == '__main__':
    unittest.main()
