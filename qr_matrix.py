"""Module-grid layout: function patterns, data masks and codeword placement."""

from functools import lru_cache

import numpy as np

# Alignment pattern center positions for each version
AP_POSITIONS = {
    2:[6,18],3:[6,22],4:[6,26],5:[6,30],6:[6,34],7:[6,22,38],8:[6,24,42],9:[6,26,46],10:[6,28,50],
    11:[6,30,54],12:[6,32,58],13:[6,34,62],14:[6,26,46,66],15:[6,26,48,70],16:[6,26,50,74],
    17:[6,30,54,78],18:[6,30,56,82],19:[6,30,58,86],20:[6,34,62,90],21:[6,28,50,72,94],
    22:[6,26,50,74,98],23:[6,30,54,78,102],24:[6,28,54,80,106],25:[6,32,58,84,110],
    26:[6,30,58,86,114],27:[6,34,62,90,118],28:[6,26,50,74,98,122],29:[6,30,54,78,102,126],
    30:[6,26,52,78,104,130],31:[6,30,56,82,108,134],32:[6,34,60,86,112,138],
    33:[6,30,58,86,114,142],34:[6,34,62,90,118,146],35:[6,30,54,78,102,126,150],
    36:[6,24,50,76,102,128,154],37:[6,28,54,80,106,132,158],38:[6,32,58,84,110,136,162],
    39:[6,26,54,82,110,138,166],40:[6,30,58,86,114,142,170],
}

# Module types
DATA, FINDER, SEPARATOR, TIMING, ALIGNMENT, FORMAT_INFO, VERSION_INFO, DARK_MODULE = range(8)

# Data mask formulas, indexed by the 3-bit mask pattern reference
MASKS = [
    lambda r, c: (r + c) % 2 == 0,
    lambda r, c: r % 2 == 0,
    lambda r, c: c % 3 == 0,
    lambda r, c: (r + c) % 3 == 0,
    lambda r, c: (r // 2 + c // 3) % 2 == 0,
    lambda r, c: (r * c) % 2 + (r * c) % 3 == 0,
    lambda r, c: ((r * c) % 2 + (r * c) % 3) % 2 == 0,
    lambda r, c: ((r + c) % 2 + (r * c) % 3) % 2 == 0,
]


def alignment_centers(version):
    """(row, col) of every alignment pattern that does not collide with a finder."""
    size = version * 4 + 17
    positions = AP_POSITIONS.get(version, [])
    centers = []
    for ar in positions:
        for ac in positions:
            if ar <= 8 and ac <= 8: continue  # top-left finder
            if ar <= 8 and ac >= size-9: continue  # top-right finder
            if ar >= size-9 and ac <= 8: continue  # bottom-left finder
            centers.append((ar, ac))
    return centers


@lru_cache(maxsize=None)
def module_type_map(version):
    """Classify every module of a symbol into its functional type. Returns size x size array."""
    size = version * 4 + 17
    t = np.zeros((size, size), dtype=np.uint8)

    # Separators first; finders overwrite the 7x7 cores
    t[0:8, 0:8] = SEPARATOR
    t[0:8, size-8:size] = SEPARATOR
    t[size-8:size, 0:8] = SEPARATOR
    for (r0, c0) in [(0, 0), (0, size-7), (size-7, 0)]:
        t[r0:r0+7, c0:c0+7] = FINDER

    t[6, 8:size-8] = TIMING
    t[8:size-8, 6] = TIMING

    t[8, 0:9][t[8, 0:9] != TIMING] = FORMAT_INFO
    t[0:9, 8][t[0:9, 8] != TIMING] = FORMAT_INFO
    t[8, size-8:size] = FORMAT_INFO
    t[size-7:size, 8] = FORMAT_INFO
    t[size-8, 8] = DARK_MODULE

    if version >= 7:
        t[0:6, size-11:size-8] = VERSION_INFO
        t[size-11:size-8, 0:6] = VERSION_INFO

    for ar, ac in alignment_centers(version):
        t[ar-2:ar+3, ac-2:ac+3] = ALIGNMENT

    t.flags.writeable = False
    return t


@lru_cache(maxsize=None)
def data_module_mask(version):
    m = module_type_map(version) == DATA
    m.flags.writeable = False
    return m


def mask_pattern(mask, size):
    r, c = np.indices((size, size))
    return MASKS[mask](r, c)


def unmask(matrix, mask, version):
    """XOR the data modules with the mask pattern; function patterns are left alone."""
    size = matrix.shape[0]
    flip = mask_pattern(mask, size) & data_module_mask(version)
    return (matrix ^ flip).astype(np.uint8)


@lru_cache(maxsize=None)
def zigzag_order(version):
    """(rows, cols) of the data modules in placement order.

    Two-module-wide columns are walked right to left, alternating upward and
    downward; the vertical timing column is skipped.
    """
    size = version * 4 + 17
    is_data = data_module_mask(version)
    rows, cols = [], []
    col, up = size - 1, True
    while col >= 0:
        if col == 6:
            col -= 1
            continue
        for row in (range(size-1, -1, -1) if up else range(size)):
            for c in (col, col - 1):
                if c >= 0 and is_data[row, c]:
                    rows.append(row)
                    cols.append(c)
        col -= 2
        up = not up
    return np.array(rows), np.array(cols)


def read_codewords(matrix, version):
    """Read codewords in zigzag order. Remainder bits that do not fill a byte are dropped."""
    rows, cols = zigzag_order(version)
    bits = matrix[rows, cols].astype(np.uint8)
    usable = len(bits) - len(bits) % 8
    return np.packbits(bits[:usable]).tolist()


def codeword_modules(version, index):
    """(row, col) of the 8 modules holding codeword `index`, most significant bit first."""
    rows, cols = zigzag_order(version)
    return list(zip(rows[index*8:index*8+8].tolist(), cols[index*8:index*8+8].tolist()))
