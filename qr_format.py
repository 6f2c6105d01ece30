"""
Format and version information.

Format info is 5 data bits (EC level + mask) protected by a (15,5) BCH code
and XORed with a fixed pattern; version info (v7+) is 6 data bits protected
by an (18,6) BCH code. Both are stored twice. Decoding is nearest-codeword
search over the whole (small) code book.
"""

from qr_errors import FormatInfoUnrecoverable, VersionInfoUnrecoverable
from qr_types import FormatInfo

FORMAT_GENERATOR = 0b10100110111
FORMAT_XOR_MASK = 0b101010000010010
VERSION_GENERATOR = 0b1111100100101

# Max Hamming distance still treated as a valid read
FORMAT_MAX_DISTANCE = 3
VERSION_MAX_DISTANCE = 3

# Format info EC bits -> level name
EC_NAMES = {0: 'M', 1: 'L', 2: 'H', 3: 'Q'}
EC_BITS = {name: bits for bits, name in EC_NAMES.items()}


def _bch_remainder(value, generator):
    degree = generator.bit_length() - 1
    value <<= degree
    while value.bit_length() > degree:
        value ^= generator << (value.bit_length() - generator.bit_length())
    return value


def format_codeword(ec_level, mask):
    data = (EC_BITS[ec_level] << 3) | mask
    return ((data << 10) | _bch_remainder(data, FORMAT_GENERATOR)) ^ FORMAT_XOR_MASK


def version_codeword(version):
    return (version << 12) | _bch_remainder(version, VERSION_GENERATOR)


FORMAT_CODEWORDS = {format_codeword(ec, mask): FormatInfo(ec, mask)
                    for ec in EC_BITS for mask in range(8)}
VERSION_CODEWORDS = {version_codeword(v): v for v in range(7, 41)}


def _hamming(a, b):
    return bin(a ^ b).count('1')


def _nearest(bits, codebook):
    """(distance, value) of the codeword closest to `bits`."""
    return min((_hamming(bits, code), value) for code, value in codebook.items())


def _decode_redundant(copies, codebook, max_distance):
    best = [_nearest(bits, codebook) for bits in copies]
    valid = [(d, value) for d, value in best if d <= max_distance]
    if not valid:
        return None
    # Both copies agree, or the closest read wins (first copy on a tie)
    return min(valid, key=lambda dv: dv[0])[1]


def decode_format(copy1, copy2):
    """Two raw 15-bit reads -> FormatInfo."""
    info = _decode_redundant((copy1, copy2), FORMAT_CODEWORDS, FORMAT_MAX_DISTANCE)
    if info is None:
        raise FormatInfoUnrecoverable(f"Format info {copy1:015b}/{copy2:015b} is beyond correction")
    return info


def decode_version(copy1, copy2):
    """Two raw 18-bit reads -> version number (7-40)."""
    version = _decode_redundant((copy1, copy2), VERSION_CODEWORDS, VERSION_MAX_DISTANCE)
    if version is None:
        raise VersionInfoUnrecoverable(f"Version info {copy1:018b}/{copy2:018b} is beyond correction")
    return version
