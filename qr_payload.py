"""Parse corrected data codewords into text segments."""

from typing import List, NamedTuple, Optional, Tuple

from qr_errors import MalformedPayload
from qr_types import DecodedSegment

ALNUM = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ $%*+-./:"

MODE_TERMINATOR = 0b0000
MODE_NUMERIC = 0b0001
MODE_ALNUM = 0b0010
MODE_STRUCTURED_APPEND = 0b0011
MODE_BYTE = 0b0100
MODE_FNC1_FIRST = 0b0101
MODE_ECI = 0b0111
MODE_KANJI = 0b1000
MODE_FNC1_SECOND = 0b1001
MODE_HANZI = 0b1101

# Character count indicator lengths for versions 1-9, 10-26, 27-40
COUNT_BITS = {
    MODE_NUMERIC: (10, 12, 14),
    MODE_ALNUM: (9, 11, 13),
    MODE_BYTE: (8, 16, 16),
    MODE_KANJI: (8, 10, 12),
    MODE_HANZI: (8, 10, 12),
}

# ECI assignment number -> Python codec
ECI_CHARSETS = {
    0: 'cp437', 1: 'iso-8859-1', 2: 'cp437', 3: 'iso-8859-1',
    20: 'shift_jis', 21: 'cp1250', 22: 'cp1251', 23: 'cp1252', 24: 'cp1256',
    25: 'utf-16-be', 26: 'utf-8', 27: 'ascii', 28: 'big5', 29: 'gb18030',
    30: 'euc-kr', 170: 'ascii',
}
ECI_CHARSETS.update({n: f'iso-8859-{n - 2}' for n in range(4, 19) if n != 14})

GB2312_SUBSET = 1


class Payload(NamedTuple):
    text: str
    segments: List[DecodedSegment]
    structured_append: Optional[Tuple[int, int, int]]  # (index, total, parity)


class BitReader:
    """MSB-first reader over a byte sequence."""

    def __init__(self, data):
        self.data = bytes(data)
        self.pos = 0

    def remaining(self):
        return len(self.data) * 8 - self.pos

    def read(self, n):
        if n > self.remaining():
            raise MalformedPayload(f"Need {n} bits at offset {self.pos}, only {self.remaining()} left")
        value = 0
        for _ in range(n):
            byte = self.data[self.pos >> 3]
            value = (value << 1) | ((byte >> (7 - (self.pos & 7))) & 1)
            self.pos += 1
        return value


def count_bits(mode, version):
    return COUNT_BITS[mode][0 if version <= 9 else 1 if version <= 26 else 2]


def _require(reader, bits, mode_name, count):
    if bits > reader.remaining():
        raise MalformedPayload(f"{mode_name} segment of {count} characters needs {bits} bits, "
                               f"{reader.remaining()} left")


def _numeric(reader, count):
    _require(reader, 10 * (count // 3) + (0, 4, 7)[count % 3], 'Numeric', count)
    out = []
    while count >= 3:  # 3 digits = 10 bits
        val = reader.read(10)
        if val >= 1000:
            raise MalformedPayload(f"Numeric triplet {val} out of range")
        out.append(f"{val:03d}")
        count -= 3
    if count == 2:
        val = reader.read(7)
        if val >= 100:
            raise MalformedPayload(f"Numeric pair {val} out of range")
        out.append(f"{val:02d}")
    elif count == 1:
        val = reader.read(4)
        if val >= 10:
            raise MalformedPayload(f"Numeric digit {val} out of range")
        out.append(str(val))
    return ''.join(out)


def _alphanumeric(reader, count, fnc1):
    _require(reader, 11 * (count // 2) + 6 * (count % 2), 'Alphanumeric', count)
    out = []
    while count >= 2:  # 2 chars = 11 bits
        val = reader.read(11)
        if val >= 45 * 45:
            raise MalformedPayload(f"Alphanumeric pair {val} out of range")
        out.append(ALNUM[val // 45] + ALNUM[val % 45])
        count -= 2
    if count == 1:
        val = reader.read(6)
        if val >= 45:
            raise MalformedPayload(f"Alphanumeric character {val} out of range")
        out.append(ALNUM[val])
    text = ''.join(out)
    if fnc1:
        # In GS1 data "%%" is a literal percent sign and a lone "%" is the GS separator
        text = '%'.join(part.replace('%', '\x1d') for part in text.split('%%'))
    return text


def _byte(reader, count, encoding):
    _require(reader, 8 * count, 'Byte', count)
    raw = bytes(reader.read(8) for _ in range(count))
    try:
        return raw.decode(encoding)
    except UnicodeDecodeError as e:
        raise MalformedPayload(f"Byte segment is not valid {encoding}: {e}") from e


def _double_byte(reader, count, mode_name, split, low_base, high_base, limit, encoding):
    """Kanji and Hanzi pack one two-byte character into 13 bits."""
    _require(reader, 13 * count, mode_name, count)
    raw = bytearray()
    for _ in range(count):
        val = reader.read(13)
        assembled = ((val // split) << 8) | (val % split)
        assembled += low_base if assembled < limit else high_base
        raw += bytes(((assembled >> 8) & 0xFF, assembled & 0xFF))
    try:
        return bytes(raw).decode(encoding)
    except UnicodeDecodeError as e:
        raise MalformedPayload(f"{mode_name} segment is not valid {encoding}: {e}") from e


def _eci_designator(reader):
    first = reader.read(8)
    if first & 0x80 == 0:
        return first & 0x7F
    if first & 0xC0 == 0x80:
        return ((first & 0x3F) << 8) | reader.read(8)
    if first & 0xE0 == 0xC0:
        return ((first & 0x1F) << 16) | reader.read(16)
    raise MalformedPayload(f"Bad ECI designator byte {first:#04x}")


def decode_payload(codewords, version, byte_encoding='utf-8'):
    """Data codewords -> Payload. Stops at the terminator or when fewer than 4 bits remain."""
    reader = BitReader(codewords)
    segments = []
    charset = None
    fnc1 = False
    structured_append = None

    while reader.remaining() >= 4:
        mode = reader.read(4)
        if mode == MODE_TERMINATOR:
            break

        if mode == MODE_ECI:
            eci = _eci_designator(reader)
            if eci not in ECI_CHARSETS:
                raise MalformedPayload(f"Unsupported ECI {eci}")
            charset = ECI_CHARSETS[eci]
            continue
        if mode == MODE_STRUCTURED_APPEND:
            sequence, parity = reader.read(8), reader.read(8)
            structured_append = (sequence >> 4, (sequence & 0x0F) + 1, parity)
            continue
        if mode == MODE_FNC1_FIRST:
            fnc1 = True
            continue
        if mode == MODE_FNC1_SECOND:
            reader.read(8)  # application indicator
            fnc1 = True
            continue
        if mode not in COUNT_BITS:
            raise MalformedPayload(f"Unknown mode indicator {mode:04b}")

        if mode == MODE_HANZI:
            subset = reader.read(4)
            if subset != GB2312_SUBSET:
                raise MalformedPayload(f"Unsupported Hanzi subset {subset}")
        count = reader.read(count_bits(mode, version))

        if mode == MODE_NUMERIC:
            segments.append(DecodedSegment('numeric', _numeric(reader, count)))
        elif mode == MODE_ALNUM:
            segments.append(DecodedSegment('alphanumeric', _alphanumeric(reader, count, fnc1)))
        elif mode == MODE_BYTE:
            segments.append(DecodedSegment('byte', _byte(reader, count, charset or byte_encoding)))
        elif mode == MODE_KANJI:
            segments.append(DecodedSegment('kanji', _double_byte(
                reader, count, 'Kanji', 0xC0, 0x8140, 0xC140, 0x1F00, 'shift_jis')))
        else:
            segments.append(DecodedSegment('hanzi', _double_byte(
                reader, count, 'Hanzi', 0x60, 0xA1A1, 0xA6A1, 0x0A00, 'gb2312')))

    return Payload(''.join(s.text for s in segments), segments, structured_append)
