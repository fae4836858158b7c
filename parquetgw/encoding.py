"""Varint encoding of label column indexes and zig-zag integer mapping."""

from __future__ import annotations

from collections.abc import Iterable

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_UINT64_MASK = (1 << 64) - 1
_MAX_VARINT_LEN64 = 10


def _check_int64(x: int) -> None:
    if not _INT64_MIN <= x <= _INT64_MAX:
        raise OverflowError(f"{x} does not fit into a signed 64-bit integer")


def zigzag_encode(x: int) -> int:
    """Map a signed 64-bit integer onto an unsigned one, small magnitudes first."""
    _check_int64(x)
    return ((x << 1) ^ (x >> 63)) & _UINT64_MASK


def zigzag_decode(v: int) -> int:
    """Invert :func:`zigzag_encode`."""
    if not 0 <= v <= _UINT64_MASK:
        raise OverflowError(f"{v} does not fit into an unsigned 64-bit integer")
    return (v >> 1) ^ -(v & 1)


def _put_uvarint(out: bytearray, value: int) -> None:
    while value >= 0x80:
        out.append((value & 0x7F) | 0x80)
        value >>= 7
    out.append(value)


def _read_uvarint(data: bytes, pos: int) -> tuple[int, int]:
    result = 0
    shift = 0
    for count in range(_MAX_VARINT_LEN64):
        if pos >= len(data):
            raise ValueError("unexpected end of data" if count else "no data to read")
        byte = data[pos]
        pos += 1
        if byte < 0x80:
            if count == _MAX_VARINT_LEN64 - 1 and byte > 1:
                break
            return result | (byte << shift), pos
        result |= (byte & 0x7F) << shift
        shift += 7
    raise ValueError("varint overflows a 64-bit integer")


def encode_label_column_index(values: Iterable[int]) -> bytes:
    """Encode column indexes, sorted, as a count followed by signed varints."""
    ordered = sorted(values)
    out = bytearray()
    _put_uvarint(out, zigzag_encode(len(ordered)))
    for value in ordered:
        _put_uvarint(out, zigzag_encode(value))
    return bytes(out)


def decode_label_column_index(data: bytes) -> list[int]:
    """Decode the output of :func:`encode_label_column_index`."""
    raw, pos = _read_uvarint(data, 0)
    count = zigzag_decode(raw)
    if count < 0:
        raise ValueError(f"negative element count {count}")
    result: list[int] = []
    for _ in range(count):
        raw, pos = _read_uvarint(data, pos)
        result.append(zigzag_decode(raw))
    return result