"""OBF codec — Value ⇄ bytes.

Wire layout, one tag byte then the payload (all fields big-endian):

    NONE        (0)   —
    INT8        (1)   u8
    INT16       (2)   u16
    INT32       (3)   u32
    INT64       (4)   u64
    FLOAT       (5)   IEEE-754 single
    DOUBLE      (6)   IEEE-754 double
    STRING      (7)   u16 length, raw bytes
    LONG_STRING (8)   u32 length, raw bytes
    BYTE_ARRAY  (9)   u32 length, raw bytes
    OBJECT      (10)  u32 count, count × (u32 key, value), keys ascending
    ARRAY       (11)  u32 count, count × value
    DICTIONARY  (12)  u32 count, count × (u16 key length, key bytes, value),
                      keys ascending by byte comparison

Encoding never fails: Value mutators already reject anything that would
not fit its length or key field.  Decoding treats its input as untrusted
and checks every tag and length against the bytes actually remaining
before reading.
"""

from __future__ import annotations

import struct
from typing import Dict, List, Tuple, Union

from ._constants import (
    FMT_F32,
    FMT_F64,
    FMT_U16,
    FMT_U32,
    INTEGER_FORMATS,
    INTEGER_TYPES,
    MAX_DEPTH,
    Type,
)
from ._errors import MalformedData, TypeMismatch
from ._value import Value, key_bytes

Buffer = Union[bytes, bytearray, memoryview]

_TAGS: Dict[int, Type] = {t.value: t for t in Type}

_INTEGER_SIZES: Dict[Type, int] = {
    Type.INT8: 1,
    Type.INT16: 2,
    Type.INT32: 4,
    Type.INT64: 8,
}

# Smallest possible encoding of one container entry, used to reject a
# count that cannot possibly fit in the remaining input before looping.
_MIN_ENTRY_SIZE: Dict[Type, int] = {
    Type.OBJECT: 4 + 1,
    Type.ARRAY: 1,
    Type.DICTIONARY: 2 + 1,
}


# ── Encode ───────────────────────────────────────────────────

def _encode_value(val: Value, out: bytearray) -> None:
    tag = val._type
    payload = val._payload
    out.append(tag)

    if tag == Type.NONE:
        return

    if tag in INTEGER_TYPES:
        out += struct.pack(INTEGER_FORMATS[tag], payload)
        return

    if tag == Type.FLOAT:
        out += struct.pack(FMT_F32, payload)
        return

    if tag == Type.DOUBLE:
        out += struct.pack(FMT_F64, payload)
        return

    if tag == Type.STRING:
        out += struct.pack(FMT_U16, len(payload))
        out += payload
        return

    if tag == Type.LONG_STRING or tag == Type.BYTE_ARRAY:
        out += struct.pack(FMT_U32, len(payload))
        out += payload
        return

    out += struct.pack(FMT_U32, len(payload))

    if tag == Type.ARRAY:
        for item in payload:
            _encode_value(item, out)
        return

    if tag == Type.OBJECT:
        for key in sorted(payload):
            out += struct.pack(FMT_U32, key)
            _encode_value(payload[key], out)
        return

    # DICTIONARY: sort on the wire bytes, not on str order, so that keys
    # holding escaped non-UTF-8 bytes still land in byte order.
    entries = sorted(((key_bytes(k), v) for k, v in payload.items()), key=lambda kv: kv[0])
    for kb, child in entries:
        out += struct.pack(FMT_U16, len(kb))
        out += kb
        _encode_value(child, out)


def encode_into(val: Value, out: bytearray) -> int:
    """Append the encoding of `val` to `out`; return the number of bytes added."""
    if not isinstance(val, Value):
        raise TypeMismatch("encode requires a Value, got {}".format(type(val).__name__))
    start = len(out)
    _encode_value(val, out)
    return len(out) - start


def encode(val: Value) -> bytes:
    """Encode `val` to a new byte string."""
    out = bytearray()
    encode_into(val, out)
    return bytes(out)


dumps = encode


# ── Decode ───────────────────────────────────────────────────

def _need(buf: bytes, off: int, n: int, what: str) -> None:
    if n > len(buf) - off:
        raise MalformedData("truncated {}: need {} bytes at offset {}, have {}".format(
            what, n, off, len(buf) - off))


def _read_u16(buf: bytes, off: int, what: str) -> Tuple[int, int]:
    _need(buf, off, 2, what)
    return struct.unpack_from(FMT_U16, buf, off)[0], off + 2


def _read_u32(buf: bytes, off: int, what: str) -> Tuple[int, int]:
    _need(buf, off, 4, what)
    return struct.unpack_from(FMT_U32, buf, off)[0], off + 4


def _read_raw(buf: bytes, off: int, n: int, what: str) -> Tuple[bytes, int]:
    _need(buf, off, n, what)
    return buf[off:off + n], off + n


def _decode_one(buf: bytes, off: int, depth: int) -> Tuple[Value, int]:
    """Decode one value from buf at offset.  Returns (value, new offset)."""
    if off >= len(buf):
        raise MalformedData("truncated tag at offset {}".format(off))
    tag = _TAGS.get(buf[off])
    if tag is None:
        raise MalformedData("unknown tag 0x{:02x} at offset {}".format(buf[off], off))
    off += 1

    if tag == Type.NONE:
        return Value._make(tag, None, depth), off

    if tag in INTEGER_TYPES:
        size = _INTEGER_SIZES[tag]
        _need(buf, off, size, tag.name + " payload")
        n = struct.unpack_from(INTEGER_FORMATS[tag], buf, off)[0]
        return Value._make(tag, n, depth), off + size

    if tag == Type.FLOAT:
        _need(buf, off, 4, "FLOAT payload")
        return Value._make(tag, struct.unpack_from(FMT_F32, buf, off)[0], depth), off + 4

    if tag == Type.DOUBLE:
        _need(buf, off, 8, "DOUBLE payload")
        return Value._make(tag, struct.unpack_from(FMT_F64, buf, off)[0], depth), off + 8

    if tag == Type.STRING:
        n, off = _read_u16(buf, off, "STRING length")
        raw, off = _read_raw(buf, off, n, "STRING payload")
        return Value._make(tag, raw, depth), off

    if tag == Type.LONG_STRING or tag == Type.BYTE_ARRAY:
        n, off = _read_u32(buf, off, tag.name + " length")
        raw, off = _read_raw(buf, off, n, tag.name + " payload")
        return Value._make(tag, raw, depth), off

    # ── Containers ────────────────────────────────────────────
    if depth + 1 > MAX_DEPTH:
        raise MalformedData("nesting deeper than {}".format(MAX_DEPTH))
    count, off = _read_u32(buf, off, tag.name + " count")
    if count * _MIN_ENTRY_SIZE[tag] > len(buf) - off:
        raise MalformedData("{} count {} exceeds remaining input".format(tag.name, count))

    if tag == Type.ARRAY:
        items: List[Value] = []
        for _ in range(count):
            item, off = _decode_one(buf, off, depth + 1)
            items.append(item)
        return Value._make(tag, items, depth), off

    if tag == Type.OBJECT:
        entries: Dict[int, Value] = {}
        for _ in range(count):
            key, off = _read_u32(buf, off, "OBJECT key")
            entries[key], off = _decode_one(buf, off, depth + 1)
        return Value._make(tag, entries, depth), off

    # DICTIONARY.  Keys are kept byte-exact; text that is not valid
    # UTF-8 survives via surrogateescape.
    named: Dict[str, Value] = {}
    for _ in range(count):
        n, off = _read_u16(buf, off, "DICTIONARY key length")
        kb, off = _read_raw(buf, off, n, "DICTIONARY key")
        key = kb.decode("utf-8", "surrogateescape")
        named[key], off = _decode_one(buf, off, depth + 1)
    return Value._make(tag, named, depth), off


def decode(buf: Buffer, offset: int = 0) -> Tuple[Value, int]:
    """Decode one value starting at `offset`.

    Returns (value, bytes consumed).  Bytes after the value are left
    alone, so several values can be read back to back.  Any violation
    raises MalformedData and nothing is returned.
    """
    if not isinstance(buf, (bytes, bytearray, memoryview)):
        raise TypeMismatch("decode requires bytes, got {}".format(type(buf).__name__))
    data = bytes(buf)
    if isinstance(offset, bool) or not isinstance(offset, int):
        raise TypeMismatch("offset must be int, got {}".format(type(offset).__name__))
    if offset < 0 or offset > len(data):
        raise MalformedData("offset {} outside buffer of {} bytes".format(offset, len(data)))
    val, end = _decode_one(data, offset, depth=0)
    return val, end - offset


def loads(buf: Buffer) -> Value:
    """Decode a buffer that holds exactly one value."""
    val, consumed = decode(buf)
    size = memoryview(buf).nbytes  # len() counts items, not bytes
    if consumed != size:
        raise MalformedData("{} trailing bytes after root value".format(size - consumed))
    return val
