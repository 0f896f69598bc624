"""OBF constants: type tags, integer width thresholds, wire formats.

Every value on the wire is one tag byte followed by a tag-specific
payload.  Multi-byte fields are big-endian.
"""

from __future__ import annotations

import enum
from typing import Dict


class Type(enum.IntEnum):
    """Value tags.  The integer value is the tag byte on the wire."""

    NONE = 0
    INT8 = 1
    INT16 = 2
    INT32 = 3
    INT64 = 4
    FLOAT = 5
    DOUBLE = 6
    STRING = 7
    LONG_STRING = 8
    BYTE_ARRAY = 9
    OBJECT = 10
    ARRAY = 11
    DICTIONARY = 12


INTEGER_TYPES = frozenset({Type.INT8, Type.INT16, Type.INT32, Type.INT64})
FLOAT_TYPES = frozenset({Type.FLOAT, Type.DOUBLE})
STRING_TYPES = frozenset({Type.STRING, Type.LONG_STRING})
CONTAINER_TYPES = frozenset({Type.OBJECT, Type.ARRAY, Type.DICTIONARY})

# ── Integer thresholds ───────────────────────────────────────
# Python ints are arbitrary-precision, so widths are enforced by
# explicit comparison against these bounds.
UINT8_MAX: int = 0xFF
UINT16_MAX: int = 0xFFFF
UINT32_MAX: int = 0xFFFFFFFF

# ── Length limits ────────────────────────────────────────────
# STRING carries a u16 length, LONG_STRING / BYTE_ARRAY a u32 length.
MAX_STRING_BYTES: int = UINT16_MAX
MAX_LONG_STRING_BYTES: int = UINT32_MAX
MAX_BYTE_ARRAY_BYTES: int = UINT32_MAX
MAX_CONTAINER_ENTRIES: int = UINT32_MAX
MAX_KEY_BYTES: int = UINT16_MAX

# Most containers a chain of nested values may pass through.  Enforced
# when building Values and when decoding, so anything that can be built
# also decodes, and hostile input cannot exhaust the interpreter stack.
MAX_DEPTH: int = 256

# ── struct formats (big-endian) ──────────────────────────────
FMT_U8 = ">B"
FMT_U16 = ">H"
FMT_U32 = ">I"
FMT_U64 = ">Q"
FMT_F32 = ">f"
FMT_F64 = ">d"

INTEGER_FORMATS: Dict[Type, str] = {
    Type.INT8: FMT_U8,
    Type.INT16: FMT_U16,
    Type.INT32: FMT_U32,
    Type.INT64: FMT_U64,
}
