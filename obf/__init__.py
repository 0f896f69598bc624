"""obf — self-describing binary values.

Build a tree of Values, encode it to compact bytes, decode it back
without a schema.

Quick start:
    >>> from obf import Value, encode, decode
    >>> v = Value.dictionary({"id": Value.int32(42), "name": "ouzel"})
    >>> data = encode(v)
    >>> data[:5]
    b'\\x0c\\x00\\x00\\x00\\x02'
    >>> decode(data) == (v, len(data))
    True

Integers take the narrowest tag that holds them, so 10 encodes in two
bytes and 70000 in five:
    >>> Value.integer(10).type, Value.integer(70000).type
    (<Type.INT8: 1>, <Type.INT32: 3>)
"""

from __future__ import annotations

from ._codec import decode, dumps, encode, encode_into, loads
from ._constants import MAX_DEPTH, Type
from ._errors import (
    ERR_MALFORMED,
    ERR_RANGE,
    ERR_TYPE_MISMATCH,
    MalformedData,
    ObfError,
    OutOfRange,
    TypeMismatch,
)
from ._value import Value

__version__ = "1.0.0"

__all__ = [
    # Data model
    "Type",
    "Value",
    "MAX_DEPTH",
    # Codec
    "encode",
    "encode_into",
    "decode",
    "loads",
    "dumps",
    # Exceptions
    "ObfError",
    "TypeMismatch",
    "MalformedData",
    "OutOfRange",
    # Error codes
    "ERR_TYPE_MISMATCH",
    "ERR_MALFORMED",
    "ERR_RANGE",
]
