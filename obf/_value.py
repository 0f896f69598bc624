"""OBF Value — the self-describing variant node.

A Value holds exactly one payload, selected by its Type tag:

    NONE                      — no payload
    INT8 / INT16 / INT32 / INT64
                              — unsigned 64-bit pattern; the tag is the
                                narrowest width that holds it losslessly
    FLOAT / DOUBLE            — Python float; FLOAT is kept rounded to
                                single precision
    STRING / LONG_STRING      — raw text bytes; tag chosen by length
    BYTE_ARRAY                — raw bytes
    OBJECT                    — {u32 key: Value}, ascending key order
    ARRAY                     — [Value, ...], insertion order
    DICTIONARY                — {str key: Value}, ascending key-byte order

Values own their children outright.  Every mutator stores a deep copy of
what it is given, so two trees never share a node and no cycle can form.  Each node also
knows how many containers sit above it, which keeps every tree within
MAX_DEPTH levels and therefore decodable.

Container access is asymmetric: get_or_insert_array()
turns a NONE value into an ARRAY on first use, while OBJECT and
DICTIONARY must be created explicitly before get/set/has work on them.
"""

from __future__ import annotations

import math
import struct
from collections.abc import Mapping
from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple, Union

from ._constants import (
    CONTAINER_TYPES,
    FLOAT_TYPES,
    FMT_F32,
    INTEGER_TYPES,
    MAX_BYTE_ARRAY_BYTES,
    MAX_CONTAINER_ENTRIES,
    MAX_DEPTH,
    MAX_KEY_BYTES,
    MAX_LONG_STRING_BYTES,
    MAX_STRING_BYTES,
    STRING_TYPES,
    UINT8_MAX,
    UINT16_MAX,
    UINT32_MAX,
    Type,
)
from ._errors import OutOfRange, TypeMismatch

Key = Union[int, str]


# ── Payload helpers ──────────────────────────────────────────

def _empty_payload(tag: Type) -> Any:
    if tag in INTEGER_TYPES:
        return 0
    if tag in FLOAT_TYPES:
        return 0.0
    if tag in STRING_TYPES or tag == Type.BYTE_ARRAY:
        return b""
    if tag == Type.OBJECT or tag == Type.DICTIONARY:
        return {}
    if tag == Type.ARRAY:
        return []
    return None


def _is_int(n: Any) -> bool:
    # bool is an int subclass; True must not silently become INT8 1.
    return isinstance(n, int) and not isinstance(n, bool)


def _to_pattern(n: Any, bits: int) -> int:
    """Return the unsigned `bits`-wide pattern of n (signed or unsigned input)."""
    if not _is_int(n):
        raise TypeMismatch("integer required, got {}".format(type(n).__name__))
    if n < -(1 << (bits - 1)) or n > (1 << bits) - 1:
        raise OutOfRange("{} does not fit in {} bits".format(n, bits))
    return n & ((1 << bits) - 1)


def _signed(pattern: int, bits: int) -> int:
    pattern &= (1 << bits) - 1
    if pattern >= 1 << (bits - 1):
        pattern -= 1 << bits
    return pattern


def _minimal_int_type(pattern: int) -> Type:
    if pattern <= UINT8_MAX:
        return Type.INT8
    if pattern <= UINT16_MAX:
        return Type.INT16
    if pattern <= UINT32_MAX:
        return Type.INT32
    return Type.INT64


def _round_float32(x: float) -> float:
    """Round to the nearest single-precision value, saturating to ±inf."""
    try:
        return struct.unpack(FMT_F32, struct.pack(FMT_F32, x))[0]
    except OverflowError:
        return math.copysign(math.inf, x)


def _to_float(x: Any) -> float:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        raise TypeMismatch("number required, got {}".format(type(x).__name__))
    return float(x)


def _text_bytes(s: Any) -> bytes:
    # surrogateescape lets undecodable bytes survive a str round trip.
    if isinstance(s, str):
        return key_bytes(s)
    if isinstance(s, (bytes, bytearray, memoryview)):
        return bytes(s)
    raise TypeMismatch("text required, got {}".format(type(s).__name__))


def _string_type(raw: bytes) -> Type:
    if len(raw) <= MAX_STRING_BYTES:
        return Type.STRING
    if len(raw) > MAX_LONG_STRING_BYTES:
        raise OutOfRange("string of {} bytes exceeds u32 length".format(len(raw)))
    return Type.LONG_STRING


def key_bytes(key: str) -> bytes:
    """UTF-8 wire form of text; for DICTIONARY keys also the sort key."""
    try:
        return key.encode("utf-8", "surrogateescape")
    except UnicodeEncodeError:
        raise OutOfRange("text holds a lone surrogate and has no UTF-8 form")


def _too_deep() -> str:
    return "more than {} containers nested".format(MAX_DEPTH)


def _object_key(key: Any) -> int:
    if not _is_int(key):
        raise TypeMismatch("OBJECT key must be int, got {}".format(type(key).__name__))
    if key < 0 or key > UINT32_MAX:
        raise OutOfRange("OBJECT key {} outside u32 range".format(key))
    return key


def _dictionary_key(key: Any) -> str:
    if not isinstance(key, str):
        raise TypeMismatch("DICTIONARY key must be str, got {}".format(type(key).__name__))
    if len(key_bytes(key)) > MAX_KEY_BYTES:
        raise OutOfRange("DICTIONARY key longer than {} bytes".format(MAX_KEY_BYTES))
    return key


def _index(index: Any) -> int:
    if not _is_int(index):
        raise TypeMismatch("ARRAY index must be int, got {}".format(type(index).__name__))
    return index


class Value:
    """A single OBF node.  See the module docstring for the tag model."""

    # _level counts the containers above this node in its tree (0 for a
    # root).  A container may sit at level MAX_DEPTH - 1 at most.
    __slots__ = ("_type", "_payload", "_level")

    __hash__ = None  # type: ignore[assignment]

    def __init__(self, tag: Type = Type.NONE) -> None:
        tag = Type(tag)
        self._type: Type = tag
        self._payload: Any = _empty_payload(tag)
        self._level: int = 0

    @classmethod
    def _make(cls, tag: Type, payload: Any, level: int = 0) -> "Value":
        val = cls.__new__(cls)
        val._type = tag
        val._payload = payload
        val._level = level
        return val

    # ── Scalar construction ───────────────────────────────────

    @classmethod
    def integer(cls, n: int) -> "Value":
        """Integer with the narrowest tag that holds it.

        Negative input is stored as its 64-bit two's complement pattern,
        which always needs INT64.
        """
        pattern = _to_pattern(n, 64)
        return cls._make(_minimal_int_type(pattern), pattern)

    @classmethod
    def int8(cls, n: int) -> "Value":
        return cls._make(Type.INT8, _to_pattern(n, 8))

    @classmethod
    def int16(cls, n: int) -> "Value":
        return cls._make(Type.INT16, _to_pattern(n, 16))

    @classmethod
    def int32(cls, n: int) -> "Value":
        return cls._make(Type.INT32, _to_pattern(n, 32))

    @classmethod
    def int64(cls, n: int) -> "Value":
        return cls._make(Type.INT64, _to_pattern(n, 64))

    @classmethod
    def float32(cls, x: float) -> "Value":
        return cls._make(Type.FLOAT, _round_float32(_to_float(x)))

    @classmethod
    def float64(cls, x: float) -> "Value":
        return cls._make(Type.DOUBLE, _to_float(x))

    @classmethod
    def string(cls, s: Union[str, bytes]) -> "Value":
        """STRING up to 65535 bytes, LONG_STRING beyond."""
        raw = _text_bytes(s)
        return cls._make(_string_type(raw), raw)

    @classmethod
    def byte_array(cls, data: Union[bytes, bytearray, memoryview]) -> "Value":
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeMismatch("bytes required, got {}".format(type(data).__name__))
        raw = bytes(data)
        if len(raw) > MAX_BYTE_ARRAY_BYTES:
            raise OutOfRange("byte array of {} bytes exceeds u32 length".format(len(raw)))
        return cls._make(Type.BYTE_ARRAY, raw)

    # ── Container construction ────────────────────────────────

    @classmethod
    def object(cls, entries: Optional[Mapping] = None) -> "Value":
        payload: Dict[int, Value] = {}
        for k, v in (entries or {}).items():
            payload[_object_key(k)] = cls._convert(v, 1)
        return cls._make(Type.OBJECT, payload)

    @classmethod
    def array(cls, items: Iterable = ()) -> "Value":
        return cls._make(Type.ARRAY, [cls._convert(item, 1) for item in items])

    @classmethod
    def dictionary(cls, entries: Optional[Mapping] = None) -> "Value":
        payload: Dict[str, Value] = {}
        for k, v in (entries or {}).items():
            payload[_dictionary_key(k)] = cls._convert(v, 1)
        return cls._make(Type.DICTIONARY, payload)

    @classmethod
    def of(cls, obj: Any) -> "Value":
        """Convert a native Python object (or copy a Value).

        Type mapping:
            None               → NONE
            int                → minimal-width integer
            float              → DOUBLE
            str                → STRING / LONG_STRING
            bytes-like         → BYTE_ARRAY
            list / tuple       → ARRAY
            dict, int keys     → OBJECT
            dict, str keys     → DICTIONARY (also the empty dict)

        bool is rejected: the format has no boolean tag, and letting it
        through the int branch would make True indistinguishable from 1.
        Nesting more than MAX_DEPTH containers raises OutOfRange.
        """
        return cls._convert(obj, 0)

    @classmethod
    def _convert(cls, obj: Any, level: int) -> "Value":
        # Builds the node that will sit at `level` in its final tree.
        if isinstance(obj, Value):
            if level + obj._height() > MAX_DEPTH:
                raise OutOfRange(_too_deep())
            return obj._copy_at(level)
        if obj is None:
            return cls._make(Type.NONE, None, level)
        if isinstance(obj, bool):
            raise TypeMismatch("bool has no OBF tag; convert it to an integer explicitly")
        if isinstance(obj, (list, tuple, Mapping)):
            if level >= MAX_DEPTH:
                raise OutOfRange(_too_deep())
            if isinstance(obj, Mapping):
                if obj and all(_is_int(k) for k in obj):
                    tag, key_of = Type.OBJECT, _object_key
                else:
                    tag, key_of = Type.DICTIONARY, _dictionary_key
                entries: Dict[Key, Value] = {}
                for k, v in obj.items():
                    entries[key_of(k)] = cls._convert(v, level + 1)
                return cls._make(tag, entries, level)
            items: List[Value] = []
            for item in obj:
                items.append(cls._convert(item, level + 1))
            return cls._make(Type.ARRAY, items, level)
        if isinstance(obj, int):
            val = cls.integer(obj)
        elif isinstance(obj, float):
            val = cls.float64(obj)
        elif isinstance(obj, str):
            val = cls.string(obj)
        elif isinstance(obj, (bytes, bytearray, memoryview)):
            val = cls.byte_array(obj)
        else:
            raise TypeMismatch("unsupported type: {}".format(type(obj).__name__))
        val._level = level
        return val

    # ── Copy / assignment ─────────────────────────────────────

    def copy(self) -> "Value":
        """Deep copy of this subtree."""
        return self._copy_at(0)

    def _copy_at(self, level: int) -> "Value":
        if self._type == Type.OBJECT or self._type == Type.DICTIONARY:
            payload: Any = {k: v._copy_at(level + 1) for k, v in self._payload.items()}
        elif self._type == Type.ARRAY:
            payload = [v._copy_at(level + 1) for v in self._payload]
        else:
            payload = self._payload  # int, float, bytes, None are immutable
        return self._make(self._type, payload, level)

    def _height(self) -> int:
        # Containers on the longest path down from here, this one included.
        if self._type == Type.ARRAY:
            children: Iterable[Value] = self._payload
        elif self._type == Type.OBJECT or self._type == Type.DICTIONARY:
            children = self._payload.values()
        else:
            return 0
        return 1 + max((child._height() for child in children), default=0)

    __copy__ = copy

    def __deepcopy__(self, memo: Dict[int, Any]) -> "Value":
        return self.copy()

    def assign(self, other: Any) -> None:
        """Replace this Value's tag and payload with a copy of `other`."""
        src = Value._convert(other, self._level)
        self._type = src._type
        self._payload = src._payload

    # ── Tag inspection ────────────────────────────────────────

    @property
    def type(self) -> Type:
        return self._type

    def is_none(self) -> bool:
        return self._type == Type.NONE

    def is_integer(self) -> bool:
        return self._type in INTEGER_TYPES

    def is_float(self) -> bool:
        return self._type in FLOAT_TYPES

    def is_string(self) -> bool:
        return self._type in STRING_TYPES

    def _require(self, allowed: FrozenSet[Type], op: str) -> None:
        if self._type not in allowed:
            names = "/".join(sorted(t.name for t in allowed))
            raise TypeMismatch("{} requires {}, value is {}".format(op, names, self._type.name))

    # ── Scalar accessors ──────────────────────────────────────
    # Every integer reader accepts every integer tag and reinterprets
    # the stored pattern at its own width.

    def _int_pattern(self, op: str) -> int:
        self._require(INTEGER_TYPES, op)
        return self._payload

    def as_int8(self) -> int:
        return _signed(self._int_pattern("as_int8"), 8)

    def as_uint8(self) -> int:
        return self._int_pattern("as_uint8") & 0xFF

    def as_int16(self) -> int:
        return _signed(self._int_pattern("as_int16"), 16)

    def as_uint16(self) -> int:
        return self._int_pattern("as_uint16") & 0xFFFF

    def as_int32(self) -> int:
        return _signed(self._int_pattern("as_int32"), 32)

    def as_uint32(self) -> int:
        return self._int_pattern("as_uint32") & 0xFFFFFFFF

    def as_int64(self) -> int:
        return _signed(self._int_pattern("as_int64"), 64)

    def as_uint64(self) -> int:
        return self._int_pattern("as_uint64")

    def as_float(self) -> float:
        self._require(FLOAT_TYPES, "as_float")
        return _round_float32(self._payload)

    def as_double(self) -> float:
        self._require(FLOAT_TYPES, "as_double")
        return self._payload

    def as_string(self) -> str:
        self._require(STRING_TYPES, "as_string")
        return self._payload.decode("utf-8", "surrogateescape")

    def as_string_bytes(self) -> bytes:
        self._require(STRING_TYPES, "as_string_bytes")
        return self._payload

    def as_byte_array(self) -> bytes:
        self._require(frozenset({Type.BYTE_ARRAY}), "as_byte_array")
        return self._payload

    # ── Container views ───────────────────────────────────────

    def as_object(self) -> Mapping:
        """Read-only view of an OBJECT, keys ascending."""
        self._require(frozenset({Type.OBJECT}), "as_object")
        return MappingProxyType(dict(self.items()))

    def as_array(self) -> Tuple["Value", ...]:
        self._require(frozenset({Type.ARRAY}), "as_array")
        return tuple(self._payload)

    def as_dictionary(self) -> Mapping:
        """Read-only view of a DICTIONARY, keys ascending by UTF-8 bytes."""
        self._require(frozenset({Type.DICTIONARY}), "as_dictionary")
        return MappingProxyType(dict(self.items()))

    # ── Container operations ──────────────────────────────────

    def _check_lookup_key(self, key: Any, op: str) -> None:
        # Lookups never range-check: an impossible key is simply absent.
        self._require(frozenset({Type.OBJECT, Type.DICTIONARY}), op)
        if self._type == Type.OBJECT:
            if not _is_int(key):
                raise TypeMismatch("OBJECT key must be int, got {}".format(type(key).__name__))
        elif not isinstance(key, str):
            raise TypeMismatch("DICTIONARY key must be str, got {}".format(type(key).__name__))

    def get(self, key: Key) -> "Value":
        """Child at `key`, or a fresh NONE Value if there is none.

        OBJECT takes int keys, DICTIONARY str keys, ARRAY int indexes.
        """
        if self._type == Type.ARRAY:
            index = _index(key)
            if 0 <= index < len(self._payload):
                return self._payload[index]
            return Value()
        self._check_lookup_key(key, "get")
        child = self._payload.get(key)
        return child if child is not None else Value()

    def set(self, key: Key, value: Any) -> None:
        """Insert or overwrite the child at `key` with a copy of `value`.

        OBJECT and DICTIONARY only; ARRAY slots are written through
        item() or get_or_insert_array().
        """
        self._require(frozenset({Type.OBJECT, Type.DICTIONARY}), "set")
        if self._type == Type.OBJECT:
            self._payload[_object_key(key)] = Value._convert(value, self._level + 1)
        else:
            self._payload[_dictionary_key(key)] = Value._convert(value, self._level + 1)

    def has(self, key: Key) -> bool:
        if self._type == Type.ARRAY:
            index = _index(key)
            return 0 <= index < len(self._payload)
        self._check_lookup_key(key, "has")
        return key in self._payload

    __contains__ = has

    def get_or_insert_array(self, index: int) -> "Value":
        """Live ARRAY slot at `index`, growing the array as needed.

        A NONE value becomes an empty ARRAY first.  Slots created by
        growth are NONE values.
        """
        if self._type != Type.NONE:
            self._require(frozenset({Type.ARRAY}), "get_or_insert_array")
        index = _index(index)
        if index < 0 or index >= MAX_CONTAINER_ENTRIES:
            raise OutOfRange("ARRAY index {} out of range".format(index))
        if self._type == Type.NONE:
            if self._level >= MAX_DEPTH:
                raise OutOfRange(_too_deep())
            self._type = Type.ARRAY
            self._payload = []
        items: List[Value] = self._payload
        while len(items) <= index:
            items.append(Value._make(Type.NONE, None, self._level + 1))
        return items[index]

    def item(self, index: int) -> "Value":
        """Live ARRAY element; out-of-range indexes raise OutOfRange."""
        self._require(frozenset({Type.ARRAY}), "item")
        index = _index(index)
        if not 0 <= index < len(self._payload):
            raise OutOfRange("ARRAY index {} out of range".format(index))
        return self._payload[index]

    def append(self, value: Any) -> None:
        self._require(frozenset({Type.ARRAY}), "append")
        if len(self._payload) >= MAX_CONTAINER_ENTRIES:
            raise OutOfRange("ARRAY is full")
        self._payload.append(Value._convert(value, self._level + 1))

    def size(self) -> int:
        self._require(CONTAINER_TYPES, "size")
        return len(self._payload)

    __len__ = size

    def __bool__(self) -> bool:
        # Every Value is truthy, scalars and empty containers included.
        return True

    def keys(self) -> List[Key]:
        """OBJECT or DICTIONARY keys in encoding order."""
        self._require(frozenset({Type.OBJECT, Type.DICTIONARY}), "keys")
        if self._type == Type.OBJECT:
            return sorted(self._payload)
        return sorted(self._payload, key=key_bytes)

    def items(self) -> List[Tuple[Key, "Value"]]:
        return [(k, self._payload[k]) for k in self.keys()]

    def __iter__(self) -> Iterator["Value"]:
        self._require(frozenset({Type.ARRAY}), "iteration")
        return iter(list(self._payload))

    # ── Native conversion ─────────────────────────────────────

    def to_python(self) -> Any:
        """Inverse of Value.of(); integers come back unsigned."""
        tag = self._type
        if tag == Type.NONE:
            return None
        if tag in INTEGER_TYPES or tag in FLOAT_TYPES:
            return self._payload
        if tag in STRING_TYPES:
            return self.as_string()
        if tag == Type.BYTE_ARRAY:
            return self._payload
        if tag == Type.ARRAY:
            return [v.to_python() for v in self._payload]
        return {k: v.to_python() for k, v in self.items()}

    # ── Comparison / display ──────────────────────────────────

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Value):
            return NotImplemented
        if self._type != other._type:
            return False
        if self._type in FLOAT_TYPES:
            a, b = self._payload, other._payload
            return a == b or (math.isnan(a) and math.isnan(b))
        return self._payload == other._payload

    def __repr__(self) -> str:
        if self._type == Type.NONE:
            return "Value(NONE)"
        if self._type in (Type.OBJECT, Type.DICTIONARY):
            return "Value({}, {!r})".format(self._type.name, dict(self.items()))
        return "Value({}, {!r})".format(self._type.name, self._payload)
