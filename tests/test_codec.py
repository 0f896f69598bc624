"""Unit tests for the obf codec: wire layout, round trips, malformed input.

Golden vectors are in test_conformance.py; these tests pin down the
byte layout per tag and the decode validation paths.
"""

from __future__ import annotations

import math
import os
import struct
import sys
import unittest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from obf import (
    ERR_MALFORMED,
    MAX_DEPTH,
    MalformedData,
    OutOfRange,
    Type,
    TypeMismatch,
    Value,
    decode,
    dumps,
    encode,
    encode_into,
    loads,
)


def _sample_tree() -> Value:
    root = Value.dictionary({
        "none": None,
        "i8": Value.int8(7),
        "i16": Value.int16(-2),
        "i32": Value.integer(70000),
        "i64": Value.integer(2**40),
        "f": Value.float32(0.25),
        "d": Value.float64(-1e-300),
        "s": "ouzel",
        "blob": b"\x00\x01\xff",
        "obj": {9: "nine", 2: [1, 2.5]},
        "list": [None, "x", {"k": b""}],
    })
    root.set("empty_obj", Value(Type.OBJECT))
    root.set("empty_arr", Value(Type.ARRAY))
    root.set("empty_dict", Value(Type.DICTIONARY))
    return root


# ── Per-tag layout ────────────────────────────────────────────

class TestScalarLayout(unittest.TestCase):
    def test_none(self):
        self.assertEqual(encode(Value()), b"\x00")

    def test_integers_use_tag_width(self):
        self.assertEqual(encode(Value.integer(5)), b"\x01\x05")
        self.assertEqual(encode(Value.integer(0x1234)), b"\x02\x12\x34")
        self.assertEqual(encode(Value.integer(0x12345678)), b"\x03\x12\x34\x56\x78")
        self.assertEqual(encode(Value.integer(2**32)),
                         b"\x04\x00\x00\x00\x01\x00\x00\x00\x00")

    def test_forced_width(self):
        self.assertEqual(encode(Value.int32(5)), b"\x03\x00\x00\x00\x05")

    def test_negative_two_complement(self):
        self.assertEqual(encode(Value.integer(-1)), b"\x04" + b"\xff" * 8)
        self.assertEqual(encode(Value.int8(-1)), b"\x01\xff")

    def test_float(self):
        self.assertEqual(encode(Value.float32(1.5)), b"\x05\x3f\xc0\x00\x00")

    def test_double(self):
        self.assertEqual(encode(Value.float64(1.5)), b"\x06\x3f\xf8" + b"\x00" * 6)

    def test_string(self):
        self.assertEqual(encode(Value.string("abc")), b"\x07\x00\x03abc")

    def test_long_string(self):
        data = encode(Value.string("x" * 65536))
        self.assertEqual(data[:5], b"\x08\x00\x01\x00\x00")
        self.assertEqual(len(data), 5 + 65536)

    def test_string_boundary(self):
        data = encode(Value.string("x" * 65535))
        self.assertEqual(data[:3], b"\x07\xff\xff")
        self.assertEqual(len(data), 3 + 65535)

    def test_byte_array(self):
        self.assertEqual(encode(Value.byte_array(b"\x01\x02")),
                         b"\x09\x00\x00\x00\x02\x01\x02")


class TestContainerLayout(unittest.TestCase):
    def test_object_ascending_keys(self):
        obj = Value(Type.OBJECT)
        for k in (5, 1, 3):
            obj.set(k, k)
        expected = (
            b"\x0a\x00\x00\x00\x03"
            b"\x00\x00\x00\x01\x01\x01"
            b"\x00\x00\x00\x03\x01\x03"
            b"\x00\x00\x00\x05\x01\x05"
        )
        self.assertEqual(encode(obj), expected)

    def test_dictionary_ascending_keys(self):
        d = Value(Type.DICTIONARY)
        d.set("b", 1)
        d.set("a", 2)
        expected = (
            b"\x0c\x00\x00\x00\x02"
            b"\x00\x01a\x01\x02"
            b"\x00\x01b\x01\x01"
        )
        self.assertEqual(encode(d), expected)

    def test_array_keeps_order(self):
        self.assertEqual(encode(Value.array([2, 1])),
                         b"\x0b\x00\x00\x00\x02\x01\x02\x01\x01")

    def test_empty_containers(self):
        self.assertEqual(encode(Value(Type.OBJECT)), b"\x0a\x00\x00\x00\x00")
        self.assertEqual(encode(Value(Type.ARRAY)), b"\x0b\x00\x00\x00\x00")
        self.assertEqual(encode(Value(Type.DICTIONARY)), b"\x0c\x00\x00\x00\x00")

    def test_insertion_order_irrelevant(self):
        a = Value.dictionary({"z": 1, "a": 2, "m": 3})
        b = Value.dictionary({"a": 2, "m": 3, "z": 1})
        self.assertEqual(encode(a), encode(b))


# ── Dictionary scenario ───────────────────────────────────────

class TestScenario(unittest.TestCase):
    EXPECTED = (
        b"\x0c\x00\x00\x00\x02"
        b"\x00\x02id" b"\x03\x00\x00\x00\x2a"
        b"\x00\x04name" b"\x07\x00\x05ouzel"
    )

    def test_encode(self):
        v = Value.dictionary({"id": Value.int32(42), "name": Value.string("ouzel")})
        self.assertEqual(encode(v), self.EXPECTED)

    def test_decode(self):
        v, consumed = decode(self.EXPECTED)
        self.assertEqual(consumed, len(self.EXPECTED))
        self.assertEqual(v.type, Type.DICTIONARY)
        self.assertEqual(v.get("id").type, Type.INT32)
        self.assertEqual(v.get("id").as_uint32(), 42)
        self.assertEqual(v.get("name").as_string(), "ouzel")
        self.assertEqual(v, Value.dictionary({"id": Value.int32(42), "name": "ouzel"}))


# ── Round trips ───────────────────────────────────────────────

class TestRoundTrip(unittest.TestCase):
    def test_sample_tree(self):
        v = _sample_tree()
        data = encode(v)
        got, consumed = decode(data)
        self.assertEqual(got, v)
        self.assertEqual(consumed, len(data))

    def test_scalars(self):
        values = [
            Value(),
            Value.integer(0),
            Value.integer(2**64 - 1),
            Value.int64(1),
            Value.float32(-0.0),
            Value.float32(math.inf),
            Value.float64(math.nan),
            Value.string(""),
            Value.string(b"\xff\xfe"),
            Value.byte_array(b""),
        ]
        for v in values:
            with self.subTest(v=v):
                self.assertEqual(loads(encode(v)), v)

    def test_decoded_tag_is_kept(self):
        """A narrow value sent with a wide tag comes back with that tag."""
        v, _ = decode(b"\x04\x00\x00\x00\x00\x00\x00\x00\x05")
        self.assertEqual(v.type, Type.INT64)
        self.assertEqual(v.as_uint8(), 5)

    def test_short_long_string_kept(self):
        data = b"\x08\x00\x00\x00\x02hi"
        v = loads(data)
        self.assertEqual(v.type, Type.LONG_STRING)
        self.assertEqual(encode(v), data)

    def test_non_utf8_dictionary_key(self):
        data = b"\x0c\x00\x00\x00\x01\x00\x01\xff\x00"
        v = loads(data)
        self.assertEqual(encode(v), data)

    def test_decode_at_offset(self):
        first = encode(Value.integer(1))
        second = encode(Value.string("two"))
        buf = first + second
        v1, n1 = decode(buf)
        v2, n2 = decode(buf, n1)
        self.assertEqual(v1.as_uint8(), 1)
        self.assertEqual(v2.as_string(), "two")
        self.assertEqual(n1 + n2, len(buf))

    def test_accepts_bytearray_and_memoryview(self):
        data = encode(Value.array([1, "a"]))
        for buf in (bytearray(data), memoryview(data)):
            with self.subTest(kind=type(buf).__name__):
                self.assertEqual(loads(buf), Value.array([1, "a"]))

    def test_loads_counts_bytes_of_wide_views(self):
        data = encode(Value.string("a"))
        self.assertEqual(len(data), 4)
        view = memoryview(data).cast("H")
        self.assertEqual(len(view), 2)
        self.assertEqual(loads(view), Value.string("a"))
        with self.assertRaises(MalformedData):
            loads(memoryview(data + b"\x00\x00").cast("H"))


# ── Appending encoder ─────────────────────────────────────────

class TestEncodeInto(unittest.TestCase):
    def test_appends_and_counts(self):
        out = bytearray(b"HDR")
        n = encode_into(Value.integer(0x1234), out)
        self.assertEqual(n, 3)
        self.assertEqual(bytes(out), b"HDR\x02\x12\x34")

    def test_dumps_alias(self):
        v = Value.array([1])
        self.assertEqual(dumps(v), encode(v))

    def test_requires_value(self):
        with self.assertRaises(TypeMismatch):
            encode({"a": 1})


# ── Malformed input ───────────────────────────────────────────

class TestMalformed(unittest.TestCase):
    def assertMalformed(self, data: bytes, offset: int = 0) -> None:
        with self.assertRaises(MalformedData) as ctx:
            decode(data, offset)
        self.assertEqual(ctx.exception.code, ERR_MALFORMED)

    def test_unknown_tag(self):
        self.assertMalformed(b"\xff")
        self.assertMalformed(b"\x0d")

    def test_empty_buffer(self):
        self.assertMalformed(b"")

    def test_string_length_past_end(self):
        self.assertMalformed(b"\x07\x00\x0aabc")

    def test_truncated_length_prefix(self):
        self.assertMalformed(b"\x07\x00")
        self.assertMalformed(b"\x09\x00\x00\x00")

    def test_truncated_integers(self):
        for tag, size in ((1, 1), (2, 2), (3, 4), (4, 8), (5, 4), (6, 8)):
            with self.subTest(tag=tag):
                self.assertMalformed(bytes([tag]) + b"\x00" * (size - 1))

    def test_container_count_past_end(self):
        self.assertMalformed(b"\x0b\x00\x00\x00\x03\x01\x01")
        self.assertMalformed(b"\x0b\xff\xff\xff\xff")

    def test_truncated_object_key(self):
        self.assertMalformed(b"\x0a\x00\x00\x00\x01\x00\x00")

    def test_truncated_dictionary_key(self):
        self.assertMalformed(b"\x0c\x00\x00\x00\x01\x00\x05ab\x00")

    def test_nested_failure_fails_whole_call(self):
        good = encode(Value.array([1, 2]))
        self.assertMalformed(good[:-1])

    def test_bad_child_tag(self):
        self.assertMalformed(b"\x0b\x00\x00\x00\x01\xee")

    def test_offset_outside_buffer(self):
        self.assertMalformed(b"\x00", 2)
        self.assertMalformed(b"\x00", -1)

    def test_excessive_nesting(self):
        data = b"\x0b\x00\x00\x00\x01" * 300 + b"\x00"
        self.assertMalformed(data)

    def test_nesting_limit_matches_construction(self):
        # The deepest tree that can be built encodes and decodes; one more
        # level can neither be built nor decoded.
        deepest = Value.integer(0)
        for _ in range(MAX_DEPTH):
            deepest = Value.array([deepest])
        data = encode(deepest)
        self.assertEqual(loads(data), deepest)
        with self.assertRaises(OutOfRange):
            Value.array([deepest])
        self.assertMalformed(b"\x0b\x00\x00\x00\x01" + data)

    def test_decoded_tree_keeps_the_limit(self):
        data = b"\x0b\x00\x00\x00\x01" * MAX_DEPTH + b"\x00"
        node = loads(data)
        for _ in range(MAX_DEPTH):
            node = node.item(0)
        with self.assertRaises(OutOfRange):
            node.get_or_insert_array(0)

    def test_loads_rejects_trailing_bytes(self):
        with self.assertRaises(MalformedData):
            loads(b"\x00\x00")

    def test_decode_allows_trailing_bytes(self):
        v, consumed = decode(b"\x01\x05\xff")
        self.assertEqual(consumed, 2)
        self.assertEqual(v.as_uint8(), 5)

    def test_malformed_is_value_error(self):
        with self.assertRaises(ValueError):
            loads(b"\xff")

    def test_non_bytes_input(self):
        with self.assertRaises(TypeMismatch):
            decode("\x00")


if __name__ == "__main__":
    unittest.main()
