#!/usr/bin/env python3
# tools/roundtrip_runner.py
#
# Round-trip invariants (property tests) for the obf codec.
#
# This runner:
# - generates random Value trees covering every tag
# - checks decode(encode(v)) == v and that the whole encoding is consumed
# - checks that rebuilding containers in shuffled insertion order
#   encodes to identical bytes
# - checks that every strict prefix of an encoding is rejected
#
# Exit code:
#   0 -> all checks passed
#   1 -> invariant violation

import os, sys, random
from typing import Any, List, Tuple

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
sys.path.insert(0, ROOT)

from obf import MalformedData, Type, Value, decode, encode

SEED = int(os.environ.get("OBF_SEED", "1337"))
TRIALS = int(os.environ.get("OBF_TRIALS", "2000"))
MAX_GEN_DEPTH = int(os.environ.get("OBF_GEN_MAX_DEPTH", "5"))
MAX_KEYS = int(os.environ.get("OBF_GEN_MAX_KEYS", "6"))
MAX_LIST = int(os.environ.get("OBF_GEN_MAX_LIST", "6"))
MAX_STR = int(os.environ.get("OBF_GEN_MAX_STR", "24"))
MAX_BYTES = int(os.environ.get("OBF_GEN_MAX_BYTES", "32"))

random.seed(SEED)

def rand_text() -> str:
    out = []
    for _ in range(random.randint(0, MAX_STR)):
        r = random.random()
        if r < 0.80:
            out.append(chr(random.randint(0x20, 0x7E)))
        elif r < 0.95:
            out.append(chr(random.randint(0xA0, 0xD7FF)))
        else:
            out.append(chr(random.randint(0x10000, 0x10FFFF)))
    return "".join(out)

def rand_bytes() -> bytes:
    return bytes(random.getrandbits(8) for _ in range(random.randint(0, MAX_BYTES)))

def rand_integer() -> Value:
    bits = random.choice([8, 16, 32, 64])
    n = random.getrandbits(bits)
    r = random.random()
    if r < 0.6:
        return Value.integer(n)
    ctor = {8: Value.int8, 16: Value.int16, 32: Value.int32, 64: Value.int64}[bits]
    return ctor(n)

def rand_scalar() -> Value:
    r = random.random()
    if r < 0.10:
        return Value()
    if r < 0.45:
        return rand_integer()
    if r < 0.55:
        return Value.float32(random.uniform(-1e6, 1e6))
    if r < 0.65:
        return Value.float64(random.uniform(-1e300, 1e300))
    if r < 0.85:
        return Value.string(rand_text())
    return Value.byte_array(rand_bytes())

def rand_tree(depth: int = 0) -> Value:
    if depth >= MAX_GEN_DEPTH or random.random() < 0.4:
        return rand_scalar()
    r = random.random()
    if r < 0.33:
        obj = Value(Type.OBJECT)
        for _ in range(random.randint(0, MAX_KEYS)):
            obj.set(random.getrandbits(32), rand_tree(depth + 1))
        return obj
    if r < 0.66:
        d = Value(Type.DICTIONARY)
        for _ in range(random.randint(0, MAX_KEYS)):
            d.set(rand_text(), rand_tree(depth + 1))
        return d
    arr = Value(Type.ARRAY)
    for _ in range(random.randint(0, MAX_LIST)):
        arr.append(rand_tree(depth + 1))
    return arr

def reinsert_shuffled(val: Value) -> Value:
    """Rebuild every keyed container with its keys inserted in random order."""
    if val.type in (Type.OBJECT, Type.DICTIONARY):
        entries: List[Tuple[Any, Value]] = val.items()
        random.shuffle(entries)
        out = Value(val.type)
        for k, child in entries:
            out.set(k, reinsert_shuffled(child))
        return out
    if val.type == Type.ARRAY:
        return Value.array([reinsert_shuffled(child) for child in val])
    return val.copy()

def fail(label: str, val: Value, trial: int) -> None:
    print("VIOLATION:", label)
    print("TRIAL:", trial)
    print("VALUE:", repr(val)[:4000])
    raise SystemExit(1)

def main() -> int:
    for i in range(TRIALS):
        tree = rand_tree()
        data = encode(tree)

        got, consumed = decode(data)
        if got != tree:
            fail("round trip changed the value", tree, i)
        if consumed != len(data):
            fail("consumed {} of {} bytes".format(consumed, len(data)), tree, i)

        if encode(reinsert_shuffled(tree)) != data:
            fail("encoding depends on insertion order", tree, i)

        for cut in range(len(data)):
            try:
                decode(data[:cut])
            except MalformedData:
                continue
            fail("prefix of {} bytes decoded".format(cut), tree, i)

    print(f"OK: trials={TRIALS} seed={SEED} (no violations)")
    return 0

if __name__ == "__main__":
    raise SystemExit(main())
