"""OBF error codes and exception classes.

Two failure kinds come out of the format itself: TypeMismatch when a
Value is used as something it is not, and MalformedData when decode is
handed bytes that cannot be a valid encoding.  OutOfRange covers
numbers, keys and lengths the wire format has no room for; rejecting
them at construction time is what keeps encode total.
"""

from __future__ import annotations

# ── Error codes ──────────────────────────────────────────────

ERR_TYPE_MISMATCH: str = "ERR_TYPE_MISMATCH"  # wrong tag family for the operation
ERR_MALFORMED: str = "ERR_MALFORMED"          # truncated input, unknown tag
ERR_RANGE: str = "ERR_RANGE"                  # value does not fit its field


class ObfError(Exception):
    """Base class for OBF errors.

    The `.code` attribute is one of the ERR_* strings above and is what
    the conformance vectors compare against.
    """

    code: str = ""

    def __init__(self, msg: str = "") -> None:
        super().__init__(msg or self.code)


class TypeMismatch(ObfError, TypeError):
    """An accessor or container operation was applied to the wrong tag."""

    code = ERR_TYPE_MISMATCH


class MalformedData(ObfError, ValueError):
    """Decode input is truncated or carries an unknown tag."""

    code = ERR_MALFORMED


class OutOfRange(ObfError, ValueError):
    """A number, key, index or length does not fit where it is going."""

    code = ERR_RANGE
