"""Numeric domain checks shared by the engines.

Identifiers and scores are unsigned 64-bit values; amounts are signed
128-bit values. Python ints are unbounded, so call decoding enforces the
ranges explicitly. bool is rejected even though it subclasses int.
"""

from __future__ import annotations

from typing import Any

from stellarcade.errors import InvalidInputError

U64_MAX = 2**64 - 1
I128_MIN = -(2**127)
I128_MAX = 2**127 - 1


def require_u64(value: Any, field_name: str) -> int:
    """Decode an unsigned 64-bit integer argument."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field_name} must be an integer, got {type(value).__name__}")
    if not 0 <= value <= U64_MAX:
        raise InvalidInputError(f"{field_name} out of u64 range: {value}")
    return value


def require_i128(value: Any, field_name: str) -> int:
    """Decode a signed 128-bit integer argument.

    Sign is not checked here: negative amounts are a semantic error that
    each operation reports at its own position in the check order.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidInputError(f"{field_name} must be an integer, got {type(value).__name__}")
    if not I128_MIN <= value <= I128_MAX:
        raise InvalidInputError(f"{field_name} out of i128 range: {value}")
    return value
