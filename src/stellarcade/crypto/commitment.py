"""Criteria and rules commitments.

Badge criteria and tournament rules live off-ledger. The ledger only
stores a 32-byte SHA-256 commitment to the document, so anyone holding
the document can check it against the stored hash.

JSON documents are canonicalized before hashing (sorted keys, Unicode
preserved, UTF-8) so key order and whitespace do not change the
commitment. Any other file is hashed as raw bytes.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

from stellarcade.errors import InvalidInputError

COMMITMENT_BYTES = 32


def commitment_from_bytes(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def commitment_from_document(document: Any) -> bytes:
    """Commitment of an in-memory JSON-compatible document."""
    canonical = json.dumps(document, sort_keys=True, ensure_ascii=False).encode("utf-8")
    return commitment_from_bytes(canonical)


def commitment_from_file(path: Path) -> bytes:
    """Commitment of a criteria or rules file on disk."""
    if path.suffix.lower() == ".json":
        parsed = json.loads(path.read_text(encoding="utf-8"))
        return commitment_from_document(parsed)
    return commitment_from_bytes(path.read_bytes())


def parse_commitment(value: Any, field_name: str = "hash") -> bytes:
    """Decode a 32-byte commitment given as bytes or 64 hex characters."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            raw = bytes.fromhex(text)
        except ValueError as e:
            raise InvalidInputError(f"{field_name} is not valid hex") from e
    else:
        raise InvalidInputError(f"{field_name} must be bytes or hex, got {type(value).__name__}")
    if len(raw) != COMMITMENT_BYTES:
        raise InvalidInputError(
            f"{field_name} must be {COMMITMENT_BYTES} bytes, got {len(raw)}"
        )
    return raw
