"""Canonical byte encoding shared by the ticket issuer and the verifier.

Version ``ticket-v1`` rules:
- a JSON object with the fixed field order ticket_id, amount, currency, expires_at
- compact separators, no whitespace
- strings NFC-normalized, escaped with ``ensure_ascii=False``
- numbers in fixed-point notation (no exponent), trailing fractional zeros
  stripped, signed zero rendered as ``0``
- binary floats, NaN and infinities rejected (use Decimal for exact amounts)

For integer amounts the output is byte-identical to ``JSON.stringify`` of the
same object, which is what JavaScript issuers sign.
"""

from __future__ import annotations

import hashlib
import json
import unicodedata
from decimal import Decimal, DecimalException
from typing import Any, Mapping

CANONICAL_VERSION = "ticket-v1"
TICKET_FIELDS = ("ticket_id", "amount", "currency", "expires_at")

_JSON_SEPARATORS = (",", ":")
MAX_DECIMAL_EXPONENT = 64


class CanonicalizationError(ValueError):
    """Raised when a value cannot be represented in canonical form."""


def canonical_ticket_bytes(data: Mapping[str, Any]) -> bytes:
    """Return the exact bytes an issuer signs for the given ticket data."""
    return canonical_ticket_text(data).encode("utf-8")


def canonical_ticket_text(data: Mapping[str, Any]) -> str:
    keys = set(data.keys())
    missing = [name for name in TICKET_FIELDS if name not in keys]
    if missing:
        raise CanonicalizationError(f"ticket data missing fields: {', '.join(missing)}")
    extra = sorted(str(key) for key in keys.difference(TICKET_FIELDS))
    if extra:
        raise CanonicalizationError(f"ticket data has unexpected fields: {', '.join(extra)}")

    ticket_id = data["ticket_id"]
    currency = data["currency"]
    if not isinstance(ticket_id, str):
        raise CanonicalizationError("ticket_id must be a string")
    if not isinstance(currency, str):
        raise CanonicalizationError("currency must be a string")
    expires_at = data["expires_at"]
    if isinstance(expires_at, bool) or not isinstance(expires_at, int):
        raise CanonicalizationError("expires_at must be an integer")

    parts = (
        ("ticket_id", _canonical_string(ticket_id)),
        ("amount", _canonical_number(data["amount"])),
        ("currency", _canonical_string(currency)),
        ("expires_at", str(expires_at)),
    )
    return "{" + ",".join(f'"{name}":{text}' for name, text in parts) + "}"


def canonical_json(value: Any) -> str:
    """Canonical JSON for plain values (strings, ints, Decimals, lists, None)."""
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    if isinstance(value, (int, Decimal, float)):
        return _canonical_number(value)
    if isinstance(value, str):
        return _canonical_string(value)
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(canonical_json(item) for item in value) + "]"
    raise CanonicalizationError(f"type {type(value).__name__} is not supported")


def sha256_hex(value: Any) -> str:
    """Return the SHA-256 hex digest of the canonical JSON of ``value``."""
    return hashlib.sha256(canonical_json(value).encode("utf-8")).hexdigest()


def _canonical_string(value: str) -> str:
    normalized = unicodedata.normalize("NFC", value)
    return json.dumps(normalized, ensure_ascii=False, separators=_JSON_SEPARATORS)


def _canonical_number(value: Any) -> str:
    # NOTE: bool is a subclass of int, so check bool before int.
    if isinstance(value, bool):
        raise CanonicalizationError("booleans are not numbers")
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        raise CanonicalizationError("floats are rejected; use Decimal for exact numbers")
    if isinstance(value, Decimal):
        return _canonical_decimal(value)
    raise CanonicalizationError(f"type {type(value).__name__} is not a number")


def _canonical_decimal(value: Decimal) -> str:
    if not value.is_finite():
        raise CanonicalizationError("NaN/Infinity are rejected")
    # JSON has no "-0"; normalize any signed zero to "0".
    if value.is_zero():
        return "0"
    # Fixed-point text grows with the exponent; keep it bounded.
    if abs(value.adjusted()) > MAX_DECIMAL_EXPONENT:
        raise CanonicalizationError(
            f"number magnitude out of range (|exponent| > {MAX_DECIMAL_EXPONENT})"
        )
    try:
        normalized = value.normalize()
    except DecimalException as exc:
        raise CanonicalizationError("invalid decimal value") from exc

    # format(..., "f") never uses exponent notation.
    text = format(normalized, "f")
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    if text == "-0":
        return "0"
    return text
