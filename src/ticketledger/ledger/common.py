"""Shared ledger chain helpers."""

from __future__ import annotations

from datetime import datetime, timezone

from ..canonical import sha256_hex

# Contains non-hex characters, so it can never collide with a digest.
GENESIS_HASH = "GENESIS_HASH"

SCANNED_AT_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def chain_hash(ticket_id: str, scanned_at: str, prev_hash: str) -> str:
    """Return the entry digest H(ticket_id, scanned_at, prev_hash).

    This is the single source of truth for ledger chain hashing.
    """
    return sha256_hex([ticket_id, scanned_at, prev_hash])


def format_scanned_at(value: datetime) -> str:
    if value.tzinfo is None or value.utcoffset() is None:
        raise ValueError("scanned_at must be timezone-aware")
    return value.astimezone(timezone.utc).strftime(SCANNED_AT_FORMAT)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
