"""Ticket issuing helpers (the issuer side of the offline contract).

The issuing service owns its HTTP surface and key storage; this module only
produces payloads the verifier accepts: a fresh ticket_id, canonical data
bytes, and a detached Ed25519 signature.
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from .ledger.signing import sign_message
from .types import SignedTicket, TicketData

DEFAULT_CURRENCY = "GMD"
DEFAULT_TTL_SECONDS = 24 * 60 * 60


def sign_ticket(data: TicketData, private_key: Ed25519PrivateKey) -> SignedTicket:
    return SignedTicket(data=data, sig=sign_message(private_key, data.canonical_bytes()))


def issue_ticket(
    amount: int | Decimal,
    private_key: Ed25519PrivateKey,
    *,
    currency: str = DEFAULT_CURRENCY,
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    now: datetime | None = None,
    ticket_id: str | None = None,
) -> SignedTicket:
    """Create and sign a new ticket that expires ``ttl_seconds`` from ``now``."""
    if ttl_seconds <= 0:
        raise ValueError("ttl_seconds must be > 0")
    now = now or datetime.now(timezone.utc)
    data = TicketData(
        ticket_id=ticket_id or str(uuid4()),
        amount=amount,
        currency=currency,
        expires_at=int(now.timestamp()) + ttl_seconds,
    )
    return sign_ticket(data, private_key)
