"""Offline signature verification of issued tickets.

verify() is pure: no I/O, no shared state. Any malformed payload, decode
failure, or failed cryptographic check yields False rather than an exception.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Mapping, Union

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey
from pydantic import ValidationError

from .canonical import CanonicalizationError
from .errors import KeyLoadError
from .ledger.signing import load_public_key, verify_message
from .types import SignedTicket, TicketData

_logger = logging.getLogger(__name__)

DEFAULT_EXPIRY_LEEWAY_SECONDS = 300

PayloadLike = Union[SignedTicket, Mapping[str, Any], str, bytes]
PublicKeyLike = Union[Ed25519PublicKey, str, bytes]


def parse_payload(payload: PayloadLike) -> SignedTicket | None:
    """Return the payload as a SignedTicket, or None if it is malformed."""
    if isinstance(payload, SignedTicket):
        return payload
    try:
        if isinstance(payload, (str, bytes)):
            return SignedTicket.from_json(payload)
        return SignedTicket.model_validate(payload)
    except (ValidationError, ValueError, TypeError, RecursionError) as exc:
        _logger.debug("malformed ticket payload: %s", exc)
        return None


def verify(payload: PayloadLike, public_key: PublicKeyLike) -> bool:
    """Check the detached signature of an issued ticket."""
    ticket = parse_payload(payload)
    if ticket is None:
        return False
    if not isinstance(public_key, Ed25519PublicKey):
        try:
            public_key = load_public_key(public_key)
        except KeyLoadError as exc:
            _logger.debug("public key decode failed: %s", exc)
            return False
    try:
        message = ticket.data.canonical_bytes()
    except CanonicalizationError as exc:
        _logger.debug("ticket data not canonicalizable: %s", exc)
        return False
    return verify_message(public_key, message, ticket.sig)


def is_expired(
    data: TicketData,
    now: datetime,
    *,
    leeway_seconds: int = DEFAULT_EXPIRY_LEEWAY_SECONDS,
) -> bool:
    """Whether the ticket expired before ``now``, allowing for clock drift."""
    if leeway_seconds < 0:
        raise ValueError("leeway_seconds must be >= 0")
    return now.timestamp() > data.expires_at + leeway_seconds

