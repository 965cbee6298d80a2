"""Scan pipeline run by a field device for every scanned payload."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from .config import ValidatorSettings
from .ledger.base import Ledger
from .ledger.common import utc_now
from .ledger.errors import DuplicateTicket, LedgerError
from .ledger.sqlite import SQLiteLedger
from .types import LedgerEntry, ScanOutcome, TicketData
from .verifier import (
    DEFAULT_EXPIRY_LEEWAY_SECONDS,
    PayloadLike,
    is_expired,
    parse_payload,
    verify,
)

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ScanResult:
    outcome: ScanOutcome
    reason: str
    ticket: TicketData | None = None
    entry: LedgerEntry | None = None

    @property
    def accepted(self) -> bool:
        return self.outcome is ScanOutcome.ACCEPTED

    def to_dict(self) -> dict[str, object]:
        result: dict[str, object] = {"outcome": self.outcome.value, "reason": self.reason}
        if self.ticket is not None:
            result["ticket_id"] = self.ticket.ticket_id
            result["amount"] = str(self.ticket.amount)
            result["currency"] = self.ticket.currency
        if self.entry is not None:
            result["entry"] = self.entry.to_dict()
        return result


@dataclass
class TicketValidator:
    """Verify, de-duplicate and record scanned tickets.

    Order per payload: parse -> signature -> expiry -> duplicate guard -> append.
    Rejections are returned as ScanResult outcomes, never raised.
    """

    ledger: Ledger
    public_key: Ed25519PublicKey
    enforce_expiry: bool = True
    expiry_leeway_seconds: int = DEFAULT_EXPIRY_LEEWAY_SECONDS
    clock: Callable[[], datetime] = field(default=utc_now, repr=False)

    def scan(self, payload: PayloadLike) -> ScanResult:
        signed = parse_payload(payload)
        if signed is None or not verify(signed, self.public_key):
            _logger.warning("ticket rejected: invalid signature")
            return ScanResult(ScanOutcome.INVALID_SIGNATURE, "signature verification failed")

        ticket = signed.data
        if self.enforce_expiry and is_expired(
            ticket, self.clock(), leeway_seconds=self.expiry_leeway_seconds
        ):
            _logger.warning("ticket rejected: expired ticket_id=%s", ticket.ticket_id)
            return ScanResult(ScanOutcome.TICKET_EXPIRED, "ticket has expired", ticket=ticket)

        try:
            if self.ledger.exists(ticket.ticket_id):
                return self._duplicate(ticket)
            entry = self.ledger.append(ticket)
        except DuplicateTicket:
            # Lost a race with a concurrent scan of the same ticket.
            return self._duplicate(ticket)
        except LedgerError as exc:
            _logger.warning("ticket not recorded ticket_id=%s: %s", ticket.ticket_id, exc)
            return ScanResult(ScanOutcome.STORAGE_ERROR, f"storage error: {exc}", ticket=ticket)

        _logger.info("ticket accepted ticket_id=%s entry_id=%s", ticket.ticket_id, entry.id)
        return ScanResult(ScanOutcome.ACCEPTED, "valid and recorded", ticket=ticket, entry=entry)

    def _duplicate(self, ticket: TicketData) -> ScanResult:
        _logger.warning("ticket rejected: already used ticket_id=%s", ticket.ticket_id)
        return ScanResult(
            ScanOutcome.DUPLICATE_TICKET, "ticket has already been scanned", ticket=ticket
        )


def build_ledger(settings: ValidatorSettings) -> SQLiteLedger:
    return SQLiteLedger(settings.db_path, busy_timeout_seconds=settings.busy_timeout_seconds)


def build_validator(
    settings: ValidatorSettings, *, ledger: SQLiteLedger | None = None
) -> TicketValidator:
    """Construct the validator and its store once, at startup."""
    return TicketValidator(
        ledger=ledger if ledger is not None else build_ledger(settings),
        public_key=settings.load_public_key(),
        enforce_expiry=settings.enforce_expiry,
        expiry_leeway_seconds=settings.expiry_leeway_seconds,
    )
