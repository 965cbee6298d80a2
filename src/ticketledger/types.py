"""Typed models for ticketledger."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator

from .canonical import canonical_ticket_bytes, canonical_ticket_text

_CURRENCY_RE = re.compile(r"^[A-Z]{3}$")


class TicketData(BaseModel):
    """Ticket fields signed by the issuer. Immutable once issued."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    ticket_id: str
    amount: Decimal
    currency: str
    expires_at: int

    @field_validator("ticket_id")
    @classmethod
    def _ticket_id_non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("ticket_id must be a non-empty string")
        return value

    @field_validator("amount", mode="before")
    @classmethod
    def _amount_is_number(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
            raise ValueError("amount must be a number")
        if isinstance(value, float):
            # Shortest round-trip text, e.g. 12.5 -> Decimal("12.5").
            value = Decimal(repr(value))
        if isinstance(value, Decimal) and not value.is_finite():
            raise ValueError("amount must be finite")
        return value

    @field_validator("currency")
    @classmethod
    def _currency_code(cls, value: str) -> str:
        if not _CURRENCY_RE.match(value):
            raise ValueError("currency must be a 3-letter uppercase code")
        return value

    @field_validator("expires_at", mode="before")
    @classmethod
    def _expires_at_is_int(cls, value: Any) -> Any:
        if isinstance(value, bool) or not isinstance(value, int):
            raise ValueError("expires_at must be integer unix seconds")
        return value

    def as_mapping(self) -> dict[str, Any]:
        return {
            "ticket_id": self.ticket_id,
            "amount": self.amount,
            "currency": self.currency,
            "expires_at": self.expires_at,
        }

    def canonical_bytes(self) -> bytes:
        """Bytes covered by the issuer's signature."""
        return canonical_ticket_bytes(self.as_mapping())

    def canonical_text(self) -> str:
        return canonical_ticket_text(self.as_mapping())

    @classmethod
    def from_canonical(cls, text: str) -> "TicketData":
        """Parse ticket data stored in canonical form."""
        return cls.model_validate(json.loads(text, parse_float=Decimal))


class SignedTicket(BaseModel):
    """Wire payload emitted by the issuer: ticket data plus detached signature."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    data: TicketData
    sig: str

    @field_validator("sig")
    @classmethod
    def _sig_non_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("sig must be a non-empty string")
        return value

    @classmethod
    def from_json(cls, payload: str | bytes) -> "SignedTicket":
        """Parse a wire payload, keeping amounts exact."""
        return cls.model_validate(json.loads(payload, parse_float=Decimal))

    def to_json(self) -> str:
        """Render the payload with the data object in canonical form."""
        sig_text = json.dumps(self.sig)
        return '{"data":' + self.data.canonical_text() + ',"sig":' + sig_text + "}"


@dataclass(frozen=True, slots=True)
class LedgerEntry:
    """One accepted ticket as persisted in the ledger."""

    id: int
    ticket_id: str
    data: str
    prev_hash: str
    current_hash: str
    scanned_at: str

    def ticket(self) -> TicketData:
        return TicketData.from_canonical(self.data)

    def to_dict(self) -> dict[str, object]:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "data": self.data,
            "prev_hash": self.prev_hash,
            "current_hash": self.current_hash,
            "scanned_at": self.scanned_at,
        }


class ScanOutcome(str, Enum):
    """Result class of scanning a single payload."""

    ACCEPTED = "accepted"
    INVALID_SIGNATURE = "invalid_signature"
    DUPLICATE_TICKET = "duplicate_ticket"
    TICKET_EXPIRED = "ticket_expired"
    STORAGE_ERROR = "storage_error"


class FaultKind(str, Enum):
    """Classification of an audit fault on a single ledger entry."""

    DATA_TAMPERED = "data_tampered"
    CHAIN_BROKEN = "chain_broken"
    ROOT_TAMPERED = "root_tampered"
