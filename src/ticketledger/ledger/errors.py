from __future__ import annotations

from ..errors import TicketLedgerError


class LedgerError(TicketLedgerError):
    """Base class for ledger errors."""


class LedgerWriteError(LedgerError):
    """Raised when an append fails for a storage reason. Nothing is written."""


class LedgerReadError(LedgerError):
    """Raised when the ledger cannot be read."""


class DuplicateTicket(LedgerError):
    """Raised when a ticket_id is already recorded in the ledger."""

    def __init__(self, ticket_id: str) -> None:
        super().__init__(f"ticket already recorded: {ticket_id}")
        self.ticket_id = ticket_id


class AuditCancelled(LedgerError):
    """Raised when an audit scan is cancelled before it finishes."""


def sanitize_exception(exc: Exception) -> str:
    """Return a safe error message without filesystem paths."""
    if isinstance(exc, OSError):
        parts: list[str] = [exc.__class__.__name__]
        if exc.errno is not None:
            parts.append(f"errno={exc.errno}")
        if exc.strerror:
            parts.append(exc.strerror)
        return " ".join(parts).strip()
    return str(exc)
