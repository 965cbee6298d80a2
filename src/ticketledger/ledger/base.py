from __future__ import annotations

from typing import Iterator, Protocol

from ..types import LedgerEntry, TicketData


class Ledger(Protocol):
    """Minimal ledger interface used by TicketValidator and the auditor.

    Implementations should provide:
    - atomic appends that extend the hash chain (one in flight at a time)
    - a duplicate guard over ticket_id
    - hash-free streaming of entries in ascending id order
    """

    def append(self, data: TicketData) -> LedgerEntry:
        """Append an accepted ticket and return the stored entry."""

    def exists(self, ticket_id: str) -> bool:
        """Whether ticket_id has already been recorded."""

    def iter_entries(self, *, batch_size: int = ...) -> Iterator[LedgerEntry]:
        """Stream entries oldest first."""
