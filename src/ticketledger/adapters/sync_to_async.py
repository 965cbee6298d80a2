"""Async wrappers that move ledger and scan work off the event loop.

Design notes:
- Adapters are explicit: callers construct them around a sync object
- Each adapter wraps exactly one sync implementation
- Blocking SQLite I/O and hashing run in asyncio.to_thread()
- Cancelling an awaiting audit sets the auditor's cancel event so the worker
  thread stops at the next entry; the audit path never writes
"""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass

from ..ledger.audit import AuditFinding, IntegrityAuditor
from ..ledger.sqlite import SQLiteLedger
from ..types import LedgerEntry, TicketData
from ..validator import ScanResult, TicketValidator
from ..verifier import PayloadLike


@dataclass(frozen=True, slots=True)
class SyncLedgerAdapter:
    """Wraps a SQLiteLedger for use from async code.

    Usage:
        ledger = SQLiteLedger(Path("ledger.db"))
        async_ledger = SyncLedgerAdapter(ledger)
        entry = await async_ledger.append(ticket)
    """

    _ledger: SQLiteLedger

    async def append(self, data: TicketData) -> LedgerEntry:
        return await asyncio.to_thread(self._ledger.append, data)

    async def exists(self, ticket_id: str) -> bool:
        return await asyncio.to_thread(self._ledger.exists, ticket_id)

    async def entries(
        self, *, newest_first: bool = True, limit: int | None = None, offset: int = 0
    ) -> list[LedgerEntry]:
        return await asyncio.to_thread(
            self._ledger.entries, newest_first=newest_first, limit=limit, offset=offset
        )

    async def audit(self) -> list[AuditFinding]:
        return await run_audit(IntegrityAuditor(self._ledger))


@dataclass(frozen=True, slots=True)
class SyncValidatorAdapter:
    """Wraps a TicketValidator so scans do not block the event loop."""

    _validator: TicketValidator

    async def scan(self, payload: PayloadLike) -> ScanResult:
        return await asyncio.to_thread(self._validator.scan, payload)


async def run_audit(auditor: IntegrityAuditor) -> list[AuditFinding]:
    """Run a full audit in a worker thread; cancellation stops the scan."""
    cancel = threading.Event()
    try:
        return await asyncio.to_thread(auditor.audit, cancel=cancel)
    except asyncio.CancelledError:
        cancel.set()
        raise
