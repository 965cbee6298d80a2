"""Full-chain integrity audit over the ticket ledger.

The scan is read-only and walks entries oldest-first so chain linkage can be
checked against the predecessor; ``audit()`` returns findings newest-first for
presentation. Each entry gets at most one fault, checked in this order:

1. DATA_TAMPERED: the stored current_hash does not match
   H(ticket_id, scanned_at, prev_hash), or the stored data does not decode to
   a ticket with the row's ticket_id.
2. CHAIN_BROKEN: prev_hash differs from the predecessor's current_hash
   (rows deleted or reordered in between).
3. ROOT_TAMPERED: the earliest entry's prev_hash is not GENESIS_HASH
   (all earlier rows deleted).
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Iterable, Iterator, Protocol

from pydantic import ValidationError

from ..types import FaultKind, LedgerEntry, TicketData
from .common import GENESIS_HASH, chain_hash
from .errors import AuditCancelled
from .sqlite import DEFAULT_BATCH_SIZE

_logger = logging.getLogger(__name__)


class EntrySource(Protocol):
    """Anything that can stream ledger entries in ascending id order."""

    def iter_entries(self, *, batch_size: int = ...) -> Iterator[LedgerEntry]:
        ...


@dataclass(frozen=True, slots=True)
class AuditFinding:
    entry: LedgerEntry
    valid: bool
    fault: FaultKind | None = None


@dataclass(frozen=True)
class AuditSummary:
    total: int
    valid: int
    faults: dict[FaultKind, int] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.total == self.valid

    def to_dict(self) -> dict[str, object]:
        return {
            "ok": self.ok,
            "total": self.total,
            "valid": self.valid,
            "faults": {kind.value: self.faults.get(kind, 0) for kind in FaultKind},
        }


@dataclass(frozen=True)
class IntegrityAuditor:
    ledger: EntrySource
    batch_size: int = DEFAULT_BATCH_SIZE

    def scan(self, *, cancel: threading.Event | None = None) -> Iterator[AuditFinding]:
        """Yield one finding per entry, oldest first, streaming from the ledger.

        Raises AuditCancelled once ``cancel`` is set. Nothing is written, so a
        cancelled or abandoned scan leaves the ledger untouched.
        """
        entries = self.ledger.iter_entries(batch_size=self.batch_size)
        try:
            previous: LedgerEntry | None = None
            for entry in entries:
                if cancel is not None and cancel.is_set():
                    raise AuditCancelled("audit cancelled")
                fault = classify_entry(entry, previous)
                if fault is not None:
                    _logger.warning(
                        "ledger audit fault id=%s ticket_id=%s fault=%s",
                        entry.id,
                        entry.ticket_id,
                        fault.value,
                    )
                yield AuditFinding(entry=entry, valid=fault is None, fault=fault)
                previous = entry
        finally:
            close = getattr(entries, "close", None)
            if close is not None:
                close()

    def audit(self, *, cancel: threading.Event | None = None) -> list[AuditFinding]:
        """Run the full scan and return findings newest first."""
        findings = list(self.scan(cancel=cancel))
        findings.reverse()
        _logger.debug("ledger audit finished entries=%d", len(findings))
        return findings


def classify_entry(entry: LedgerEntry, previous: LedgerEntry | None) -> FaultKind | None:
    """Return the fault for ``entry`` given its predecessor in id order, if any."""
    expected = chain_hash(entry.ticket_id, entry.scanned_at, entry.prev_hash)
    if expected != entry.current_hash or not _data_matches_row(entry):
        return FaultKind.DATA_TAMPERED
    if previous is not None:
        if entry.prev_hash != previous.current_hash:
            return FaultKind.CHAIN_BROKEN
    elif entry.prev_hash != GENESIS_HASH:
        return FaultKind.ROOT_TAMPERED
    return None


def summarize(findings: Iterable[AuditFinding]) -> AuditSummary:
    total = 0
    valid = 0
    faults: dict[FaultKind, int] = {}
    for finding in findings:
        total += 1
        if finding.valid:
            valid += 1
        elif finding.fault is not None:
            faults[finding.fault] = faults.get(finding.fault, 0) + 1
    return AuditSummary(total=total, valid=valid, faults=faults)


def _data_matches_row(entry: LedgerEntry) -> bool:
    try:
        ticket = TicketData.from_canonical(entry.data)
    except (ValidationError, ValueError, RecursionError):
        return False
    return ticket.ticket_id == entry.ticket_id
