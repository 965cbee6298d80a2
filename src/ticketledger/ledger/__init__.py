"""Ledger storage, chain hashing and integrity audit."""

from .audit import AuditFinding, AuditSummary, IntegrityAuditor, classify_entry, summarize
from .base import Ledger
from .common import GENESIS_HASH, chain_hash
from .errors import (
    AuditCancelled,
    DuplicateTicket,
    LedgerError,
    LedgerReadError,
    LedgerWriteError,
)
from .sqlite import SQLiteLedger

__all__ = (
    "Ledger",
    "SQLiteLedger",
    "IntegrityAuditor",
    "AuditFinding",
    "AuditSummary",
    "classify_entry",
    "summarize",
    "GENESIS_HASH",
    "chain_hash",
    "LedgerError",
    "LedgerWriteError",
    "LedgerReadError",
    "DuplicateTicket",
    "AuditCancelled",
)
