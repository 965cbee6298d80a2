"""ticketledger public API."""

from .canonical import CANONICAL_VERSION, CanonicalizationError, canonical_ticket_bytes
from .config import ValidatorSettings
from .errors import ConfigError, KeyLoadError, TicketLedgerError
from .issuer import issue_ticket, sign_ticket
from .ledger import (
    GENESIS_HASH,
    AuditCancelled,
    AuditFinding,
    AuditSummary,
    DuplicateTicket,
    IntegrityAuditor,
    Ledger,
    LedgerError,
    LedgerReadError,
    LedgerWriteError,
    SQLiteLedger,
    chain_hash,
    summarize,
)
from .types import FaultKind, LedgerEntry, ScanOutcome, SignedTicket, TicketData
from .validator import ScanResult, TicketValidator, build_validator
from .verifier import is_expired, parse_payload, verify

__all__ = (
    # Types
    "TicketData",
    "SignedTicket",
    "LedgerEntry",
    "ScanOutcome",
    "FaultKind",
    # Canonical encoding
    "CANONICAL_VERSION",
    "canonical_ticket_bytes",
    "CanonicalizationError",
    # Verifier / issuer
    "verify",
    "parse_payload",
    "is_expired",
    "issue_ticket",
    "sign_ticket",
    # Ledger
    "Ledger",
    "SQLiteLedger",
    "GENESIS_HASH",
    "chain_hash",
    "IntegrityAuditor",
    "AuditFinding",
    "AuditSummary",
    "summarize",
    # Scan pipeline
    "TicketValidator",
    "ScanResult",
    "build_validator",
    "ValidatorSettings",
    # Errors
    "TicketLedgerError",
    "ConfigError",
    "KeyLoadError",
    "LedgerError",
    "LedgerWriteError",
    "LedgerReadError",
    "DuplicateTicket",
    "AuditCancelled",
)
