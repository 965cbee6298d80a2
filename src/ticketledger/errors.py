"""Exception types for ticketledger."""


class TicketLedgerError(Exception):
    """Base exception for all ticketledger errors."""


class ConfigError(TicketLedgerError):
    """Raised when validator settings are missing or invalid."""


class KeyLoadError(TicketLedgerError):
    """Raised when a signing or verification key cannot be decoded."""
