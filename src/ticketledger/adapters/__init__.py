"""Async adapters for ticketledger."""

from .sync_to_async import SyncLedgerAdapter, SyncValidatorAdapter, run_audit

__all__ = ("SyncLedgerAdapter", "SyncValidatorAdapter", "run_audit")
