"""Terminal rendering of ledger history and audit findings using rich."""

from __future__ import annotations

from typing import Iterable

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .ledger.audit import AuditFinding, AuditSummary
from .types import LedgerEntry

_FAULT_LABELS = {
    "data_tampered": "DATA TAMPERED",
    "chain_broken": "CHAIN BROKEN",
    "root_tampered": "ROOT TAMPERED",
}


def _short(value: str, length: int = 16) -> str:
    if len(value) <= length:
        return value
    return value[:length] + "..."


def _amount(entry: LedgerEntry) -> str:
    try:
        ticket = entry.ticket()
    except (ValueError, RecursionError):
        return "?"
    return f"{ticket.amount} {ticket.currency}"


def render_history(entries: Iterable[LedgerEntry], console: Console) -> None:
    table = Table(title="Ledger history")
    table.add_column("ID", justify="right")
    table.add_column("Ticket")
    table.add_column("Amount", justify="right")
    table.add_column("Scanned at (UTC)")
    table.add_column("Prev")
    table.add_column("Curr")
    rows = 0
    for entry in entries:
        rows += 1
        table.add_row(
            str(entry.id),
            escape(_short(entry.ticket_id, 8)),
            escape(_amount(entry)),
            escape(entry.scanned_at),
            escape(_short(entry.prev_hash)),
            escape(_short(entry.current_hash)),
        )
    if rows == 0:
        console.print("No tickets scanned yet.")
        return
    console.print(table)


def render_audit(
    findings: Iterable[AuditFinding], summary: AuditSummary, console: Console
) -> None:
    table = Table(title="Ledger audit")
    table.add_column("ID", justify="right")
    table.add_column("Ticket")
    table.add_column("Scanned at (UTC)")
    table.add_column("Status")
    for finding in findings:
        if finding.valid:
            status = "[green]valid[/green]"
        else:
            label = _FAULT_LABELS.get(finding.fault.value if finding.fault else "", "INVALID")
            status = f"[bold red]{label}[/bold red]"
        table.add_row(
            str(finding.entry.id),
            escape(_short(finding.entry.ticket_id, 8)),
            escape(finding.entry.scanned_at),
            status,
        )
    console.print(table)
    if summary.ok:
        console.print(f"[bold]Chain intact:[/bold] {summary.total} entries verified")
        return
    faulty = summary.total - summary.valid
    console.print(f"[bold red]Chain compromised:[/bold red] {faulty} of {summary.total} entries flagged")
    for kind, count in summary.faults.items():
        console.print(f"  {_FAULT_LABELS[kind.value]}: {count}")
