"""Command-line interface for ticketledger."""

from __future__ import annotations

import argparse
import csv
import json
import logging
import sys
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError
from rich.console import Console
from rich.markup import escape

from .config import ValidatorSettings
from .errors import ConfigError, KeyLoadError
from .issuer import DEFAULT_CURRENCY, DEFAULT_TTL_SECONDS, issue_ticket
from .ledger.audit import IntegrityAuditor, summarize
from .ledger.errors import LedgerError
from .ledger.signing import generate_keypair, load_private_key, load_public_key, public_key_b64
from .report import render_audit, render_history
from .types import LedgerEntry
from .validator import build_ledger, build_validator

CSV_FIELDS = (
    "id",
    "ticket_id",
    "scanned_at",
    "prev_hash",
    "current_hash",
    "data",
)


def _console() -> Console:
    return Console()


def _write_entries(
    entries: Iterable[LedgerEntry],
    output_format: str,
    output_path: Path | None,
) -> int:
    """Write entries in the specified format, streaming them to the output."""
    if output_format == "table" and output_path is None:
        render_history(entries, _console())
        return 0
    output = sys.stdout
    close_output = False
    if output_path is not None:
        output = output_path.open("w", encoding="utf-8", newline="")
        close_output = True
    try:
        if output_format == "json":
            output.write("[")
            first = True
            for entry in entries:
                if not first:
                    output.write(",")
                first = False
                output.write(json.dumps(entry.to_dict(), ensure_ascii=False))
            output.write("]\n")
        elif output_format == "ndjson":
            for entry in entries:
                output.write(
                    json.dumps(entry.to_dict(), ensure_ascii=False, separators=(",", ":")) + "\n"
                )
        elif output_format == "csv":
            writer = csv.DictWriter(output, fieldnames=CSV_FIELDS, lineterminator="\n")
            writer.writeheader()
            for entry in entries:
                writer.writerow(entry.to_dict())
        elif output_format == "table":
            render_history(entries, Console(file=output, color_system=None))
        else:
            raise ValueError(f"unknown format: {output_format}")
    finally:
        if close_output:
            output.close()
    return 0


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="ticketledger", add_help=True)
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    keygen_parser = subparsers.add_parser("keygen", help="Generate Ed25519 key pair")
    keygen_parser.add_argument("--private-key", type=Path, required=True, help="Path to private key PEM")
    keygen_parser.add_argument("--public-key", type=Path, required=True, help="Path to public key PEM")
    keygen_parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Overwrite existing key files",
    )

    issue_parser = subparsers.add_parser("issue", help="Issue a signed ticket payload")
    issue_parser.add_argument(
        "--private-key",
        type=Path,
        help="Path to private key (PEM or base64); defaults to TICKETLEDGER_SIGNING_PRIVATE_KEY",
    )
    issue_parser.add_argument("--amount", required=True, help="Ticket amount")
    issue_parser.add_argument("--currency", default=DEFAULT_CURRENCY, help="3-letter currency code")
    issue_parser.add_argument(
        "--ttl", type=int, default=DEFAULT_TTL_SECONDS, help="Seconds until the ticket expires"
    )
    issue_parser.add_argument("--output", type=Path, help="Output file path")

    scan_parser = subparsers.add_parser("scan", help="Verify and record a ticket payload")
    scan_parser.add_argument("payload", help="Path to payload JSON file, or - for stdin")
    scan_parser.add_argument("--db", type=Path, help="Path to ledger database")
    scan_parser.add_argument("--public-key", type=Path, help="Path to public key (PEM or base64)")
    scan_parser.add_argument("--no-expiry", action="store_true", help="Do not enforce expires_at")
    scan_parser.add_argument("--json", action="store_true", help="Output JSON")

    history_parser = subparsers.add_parser("history", help="List recorded tickets, newest first")
    history_parser.add_argument("--db", type=Path, help="Path to ledger database")
    history_parser.add_argument("--limit", type=int, default=50, help="Maximum entries to list")
    history_parser.add_argument(
        "--format",
        choices=("table", "json", "ndjson", "csv"),
        default="table",
        help="Output format",
    )
    history_parser.add_argument("--output", type=Path, help="Output file path")

    export_parser = subparsers.add_parser("export", help="Export all ledger entries, oldest first")
    export_parser.add_argument("--db", type=Path, help="Path to ledger database")
    export_parser.add_argument(
        "--format",
        choices=("json", "ndjson", "csv"),
        default="ndjson",
        help="Output format",
    )
    export_parser.add_argument("--output", type=Path, help="Output file path")

    audit_parser = subparsers.add_parser("audit", help="Audit the ledger hash chain")
    audit_parser.add_argument("--db", type=Path, help="Path to ledger database")
    audit_parser.add_argument("--json", action="store_true", help="Output JSON")

    return parser.parse_args(argv)


def _settings(
    db_path: Path | None = None, *, enforce_expiry: bool | None = None
) -> ValidatorSettings:
    settings = ValidatorSettings.from_env()
    updates: dict[str, object] = {}
    if db_path is not None:
        updates["db_path"] = db_path
    if enforce_expiry is not None:
        updates["enforce_expiry"] = enforce_expiry
    if not updates:
        return settings
    try:
        return ValidatorSettings.model_validate({**settings.model_dump(), **updates})
    except ValidationError as exc:
        raise ConfigError(f"invalid settings: {exc}") from exc


def _cmd_keygen(
    *,
    private_key_path: Path,
    public_key_path: Path,
    overwrite: bool,
) -> int:
    if not overwrite and (private_key_path.exists() or public_key_path.exists()):
        print("key file already exists", file=sys.stderr)
        return 1
    private_key_path.parent.mkdir(parents=True, exist_ok=True)
    public_key_path.parent.mkdir(parents=True, exist_ok=True)
    private_key, public_key = generate_keypair()
    private_key_path.write_bytes(private_key)
    public_key_path.write_bytes(public_key)
    print(public_key_b64(load_public_key(public_key)))
    return 0


def _cmd_issue(
    *,
    private_key_path: Path | None,
    amount: str,
    currency: str,
    ttl: int,
    output_path: Path | None,
) -> int:
    try:
        parsed_amount = Decimal(amount)
    except InvalidOperation:
        print(f"invalid --amount: {amount}", file=sys.stderr)
        return 2
    try:
        if private_key_path is not None:
            private_key = load_private_key(private_key_path.read_bytes())
        else:
            private_key = _settings().load_signing_key()
        ticket = issue_ticket(parsed_amount, private_key, currency=currency, ttl_seconds=ttl)
    except (KeyLoadError, OSError) as exc:
        print(f"issue failed: {exc}", file=sys.stderr)
        return 1
    except (ValidationError, ValueError) as exc:
        print(f"invalid ticket: {exc}", file=sys.stderr)
        return 2
    text = ticket.to_json() + "\n"
    if output_path is not None:
        try:
            output_path.write_text(text, encoding="utf-8")
        except OSError as exc:
            print(f"issue failed: cannot write output: {exc.strerror}", file=sys.stderr)
            return 1
    else:
        sys.stdout.write(text)
    return 0


def _cmd_scan(
    payload_source: str,
    *,
    db_path: Path | None,
    public_key_path: Path | None,
    no_expiry: bool,
    json_output: bool,
) -> int:
    try:
        if payload_source == "-":
            payload = sys.stdin.read()
        else:
            payload = Path(payload_source).read_text(encoding="utf-8")
    except OSError as exc:
        print(f"scan failed: cannot read payload: {exc.strerror}", file=sys.stderr)
        return 1
    try:
        settings = _settings(db_path, enforce_expiry=False if no_expiry else None)
        if public_key_path is not None:
            settings = settings.model_copy(
                update={"public_key": None, "public_key_path": public_key_path}
            )
        validator = build_validator(settings)
    except LedgerError as exc:
        print(f"scan failed: {exc}", file=sys.stderr)
        return 1

    result = validator.scan(payload.strip())
    if json_output:
        print(json.dumps(result.to_dict(), ensure_ascii=False))
    else:
        console = _console()
        if result.accepted and result.ticket is not None:
            console.print(
                f"[bold green]VALID TICKET[/bold green] {result.ticket.amount} {result.ticket.currency}"
                " - saved to ledger"
            )
        else:
            console.print(
                f"[bold red]{result.outcome.value.upper()}[/bold red] {escape(result.reason)}"
            )
    return 0 if result.accepted else 1


def _cmd_history(
    *,
    db_path: Path | None,
    limit: int | None,
    output_format: str,
    output_path: Path | None,
    newest_first: bool,
) -> int:
    if limit is not None and limit < 0:
        print("--limit must be >= 0", file=sys.stderr)
        return 2
    try:
        ledger = build_ledger(_settings(db_path))
        if limit is None and not newest_first:
            entries: Iterable[LedgerEntry] = ledger.iter_entries()
        else:
            entries = ledger.entries(newest_first=newest_first, limit=limit)
        return _write_entries(entries, output_format, output_path)
    except (LedgerError, OSError) as exc:
        print(f"history failed: {exc}", file=sys.stderr)
        return 1


def _cmd_audit(db_path: Path | None, json_output: bool) -> int:
    try:
        ledger = build_ledger(_settings(db_path))
        findings = IntegrityAuditor(ledger).audit()
    except (LedgerError, OSError) as exc:
        if json_output:
            print(json.dumps({"status": "failed", "error": str(exc)}))
        else:
            print(f"audit failed: {exc}", file=sys.stderr)
        return 1
    summary = summarize(findings)
    if json_output:
        report = {
            "status": "ok" if summary.ok else "compromised",
            "summary": summary.to_dict(),
            "faults": [
                {
                    "id": finding.entry.id,
                    "ticket_id": finding.entry.ticket_id,
                    "fault": finding.fault.value,
                }
                for finding in findings
                if finding.fault is not None
            ],
        }
        print(json.dumps(report))
    else:
        render_audit(findings, summary, _console())
    return 0 if summary.ok else 1


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
    try:
        return _dispatch(args)
    except ConfigError as exc:
        print(f"configuration error: {exc}", file=sys.stderr)
        return 2
    except LedgerError as exc:
        print(f"ledger error: {exc}", file=sys.stderr)
        return 1


def _dispatch(args: argparse.Namespace) -> int:
    if args.command == "keygen":
        return _cmd_keygen(
            private_key_path=args.private_key,
            public_key_path=args.public_key,
            overwrite=args.overwrite,
        )
    if args.command == "issue":
        return _cmd_issue(
            private_key_path=args.private_key,
            amount=args.amount,
            currency=args.currency,
            ttl=args.ttl,
            output_path=args.output,
        )
    if args.command == "scan":
        return _cmd_scan(
            args.payload,
            db_path=args.db,
            public_key_path=args.public_key,
            no_expiry=args.no_expiry,
            json_output=args.json,
        )
    if args.command == "history":
        return _cmd_history(
            db_path=args.db,
            limit=args.limit,
            output_format=args.format,
            output_path=args.output,
            newest_first=True,
        )
    if args.command == "export":
        return _cmd_history(
            db_path=args.db,
            limit=None,
            output_format=args.format,
            output_path=args.output,
            newest_first=False,
        )
    if args.command == "audit":
        return _cmd_audit(args.db, args.json)
    print("unknown command", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
