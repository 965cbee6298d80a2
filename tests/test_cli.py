from __future__ import annotations

import csv
import io
import json
import sqlite3
from pathlib import Path

import pytest

from ticketledger.cli import main
from ticketledger.ledger.signing import load_public_key, public_key_b64


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "DB_PATH",
        "PUBLIC_KEY",
        "PUBLIC_KEY_PATH",
        "ENFORCE_EXPIRY",
        "EXPIRY_LEEWAY_SECONDS",
        "BUSY_TIMEOUT_SECONDS",
        "SIGNING_PRIVATE_KEY",
    ):
        monkeypatch.delenv(f"TICKETLEDGER_{name}", raising=False)


@pytest.fixture
def keys(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> tuple[Path, Path]:
    private_path = tmp_path / "keys" / "private.pem"
    public_path = tmp_path / "keys" / "public.pem"
    assert main(["keygen", "--private-key", str(private_path), "--public-key", str(public_path)]) == 0
    capsys.readouterr()
    return private_path, public_path


def _issue(private_path: Path, output: Path, amount: str = "25") -> Path:
    code = main(
        ["issue", "--private-key", str(private_path), "--amount", amount, "--output", str(output)]
    )
    assert code == 0
    return output


def _scan(payload: Path, db: Path, public_path: Path, *extra: str) -> int:
    return main(
        ["scan", str(payload), "--db", str(db), "--public-key", str(public_path), *extra]
    )


def test_keygen_prints_public_key_and_refuses_overwrite(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    private_path = tmp_path / "private.pem"
    public_path = tmp_path / "public.pem"
    args = ["keygen", "--private-key", str(private_path), "--public-key", str(public_path)]

    assert main(args) == 0
    printed = capsys.readouterr().out.strip()
    assert printed == public_key_b64(load_public_key(public_path.read_bytes()))

    assert main(args) == 1
    assert "already exists" in capsys.readouterr().err
    assert main([*args, "--overwrite"]) == 0


def test_issue_writes_signed_payload(keys: tuple[Path, Path], tmp_path: Path) -> None:
    private_path, _ = keys
    payload = json.loads(_issue(private_path, tmp_path / "ticket.json", "12.50").read_text())

    assert payload["data"]["amount"] == 12.5
    assert payload["data"]["currency"] == "GMD"
    assert payload["sig"]


def test_issue_rejects_bad_amount(keys: tuple[Path, Path], capsys: pytest.CaptureFixture[str]) -> None:
    private_path, _ = keys

    code = main(["issue", "--private-key", str(private_path), "--amount", "lots"])

    assert code == 2
    assert "invalid --amount" in capsys.readouterr().err


def test_issue_uses_signing_key_from_environment(
    monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    code = main(["issue", "--amount", "5"])
    assert code == 2
    assert "no signing key configured" in capsys.readouterr().err

    monkeypatch.setenv("TICKETLEDGER_SIGNING_PRIVATE_KEY", "A" * 43 + "=")
    assert main(["issue", "--amount", "5"]) == 0
    assert json.loads(capsys.readouterr().out)["data"]["amount"] == 5


def test_scan_accepts_then_flags_duplicate(
    keys: tuple[Path, Path], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    private_path, public_path = keys
    payload = _issue(private_path, tmp_path / "ticket.json")
    db = tmp_path / "ledger.db"

    assert _scan(payload, db, public_path, "--json") == 0
    first = json.loads(capsys.readouterr().out)
    assert first["outcome"] == "accepted"
    assert first["entry"]["prev_hash"] == "GENESIS_HASH"

    assert _scan(payload, db, public_path, "--json") == 1
    second = json.loads(capsys.readouterr().out)
    assert second["outcome"] == "duplicate_ticket"


def test_scan_rejects_tampered_payload(
    keys: tuple[Path, Path], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    private_path, public_path = keys
    payload = _issue(private_path, tmp_path / "ticket.json")
    document = json.loads(payload.read_text())
    document["data"]["amount"] = 5000
    payload.write_text(json.dumps(document))

    code = _scan(payload, tmp_path / "ledger.db", public_path)

    assert code == 1
    assert "INVALID_SIGNATURE" in capsys.readouterr().out


def test_scan_reads_stdin(
    keys: tuple[Path, Path],
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    private_path, public_path = keys
    payload = _issue(private_path, tmp_path / "ticket.json")
    monkeypatch.setattr("sys.stdin", io.StringIO(payload.read_text()))

    code = main(["scan", "-", "--db", str(tmp_path / "ledger.db"), "--public-key", str(public_path)])

    assert code == 0
    assert "VALID TICKET" in capsys.readouterr().out


def test_scan_without_public_key_fails(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    payload = tmp_path / "ticket.json"
    payload.write_text("{}")

    code = main(["scan", str(payload), "--db", str(tmp_path / "ledger.db")])

    assert code == 2
    assert "no public key configured" in capsys.readouterr().err


def test_history_and_export_formats(
    keys: tuple[Path, Path], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    private_path, public_path = keys
    db = tmp_path / "ledger.db"
    for index in range(3):
        assert _scan(_issue(private_path, tmp_path / f"t{index}.json"), db, public_path) == 0
    capsys.readouterr()

    assert main(["history", "--db", str(db), "--format", "json", "--limit", "2"]) == 0
    history = json.loads(capsys.readouterr().out)
    assert [row["id"] for row in history] == [3, 2]

    assert main(["export", "--db", str(db)]) == 0
    lines = capsys.readouterr().out.splitlines()
    assert [json.loads(line)["id"] for line in lines] == [1, 2, 3]

    out_path = tmp_path / "export.csv"
    assert main(["export", "--db", str(db), "--format", "csv", "--output", str(out_path)]) == 0
    with out_path.open(newline="", encoding="utf-8") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["id"] for row in rows] == ["1", "2", "3"]
    assert rows[1]["prev_hash"] == rows[0]["current_hash"]

    assert main(["history", "--db", str(db)]) == 0
    assert "Ledger history" in capsys.readouterr().out


def test_history_of_empty_ledger(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    assert main(["history", "--db", str(tmp_path / "ledger.db")]) == 0
    assert "No tickets scanned yet." in capsys.readouterr().out


def test_audit_reports_intact_and_compromised_chain(
    keys: tuple[Path, Path], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    private_path, public_path = keys
    db = tmp_path / "ledger.db"
    for index in range(3):
        assert _scan(_issue(private_path, tmp_path / f"t{index}.json"), db, public_path) == 0
    capsys.readouterr()

    assert main(["audit", "--db", str(db)]) == 0
    assert "Chain intact" in capsys.readouterr().out

    conn = sqlite3.connect(db)
    try:
        conn.execute("DELETE FROM ledger WHERE id = 2")
        conn.commit()
    finally:
        conn.close()

    assert main(["audit", "--db", str(db), "--json"]) == 1
    report = json.loads(capsys.readouterr().out)
    assert report["status"] == "compromised"
    assert report["summary"]["faults"]["chain_broken"] == 1
    assert report["faults"] == [
        {"id": 3, "ticket_id": report["faults"][0]["ticket_id"], "fault": "chain_broken"}
    ]


def test_issue_reports_unwritable_output(
    keys: tuple[Path, Path], tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    private_path, _ = keys
    output = tmp_path / "missing-dir" / "ticket.json"

    code = main(["issue", "--private-key", str(private_path), "--amount", "5", "--output", str(output)])

    assert code == 1
    assert "cannot write output" in capsys.readouterr().err
    assert not output.exists()


def test_invalid_environment_exits_with_config_error(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setenv("TICKETLEDGER_ENFORCE_EXPIRY", "sometimes")

    code = main(["history", "--db", str(tmp_path / "ledger.db")])

    assert code == 2
    assert "configuration error" in capsys.readouterr().err
