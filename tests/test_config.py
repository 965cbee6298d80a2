from __future__ import annotations

import base64
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from pydantic import ValidationError

from ticketledger.config import ValidatorSettings
from ticketledger.errors import ConfigError
from ticketledger.ledger.signing import generate_keypair, public_key_b64


def test_defaults_without_environment() -> None:
    settings = ValidatorSettings.from_env({})

    assert settings.db_path == Path("ticket_ledger.db")
    assert settings.enforce_expiry is True
    assert settings.expiry_leeway_seconds == 300
    assert settings.public_key is None


def test_values_are_read_from_prefixed_variables(tmp_path: Path) -> None:
    settings = ValidatorSettings.from_env(
        {
            "TICKETLEDGER_DB_PATH": str(tmp_path / "device.db"),
            "TICKETLEDGER_ENFORCE_EXPIRY": "off",
            "TICKETLEDGER_EXPIRY_LEEWAY_SECONDS": "60",
            "TICKETLEDGER_BUSY_TIMEOUT_SECONDS": "1.5",
            "UNRELATED": "ignored",
        }
    )

    assert settings.db_path == tmp_path / "device.db"
    assert settings.enforce_expiry is False
    assert settings.expiry_leeway_seconds == 60
    assert settings.busy_timeout_seconds == 1.5


@pytest.mark.parametrize(
    "environ, message",
    [
        ({"TICKETLEDGER_ENFORCE_EXPIRY": "maybe"}, "must be a boolean"),
        ({"TICKETLEDGER_EXPIRY_LEEWAY_SECONDS": "-1"}, "invalid settings"),
        ({"TICKETLEDGER_PUBLIC_KEY": "a", "TICKETLEDGER_PUBLIC_KEY_PATH": "b"}, "only one of"),
    ],
)
def test_invalid_environment_raises_config_error(environ: dict[str, str], message: str) -> None:
    with pytest.raises(ConfigError, match=message):
        ValidatorSettings.from_env(environ)


def test_settings_are_frozen() -> None:
    settings = ValidatorSettings()
    with pytest.raises(ValidationError):
        settings.enforce_expiry = False  # type: ignore[misc]


def test_public_key_from_value_and_file(tmp_path: Path) -> None:
    _, public_pem = generate_keypair()
    key_file = tmp_path / "public.pem"
    key_file.write_bytes(public_pem)

    from_file = ValidatorSettings(public_key_path=key_file).load_public_key()
    from_value = ValidatorSettings(public_key=public_key_b64(from_file)).load_public_key()

    assert public_key_b64(from_value) == public_key_b64(from_file)


def test_public_key_errors_are_config_errors(tmp_path: Path) -> None:
    with pytest.raises(ConfigError, match="cannot read public key file"):
        ValidatorSettings(public_key_path=tmp_path / "missing.pem").load_public_key()
    with pytest.raises(ConfigError):
        ValidatorSettings(public_key="bm90IGEga2V5").load_public_key()


def test_signing_key_is_hidden_from_repr() -> None:
    private_key = Ed25519PrivateKey.generate()
    seed = base64.b64encode(
        private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
    ).decode("ascii")
    settings = ValidatorSettings(signing_private_key=seed)

    assert seed not in repr(settings)
    assert public_key_b64(settings.load_signing_key()) == public_key_b64(private_key)
    with pytest.raises(ConfigError, match="no signing key configured"):
        ValidatorSettings().load_signing_key()
