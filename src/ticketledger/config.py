"""Validator settings loaded from TICKETLEDGER_* environment variables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from .errors import ConfigError, KeyLoadError
from .ledger.signing import load_private_key, load_public_key
from .ledger.sqlite import DEFAULT_BUSY_TIMEOUT_SECONDS
from .verifier import DEFAULT_EXPIRY_LEEWAY_SECONDS

ENV_PREFIX = "TICKETLEDGER_"
DEFAULT_DB_PATH = Path("ticket_ledger.db")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


class ValidatorSettings(BaseModel):
    """Device-side settings for verifying and recording tickets."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: Path = DEFAULT_DB_PATH
    public_key: str | None = None
    public_key_path: Path | None = None
    enforce_expiry: bool = True
    expiry_leeway_seconds: int = Field(default=DEFAULT_EXPIRY_LEEWAY_SECONDS, ge=0)
    busy_timeout_seconds: float = Field(default=DEFAULT_BUSY_TIMEOUT_SECONDS, gt=0)
    signing_private_key: str | None = Field(default=None, repr=False)

    @model_validator(mode="after")
    def _single_key_source(self) -> "ValidatorSettings":
        if self.public_key is not None and self.public_key_path is not None:
            raise ValueError("set only one of public_key or public_key_path")
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ValidatorSettings":
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None or raw == "":
                continue
            if name == "enforce_expiry":
                values[name] = _parse_bool(ENV_PREFIX + name.upper(), raw)
            else:
                values[name] = raw
        try:
            return cls.model_validate(values)
        except ValidationError as exc:
            raise ConfigError(f"invalid settings: {exc}") from exc

    def load_public_key(self) -> Ed25519PublicKey:
        if self.public_key_path is not None:
            try:
                data: bytes | str = self.public_key_path.read_bytes()
            except OSError as exc:
                raise ConfigError(f"cannot read public key file: {exc.strerror}") from exc
        elif self.public_key is not None:
            data = self.public_key
        else:
            raise ConfigError(f"no public key configured (set {ENV_PREFIX}PUBLIC_KEY)")
        try:
            return load_public_key(data)
        except KeyLoadError as exc:
            raise ConfigError(str(exc)) from exc

    def load_signing_key(self) -> Ed25519PrivateKey:
        if self.signing_private_key is None:
            raise ConfigError(f"no signing key configured (set {ENV_PREFIX}SIGNING_PRIVATE_KEY)")
        try:
            return load_private_key(self.signing_private_key)
        except KeyLoadError as exc:
            raise ConfigError(str(exc)) from exc


def _parse_bool(name: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE_VALUES:
        return True
    if value in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean, got {raw!r}")
