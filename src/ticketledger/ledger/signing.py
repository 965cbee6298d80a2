"""Ed25519 key handling and detached signatures for issued tickets."""

from __future__ import annotations

import base64
import binascii

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from ..errors import KeyLoadError

PUBLIC_KEY_LENGTH = 32
SEED_LENGTH = 32
# NaCl/tweetnacl secret keys are the 32-byte seed followed by the public key.
NACL_SECRET_KEY_LENGTH = 64
SIGNATURE_LENGTH = 64

_PEM_MARKER = b"-----BEGIN"


def generate_keypair() -> tuple[bytes, bytes]:
    """Return a new (private PEM, public PEM) pair."""
    private_key = Ed25519PrivateKey.generate()
    private_bytes = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return private_bytes, public_bytes


def load_private_key(data: bytes | str) -> Ed25519PrivateKey:
    """Load a private key from PEM, or from base64 of a raw seed / NaCl secret key."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    if _PEM_MARKER in raw:
        try:
            key = serialization.load_pem_private_key(raw, password=None)
        except (ValueError, TypeError) as exc:
            raise KeyLoadError("invalid private key PEM") from exc
        if not isinstance(key, Ed25519PrivateKey):
            raise KeyLoadError("unsupported private key type")
        return key
    decoded = _b64decode(raw, what="private key")
    if len(decoded) == NACL_SECRET_KEY_LENGTH:
        decoded = decoded[:SEED_LENGTH]
    if len(decoded) != SEED_LENGTH:
        raise KeyLoadError("private key must be a 32-byte seed or a 64-byte secret key")
    return Ed25519PrivateKey.from_private_bytes(decoded)


def load_public_key(data: bytes | str) -> Ed25519PublicKey:
    """Load a public key from PEM or from base64 of the raw 32 bytes."""
    raw = data.encode("utf-8") if isinstance(data, str) else data
    if _PEM_MARKER in raw:
        try:
            key = serialization.load_pem_public_key(raw)
        except (ValueError, TypeError) as exc:
            raise KeyLoadError("invalid public key PEM") from exc
        if not isinstance(key, Ed25519PublicKey):
            raise KeyLoadError("unsupported public key type")
        return key
    decoded = _b64decode(raw, what="public key")
    if len(decoded) != PUBLIC_KEY_LENGTH:
        raise KeyLoadError("public key must be 32 bytes")
    try:
        return Ed25519PublicKey.from_public_bytes(decoded)
    except ValueError as exc:
        raise KeyLoadError("invalid public key bytes") from exc


def public_key_b64(key: Ed25519PublicKey | Ed25519PrivateKey) -> str:
    """Return the base64 raw form distributed to verifier devices."""
    if isinstance(key, Ed25519PrivateKey):
        key = key.public_key()
    raw = key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(raw).decode("ascii")


def sign_message(private_key: Ed25519PrivateKey, message: bytes) -> str:
    signature = private_key.sign(message)
    return base64.b64encode(signature).decode("ascii")


def verify_message(public_key: Ed25519PublicKey, message: bytes, signature_b64: str) -> bool:
    try:
        signature = base64.b64decode(signature_b64, validate=True)
    except (binascii.Error, ValueError):
        return False
    if len(signature) != SIGNATURE_LENGTH:
        return False
    try:
        public_key.verify(signature, message)
    except InvalidSignature:
        return False
    return True


def _b64decode(raw: bytes, *, what: str) -> bytes:
    try:
        return base64.b64decode(raw.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise KeyLoadError(f"{what} is neither PEM nor base64") from exc
