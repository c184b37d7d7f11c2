# backend/labprovider/services/credentials.py
"""Random credential generation: local account passwords and WireGuard keys."""
import base64
import secrets
import string
from typing import Tuple

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import x25519

DEFAULT_PASSWORD_LENGTH = 16
PASSWORD_CHARS = string.ascii_lowercase + string.ascii_uppercase + string.digits + "!@#$%^&*"


def generate_password(length: int = DEFAULT_PASSWORD_LENGTH) -> str:
    """Generate a random password drawn uniformly from PASSWORD_CHARS.

    A non-positive length falls back to DEFAULT_PASSWORD_LENGTH.
    """
    if length <= 0:
        length = DEFAULT_PASSWORD_LENGTH
    return "".join(secrets.choice(PASSWORD_CHARS) for _ in range(length))


def clamp_private_key(raw: bytes) -> bytes:
    """Apply Curve25519 scalar clamping to a 32-byte private key."""
    if len(raw) != 32:
        raise ValueError("private key must be 32 bytes")
    key = bytearray(raw)
    key[0] &= 248
    key[31] &= 127
    key[31] |= 64
    return bytes(key)


def derive_public_key(private_key_b64: str) -> str:
    """Derive the base64 public key for a base64 WireGuard private key."""
    raw = base64.b64decode(private_key_b64, validate=True)
    if len(raw) != 32:
        raise ValueError("invalid private key length")
    private_key = x25519.X25519PrivateKey.from_private_bytes(raw)
    public_bytes = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(public_bytes).decode("utf-8")


def generate_keypair() -> Tuple[str, str]:
    """
    Generate a WireGuard keypair.

    Returns:
        tuple: (private_key_base64, public_key_base64)
    """
    private_bytes = clamp_private_key(secrets.token_bytes(32))
    private_key_b64 = base64.b64encode(private_bytes).decode("utf-8")
    return private_key_b64, derive_public_key(private_key_b64)
