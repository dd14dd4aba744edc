"""
Store Crypto — password hashing, TOTP and backup-code digests.

- Password hashing: scrypt (n=2**14, r=8, p=1) with a random 16-byte salt,
  stored as [salt 16B][derived 32B].
- Time-based codes: RFC 6238 TOTP (HMAC-SHA1), verified against a window of
  steps around the current time with constant-time comparison.
- Backup codes: normalized, then HKDF-SHA256 digests bound to the username.
  Plain codes are shown once at enrollment and never stored.

Security Note:
    Never log secrets, codes, keys or digests.
"""
import os
import time
import string
import secrets
import logging
from typing import Optional

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import constant_time, hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt
from cryptography.hazmat.primitives.twofactor.totp import TOTP

logger = logging.getLogger("volkpass.stores")

SALT_SIZE = 16
KEY_LENGTH = 32
TOTP_KEY_SIZE = 20  # 160-bit, RFC 4226 recommendation

_SCRYPT_N = 2 ** 14
_SCRYPT_R = 8
_SCRYPT_P = 1

BACKUP_CODE_ALPHABET = string.ascii_uppercase + string.digits


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(seed: bytes, context: str) -> bytes:
    """Derive a 32-byte key using HKDF-SHA256.

    Args:
        seed: Input key material.
        context: Context string for domain separation.

    Returns:
        32-byte derived key.
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=None,
        info=context.encode("utf-8"),
    )
    return hkdf.derive(seed)


# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------

def _scrypt(salt: bytes) -> Scrypt:
    return Scrypt(salt=salt, length=KEY_LENGTH, n=_SCRYPT_N, r=_SCRYPT_R, p=_SCRYPT_P)


def hash_secret(secret: str) -> bytes:
    """Hash an account password for storage."""
    salt = os.urandom(SALT_SIZE)
    return salt + _scrypt(salt).derive(secret.encode("utf-8"))


def verify_secret(secret: str, stored: bytes) -> bool:
    """Check a password against a ``hash_secret`` value."""
    if len(stored) != SALT_SIZE + KEY_LENGTH:
        return False
    salt, expected = stored[:SALT_SIZE], stored[SALT_SIZE:]
    try:
        _scrypt(salt).verify(secret.encode("utf-8"), expected)
    except InvalidKey:
        return False
    return True


# ---------------------------------------------------------------------------
# Time-based one-time codes
# ---------------------------------------------------------------------------

def new_totp_key() -> bytes:
    return secrets.token_bytes(TOTP_KEY_SIZE)


def build_totp(key: bytes, digits: int = 6, step: int = 30) -> TOTP:
    return TOTP(key, digits, hashes.SHA1(), step)


def current_code(key: bytes, digits: int = 6, step: int = 30, at: Optional[float] = None) -> str:
    """Return the code valid at ``at`` (defaults to now)."""
    moment = int(time.time() if at is None else at)
    return build_totp(key, digits, step).generate(moment).decode("ascii")


def verify_code(
    key: bytes,
    code: str,
    digits: int = 6,
    step: int = 30,
    window: int = 1,
    at: Optional[float] = None,
) -> bool:
    """Verify a TOTP code, accepting ``window`` steps of clock drift each way."""
    totp = build_totp(key, digits, step)
    moment = int(time.time() if at is None else at)
    candidate = code.encode("ascii")
    for offset in range(-window, window + 1):
        expected = totp.generate(moment + offset * step)
        if constant_time.bytes_eq(expected, candidate):
            return True
    return False


def provisioning_uri(key: bytes, account_name: str, issuer: str, digits: int = 6, step: int = 30) -> str:
    return build_totp(key, digits, step).get_provisioning_uri(account_name, issuer)


# ---------------------------------------------------------------------------
# Backup codes
# ---------------------------------------------------------------------------

def normalize_backup_code(code: str) -> str:
    """Strip whitespace and hyphens, fold to upper case."""
    return code.strip().replace("-", "").upper()


def generate_backup_codes(count: int, length: int) -> list[str]:
    return [
        "".join(secrets.choice(BACKUP_CODE_ALPHABET) for _ in range(length))
        for _ in range(count)
    ]


def digest_backup_code(username: str, code: str) -> bytes:
    """Digest of a normalized backup code, bound to its owner."""
    return derive_key(
        normalize_backup_code(code).encode("utf-8"),
        f"volkpass-backup-code:{username}",
    )
