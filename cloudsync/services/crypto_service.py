"""Symmetric encryption for provider secrets stored at rest.

New values are written as a tagged envelope so that reading them back is a
direct dispatch on the tag:

- ``v1:<fernet token>`` for values encrypted with the application secret;
- ``plain:<value>`` when no secret key is configured (degraded mode).

Untagged values come from older installations whose storage format was
ambiguous. They are read with an ordered fallback: direct decrypt, then
base64-decode and decrypt (values that were encoded twice), then give up.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)

ENVELOPE_V1 = "v1:"
PLAINTEXT_TAG = "plain:"

# SHA-256 digests of stored values that already produced a decrypt warning.
_warned_digests: set[str] = set()
_degraded_mode_warned = False


def _derive_key(secret_key: str) -> bytes:
    """Derive a Fernet key from the application secret using SHA-256."""
    digest = hashlib.sha256(secret_key.encode()).digest()
    return base64.urlsafe_b64encode(digest)


def encrypt_value(plaintext: str, secret_key: str) -> str:
    """Encrypt a string and return the bare Fernet token."""
    f = Fernet(_derive_key(secret_key))
    return f.encrypt(plaintext.encode()).decode()


def decrypt_value(ciphertext: str, secret_key: str) -> str:
    """Decrypt a bare Fernet token. Raises ValueError on failure."""
    f = Fernet(_derive_key(secret_key))
    try:
        return f.decrypt(ciphertext.encode()).decode()
    except (InvalidToken, UnicodeDecodeError) as exc:
        raise ValueError("Failed to decrypt credential data") from exc


def ciphertext_digest(stored: str) -> str:
    """Stable identifier for a stored value, safe to log."""
    return hashlib.sha256(stored.encode()).hexdigest()


def seal_secret(plaintext: str, secret_key: str) -> str:
    """Return the at-rest form of *plaintext*. Empty input stays empty."""
    if not plaintext:
        return ""
    if not secret_key:
        _warn_degraded_mode()
        return PLAINTEXT_TAG + plaintext
    return ENVELOPE_V1 + encrypt_value(plaintext, secret_key)


def open_secret(stored: str, secret_key: str) -> str:
    """Return the plaintext for an at-rest value.

    Never raises. A value that cannot be decrypted reads as empty and logs
    one warning per distinct stored value for the life of the process.
    """
    if not stored:
        return ""
    if stored.startswith(PLAINTEXT_TAG):
        return stored[len(PLAINTEXT_TAG) :]
    if not secret_key:
        _warn_undecryptable(stored)
        return ""
    if stored.startswith(ENVELOPE_V1):
        try:
            return decrypt_value(stored[len(ENVELOPE_V1) :], secret_key)
        except ValueError:
            _warn_undecryptable(stored)
            return ""
    return _open_legacy(stored, secret_key)


def _open_legacy(stored: str, secret_key: str) -> str:
    try:
        return decrypt_value(stored, secret_key)
    except ValueError:
        pass

    try:
        decoded = base64.b64decode(stored, validate=True).decode("ascii")
    except (binascii.Error, UnicodeDecodeError):
        decoded = ""
    if decoded:
        try:
            return decrypt_value(decoded, secret_key)
        except ValueError:
            pass

    _warn_undecryptable(stored)
    return ""


def _warn_undecryptable(stored: str) -> None:
    digest = ciphertext_digest(stored)
    if digest in _warned_digests:
        return
    _warned_digests.add(digest)
    logger.warning(
        "Stored credential could not be decrypted and is treated as empty "
        "(value sha256=%s); clear the provider credentials to recover",
        digest,
    )


def _warn_degraded_mode() -> None:
    global _degraded_mode_warned
    if _degraded_mode_warned:
        return
    _degraded_mode_warned = True
    logger.warning("SECRET_KEY is empty: provider secrets are stored without encryption")


def reset_warning_state() -> None:
    """Forget which values already produced warnings."""
    global _degraded_mode_warned
    _warned_digests.clear()
    _degraded_mode_warned = False
