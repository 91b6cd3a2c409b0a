"""
Fernet encryption for credentials stored at rest.

Per-user GitHub tokens are kept in ``profiles.github_token_encrypted`` and
only decrypted for the duration of one gateway call.

Key: ``ENCRYPTION_KEY`` from the app config (falling back to the environment
outside an app context). It must be a 32-byte URL-safe base64 key:
    python -c "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())"
Rotating the key makes every stored token undecryptable; users store theirs again.
"""

import os

from cryptography.fernet import Fernet
from flask import current_app, has_app_context


def _get_fernet() -> Fernet:
    """Return a Fernet keyed by ENCRYPTION_KEY.

    Raises RuntimeError when no key is configured, so a token is never stored
    in plaintext.
    """
    raw_key = None
    if has_app_context():
        raw_key = current_app.config.get("ENCRYPTION_KEY")
    raw_key = raw_key or os.getenv("ENCRYPTION_KEY")
    if not raw_key:
        raise RuntimeError(
            "ENCRYPTION_KEY is not set. Generate one with: python -c \""
            "from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        )
    return Fernet(raw_key.encode() if isinstance(raw_key, str) else raw_key)


def encrypt_secret(plaintext: str) -> str:
    """Encrypt *plaintext* and return URL-safe base64 ciphertext for a TEXT column.

    Raises:
        RuntimeError: ENCRYPTION_KEY is not set.
    """
    return _get_fernet().encrypt(plaintext.encode("utf-8")).decode("utf-8")


def decrypt_secret(ciphertext: str) -> str:
    """Decrypt a value produced by :func:`encrypt_secret`.

    Raises:
        RuntimeError: ENCRYPTION_KEY is not set.
        cryptography.fernet.InvalidToken: Ciphertext was tampered with or
            encrypted under a different key.
    """
    return _get_fernet().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
