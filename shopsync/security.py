"""Symmetric encryption for stored Shopify access tokens.

WHAT:
    Fernet wrapper used by the credential store to keep access tokens out of
    plaintext storage, and by the Shopify client to restore them for API calls.

WHY:
    - Credential rows outlive many sync runs; a database dump must not leak
      Admin API tokens.
    - Decryption happens only at the moment a client is built for a sync run.

REFERENCES:
    - shopsync/services/credential_store.py (encrypts on save)
    - shopsync/services/shopify_client.py::ShopifyClient.from_credential
"""

import base64
import logging
import os
from functools import lru_cache

from cryptography.fernet import Fernet, InvalidToken

logger = logging.getLogger(__name__)


@lru_cache()
def _get_cipher() -> Fernet:
    """Build the Fernet cipher from TOKEN_ENCRYPTION_KEY.

    Raises:
        RuntimeError: If the key is missing or is not a valid Fernet key.
    """
    key = os.getenv("TOKEN_ENCRYPTION_KEY", "")
    if not key:
        # Attempt to load from local .env if running in dev
        from shopsync.utils.env import load_env_file
        load_env_file()
        key = os.getenv("TOKEN_ENCRYPTION_KEY", "")

    if not key:
        raise RuntimeError(
            "TOKEN_ENCRYPTION_KEY is not set. Generate a 32-byte Fernet key and export it "
            "or add it to .env."
        )

    try:
        # Validate key length by decoding without storing plaintext material.
        base64.urlsafe_b64decode(key.encode("utf-8"))
        return Fernet(key)
    except (ValueError, TypeError) as exc:
        raise RuntimeError(
            "TOKEN_ENCRYPTION_KEY must be a URL-safe base64-encoded 32-byte string. "
            "Generate with: python -c \"from cryptography.fernet import Fernet; print(Fernet.generate_key().decode())\""
        ) from exc


def encrypt_secret(plaintext: str, *, context: str) -> str:
    """Encrypt a Shopify access token before persisting.

    Args:
        plaintext: Raw secret to encrypt.
        context:   Friendly label for logs (e.g. "shopify:<client_id>").

    Returns:
        URL-safe base64 ciphertext suitable for DB storage.
    """
    if not plaintext:
        raise ValueError("Cannot encrypt empty secret.")

    ciphertext = _get_cipher().encrypt(plaintext.encode("utf-8")).decode("utf-8")
    logger.info("[TOKEN_ENCRYPT] Secret encrypted for %s (length=%d)", context, len(plaintext))
    return ciphertext


def decrypt_secret(ciphertext: str, *, context: str) -> str:
    """Decrypt a stored access token for API calls.

    Raises:
        ValueError: If the stored value is empty or cannot be decrypted.
    """
    if not ciphertext:
        raise ValueError("Cannot decrypt empty secret.")

    try:
        plaintext = _get_cipher().decrypt(ciphertext.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        logger.error("[TOKEN_DECRYPT] Invalid ciphertext for %s", context)
        raise ValueError("Unable to decrypt stored token.") from exc

    logger.debug("[TOKEN_DECRYPT] Secret decrypted for %s (length=%d)", context, len(plaintext))
    return plaintext
