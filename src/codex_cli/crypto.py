#!/usr/bin/env python3
"""Crypto - Password-based encryption of individual entry values.

Wire format: ``encrypted::v1:`` + base64(salt[32] | iv[12] | tag[16] | ciphertext).
Keys are derived with PBKDF2-HMAC-SHA256 and values sealed with AES-256-GCM.
Random salt and nonce come from libsodium via pynacl.
"""

import base64
import binascii
from typing import Any, Dict

import nacl.utils
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .errors import AuthenticationFailedError, CorruptedDataError, NotEncryptedError

# Constants
PREFIX = "encrypted::v1:"
MASK = "[encrypted]"
SALT_SIZE = 32
IV_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
PBKDF2_ITERATIONS = 600_000

AUTH_FAILED_MESSAGE = "Decryption failed. Wrong password or corrupted data."


def is_encrypted(value: Any) -> bool:
    """Check whether a value is an encrypted leaf."""
    return isinstance(value, str) and value.startswith(PREFIX)


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 32-byte AES key from password using PBKDF2-HMAC-SHA256."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    return kdf.derive(password.encode("utf-8"))


def encrypt_value(plaintext: str, password: str) -> str:
    """Encrypt plaintext under password with a fresh salt and nonce."""
    salt = nacl.utils.random(SALT_SIZE)
    iv = nacl.utils.random(IV_SIZE)
    key = derive_key(password, salt)

    # AESGCM appends the tag to the ciphertext; the wire format wants it first
    sealed = AESGCM(key).encrypt(iv, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]

    payload = salt + iv + tag + ciphertext
    return PREFIX + base64.b64encode(payload).decode("ascii")


def decrypt_value(encrypted: str, password: str) -> str:
    """Decrypt an encrypted leaf.

    Raises:
        NotEncryptedError: The value lacks the version prefix.
        CorruptedDataError: The payload is not base64 or is too short.
        AuthenticationFailedError: Wrong password or tampered ciphertext.
            The message is the same in both cases.
    """
    if not is_encrypted(encrypted):
        raise NotEncryptedError("Value is not encrypted.")

    try:
        payload = base64.b64decode(encrypted[len(PREFIX):], validate=True)
    except (binascii.Error, ValueError):
        raise CorruptedDataError("Corrupted encrypted data.") from None

    header = SALT_SIZE + IV_SIZE + TAG_SIZE
    if len(payload) < header:
        raise CorruptedDataError("Corrupted encrypted data.")

    salt = payload[:SALT_SIZE]
    iv = payload[SALT_SIZE:SALT_SIZE + IV_SIZE]
    tag = payload[SALT_SIZE + IV_SIZE:header]
    ciphertext = payload[header:]

    key = derive_key(password, salt)
    try:
        plaintext = AESGCM(key).decrypt(iv, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except (InvalidTag, UnicodeDecodeError):
        raise AuthenticationFailedError(AUTH_FAILED_MESSAGE) from None


def mask_value(value: Any) -> Any:
    return MASK if is_encrypted(value) else value


def mask_tree(tree: Dict[str, Any]) -> Dict[str, Any]:
    """Replace every encrypted leaf with the [encrypted] marker.

    Returns a new tree; structure and plain leaves pass through unchanged.
    """
    masked: Dict[str, Any] = {}
    for key, value in tree.items():
        if isinstance(value, dict):
            masked[key] = mask_tree(value)
        else:
            masked[key] = mask_value(value)
    return masked
