"""
Password-Based Key Derivation and Key Wrapping

A signing identity never stores its private key in the clear. The key is
wrapped (AES-256-GCM) under a key derived from the owner's password
(PBKDF2-HMAC-SHA256), and only the wrapped form, its nonce and the KDF salt
are persisted.

Raw key material handled here lives in bytearrays so that it can be
overwritten once it is no longer needed. Python gives no guarantee that
no other copy exists, so zeroize() is best effort; callers must still scope
secrets as tightly as possible (see unwrapped_key()).
"""

import os
from contextlib import contextmanager
from typing import Generator, Optional, Tuple, Union
import structlog

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = structlog.get_logger()

PBKDF2_ITERATIONS = 100000
DERIVED_KEY_SIZE = 32  # AES-256
SALT_SIZE = 32
NONCE_SIZE = 12  # 96-bit GCM nonce
TAG_SIZE = 16

SecretBuffer = Union[bytearray, memoryview]


class WrapError(Exception):
    """The AEAD primitive failed while wrapping a key."""


class AuthenticationError(Exception):
    """
    A wrapped key failed authentication.

    This is the expected signal for a wrong password and is recoverable:
    the caller may simply retry with another password.
    """


def zeroize(buffer: Optional[SecretBuffer]) -> None:
    """Overwrite every byte of a mutable buffer with zeros."""
    if buffer is None:
        return
    if isinstance(buffer, memoryview):
        buffer = buffer.cast("B")
    for i in range(len(buffer)):
        buffer[i] = 0


def derive_key(password: str, salt: Optional[bytes] = None) -> Tuple[bytearray, bytes]:
    """
    Derive a 256-bit wrapping key from a password.

    A fresh 32-byte salt is drawn when none is given; the salt is returned so
    the caller can persist it. The same (password, salt) always yields the
    same key.
    """
    if salt is None:
        salt = os.urandom(SALT_SIZE)
    elif len(salt) != SALT_SIZE:
        raise ValueError(f"KDF salt must be {SALT_SIZE} bytes, got {len(salt)}")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=DERIVED_KEY_SIZE,
        salt=bytes(salt),
        iterations=PBKDF2_ITERATIONS,
    )
    key = bytearray(kdf.derive(password.encode("utf-8")))
    return key, bytes(salt)


def wrap_key(raw_key: SecretBuffer, derived_key: SecretBuffer) -> Tuple[bytes, bytes]:
    """
    Encrypt a raw private key under a derived key.

    Returns (ciphertext, nonce). The 16-byte GCM tag is appended to the
    ciphertext.
    """
    nonce = os.urandom(NONCE_SIZE)
    try:
        ciphertext = AESGCM(derived_key).encrypt(nonce, bytes(raw_key), None)
    except Exception as e:
        logger.error("key_wrap_failed", error=str(e))
        raise WrapError(f"Key wrapping failed: {e}") from e
    return ciphertext, nonce


def unwrap_key(ciphertext: bytes, nonce: bytes, derived_key: SecretBuffer) -> bytearray:
    """
    Decrypt a wrapped private key.

    Raises AuthenticationError when the tag does not verify, which is what
    a wrong password produces.
    """
    if len(nonce) != NONCE_SIZE or len(ciphertext) <= TAG_SIZE:
        raise AuthenticationError("Wrapped key material is malformed")

    try:
        plaintext = AESGCM(derived_key).decrypt(nonce, ciphertext, None)
    except InvalidTag as e:
        raise AuthenticationError("Unable to unwrap signing key: authentication failed") from e

    raw_key = bytearray(plaintext)
    del plaintext
    return raw_key


@contextmanager
def derived_key(password: str, salt: bytes) -> Generator[bytearray, None, None]:
    """Scope a password-derived key; it is zeroized when the block exits."""
    key, _ = derive_key(password, salt)
    try:
        yield key
    finally:
        zeroize(key)


@contextmanager
def unwrapped_key(
    ciphertext: bytes,
    nonce: bytes,
    wrapping_key: SecretBuffer,
) -> Generator[bytearray, None, None]:
    """
    Scope an unwrapped private key.

    The raw key is zeroized on every exit path, including exceptions raised
    inside the with-block.

    Usage:
        with unwrapped_key(identity.wrapped_private_key, identity.nonce, key) as raw:
            signature = sign(digest, raw)
    """
    raw_key = unwrap_key(ciphertext, nonce, wrapping_key)
    try:
        yield raw_key
    finally:
        zeroize(raw_key)
