"""
Ed25519 Signature Engine

Signatures are computed over content digests, never over raw documents.
Ed25519 is deterministic: the same digest and key always produce the same
64-byte signature.
"""

import hashlib
import os
from dataclasses import dataclass
from typing import Union
import structlog

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from .keys import zeroize

logger = structlog.get_logger()

PRIVATE_KEY_SIZE = 32
PUBLIC_KEY_SIZE = 32
SIGNATURE_SIZE = 64

KeyBytes = Union[bytes, bytearray, memoryview]


def key_fingerprint(public_key: bytes) -> str:
    """Short, log-safe identifier for a public key."""
    return hashlib.sha256(bytes(public_key)).hexdigest()[:16]


@dataclass
class KeyPair:
    """A freshly generated Ed25519 key pair. The private half is a wipeable seed."""
    public_key: bytes
    private_key: bytearray

    @property
    def fingerprint(self) -> str:
        return key_fingerprint(self.public_key)

    def wipe(self) -> None:
        zeroize(self.private_key)


class Ed25519Signer:
    """Ed25519 signer bound to one private key, using the cryptography library."""

    def __init__(self, private_key_bytes: KeyBytes):
        if len(private_key_bytes) != PRIVATE_KEY_SIZE:
            raise ValueError(f"Ed25519 private key must be {PRIVATE_KEY_SIZE} bytes")
        self._private_key = ed25519.Ed25519PrivateKey.from_private_bytes(private_key_bytes)
        self._public_key = self._private_key.public_key()

    @property
    def key_id(self) -> str:
        return key_fingerprint(self.get_public_key())

    def sign(self, data: bytes) -> bytes:
        return self._private_key.sign(bytes(data))

    def get_public_key(self) -> bytes:
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )


def generate_keypair() -> KeyPair:
    """Draw a random 32-byte seed and derive its Ed25519 public key."""
    seed = bytearray(os.urandom(PRIVATE_KEY_SIZE))
    public_key = Ed25519Signer(seed).get_public_key()
    return KeyPair(public_key=public_key, private_key=seed)


def sign(digest: bytes, private_key: KeyBytes) -> bytes:
    """Sign a digest, returning a 64-byte signature."""
    return Ed25519Signer(private_key).sign(digest)


def verify(signature: bytes, digest: bytes, public_key: bytes) -> bool:
    """
    Verify an Ed25519 signature over a digest.

    Never raises: malformed keys or signatures count as a failed
    verification.
    """
    try:
        if len(signature) != SIGNATURE_SIZE or len(public_key) != PUBLIC_KEY_SIZE:
            logger.debug(
                "signature_malformed",
                signature_len=len(signature),
                public_key_len=len(public_key),
            )
            return False
        verifier = ed25519.Ed25519PublicKey.from_public_bytes(bytes(public_key))
        verifier.verify(bytes(signature), bytes(digest))
        return True
    except Exception as e:
        logger.debug("signature_verification_failed", error=type(e).__name__)
        return False
