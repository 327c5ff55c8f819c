"""
Cryptographic Primitives for Docseal

- PBKDF2-HMAC-SHA256 key derivation and AES-256-GCM key wrapping
- Ed25519 signatures over content digests
"""

from .keys import (
    AuthenticationError,
    WrapError,
    derive_key,
    derived_key,
    unwrap_key,
    unwrapped_key,
    wrap_key,
    zeroize,
)
from .signer import (
    Ed25519Signer,
    KeyPair,
    generate_keypair,
    key_fingerprint,
    sign,
    verify,
)

__all__ = [
    "AuthenticationError",
    "WrapError",
    "derive_key",
    "derived_key",
    "unwrap_key",
    "unwrapped_key",
    "wrap_key",
    "zeroize",
    "Ed25519Signer",
    "KeyPair",
    "generate_keypair",
    "key_fingerprint",
    "sign",
    "verify",
]
