"""
Signing Identity Registration

An identity is created once: a fresh Ed25519 key pair is generated and the
private half is wrapped under a key derived from the owner's password. The
seed and the derived key are wiped before returning; only the public key,
wrapped key, nonce and salt survive.
"""

from typing import Optional
import structlog

from crypto.keys import derive_key, wrap_key, zeroize
from crypto.signer import generate_keypair, key_fingerprint
from persistence.models import Identity

from .ports import IdentityStore

logger = structlog.get_logger()

DEFAULT_MIN_PASSWORD_LENGTH = 8


class WeakPasswordError(ValueError):
    """The chosen password does not meet the minimum length."""


def create_identity(
    label: str,
    password: str,
    min_password_length: int = DEFAULT_MIN_PASSWORD_LENGTH,
) -> Identity:
    """Generate and wrap a new signing key for `label`."""
    label = (label or "").strip()
    if not label:
        raise ValueError("Identity label is required")
    if password is None or len(password) < min_password_length:
        raise WeakPasswordError(
            f"Password must be at least {min_password_length} characters long"
        )

    wrapping_key, salt = derive_key(password)
    keypair = generate_keypair()
    try:
        wrapped, nonce = wrap_key(keypair.private_key, wrapping_key)
    finally:
        keypair.wipe()
        zeroize(wrapping_key)

    identity = Identity(
        label=label,
        public_key=keypair.public_key,
        wrapped_private_key=wrapped,
        nonce=nonce,
        kdf_salt=salt,
    )
    logger.info(
        "identity_generated",
        identity_id=identity.identity_id,
        fingerprint=key_fingerprint(identity.public_key),
    )
    return identity


def register_identity(
    store: IdentityStore,
    label: str,
    password: str,
    min_password_length: Optional[int] = None,
) -> Identity:
    """Create an identity and persist it. A taken label raises ConflictError."""
    identity = create_identity(
        label,
        password,
        min_password_length=min_password_length or DEFAULT_MIN_PASSWORD_LENGTH,
    )
    store.create(identity)
    return identity
