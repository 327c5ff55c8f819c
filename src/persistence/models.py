"""
Data Models for the Persistence Layer

Binary values (keys, nonces, salts, signatures, digests) are held as bytes
in memory and stored as lowercase hex.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional
import uuid


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _as_text(value: Any) -> str:
    # PostgreSQL hands back datetimes for TIMESTAMPTZ columns
    if isinstance(value, datetime):
        return value.isoformat()
    return value


@dataclass
class Identity:
    """
    A signing identity.

    Only the wrapped private key is held; the raw key exists solely inside a
    signing call.
    """
    label: str
    public_key: bytes
    wrapped_private_key: bytes
    nonce: bytes
    kdf_salt: bytes
    identity_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: str = field(default_factory=_now)

    def to_dict(self) -> Dict[str, Any]:
        """Public view of the identity (no wrapped key material)."""
        return {
            "identity_id": self.identity_id,
            "label": self.label,
            "public_key": self.public_key.hex(),
            "created_at": self.created_at,
        }

    def to_db_tuple(self) -> tuple:
        return (
            self.identity_id,
            self.label,
            self.public_key.hex(),
            self.wrapped_private_key.hex(),
            self.nonce.hex(),
            self.kdf_salt.hex(),
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Identity":
        return cls(
            identity_id=row["identity_id"],
            label=row["label"],
            public_key=bytes.fromhex(row["public_key"]),
            wrapped_private_key=bytes.fromhex(row["wrapped_private_key"]),
            nonce=bytes.fromhex(row["nonce"]),
            kdf_salt=bytes.fromhex(row["kdf_salt"]),
            created_at=_as_text(row["created_at"]),
        )


@dataclass
class RegistryEntry:
    """A recorded signing event, keyed by its (unique) signature."""
    signature: bytes
    content_digest: bytes
    signer_identity_id: str
    filename: str
    created_at: str = field(default_factory=_now)
    id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "signature": self.signature.hex(),
            "content_digest": self.content_digest.hex(),
            "signer_identity_id": self.signer_identity_id,
            "filename": self.filename,
            "created_at": self.created_at,
        }

    def to_db_tuple(self) -> tuple:
        return (
            self.signature.hex(),
            self.content_digest.hex(),
            self.signer_identity_id,
            self.filename,
            self.created_at,
        )

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "RegistryEntry":
        return cls(
            id=row.get("id"),
            signature=bytes.fromhex(row["signature"]),
            content_digest=bytes.fromhex(row["content_digest"]),
            signer_identity_id=row["signer_identity_id"],
            filename=row["filename"],
            created_at=_as_text(row["created_at"]),
        )
