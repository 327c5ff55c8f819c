"""
Repository Layer for Docseal

Identity and signature-registry storage on top of Database.
"""

from typing import List, Optional
import structlog

from .database import Database, IntegrityViolation, get_database
from .models import Identity, RegistryEntry

logger = structlog.get_logger()


class ConflictError(Exception):
    """A record with the same unique value already exists."""


class UnknownSignerError(Exception):
    """A registry entry names an identity that does not exist."""


class IdentityRepository:
    """Repository for signing identities."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def create(self, identity: Identity) -> str:
        """Persist a new identity and return its id."""
        try:
            self.db.execute(
                """INSERT INTO identities
                   (identity_id, label, public_key, wrapped_private_key,
                    nonce, kdf_salt, created_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                identity.to_db_tuple()
            )
        except IntegrityViolation as e:
            logger.warning("identity_conflict", label=identity.label)
            raise ConflictError(f"Identity already exists: {identity.label}") from e

        logger.info("identity_created", identity_id=identity.identity_id, label=identity.label)
        return identity.identity_id

    def get(self, identity_id: str) -> Optional[Identity]:
        """Get an identity by ID."""
        results = self.db.execute(
            "SELECT * FROM identities WHERE identity_id = ?",
            (identity_id,)
        )
        return Identity.from_row(results[0]) if results else None

    def find_by_public_key(self, public_key: bytes) -> Optional[Identity]:
        """Find the identity owning a public key."""
        results = self.db.execute(
            "SELECT * FROM identities WHERE public_key = ?",
            (bytes(public_key).hex(),)
        )
        return Identity.from_row(results[0]) if results else None

    def find_by_label(self, label: str) -> Optional[Identity]:
        """Find an identity by its display label."""
        results = self.db.execute(
            "SELECT * FROM identities WHERE label = ?",
            (label,)
        )
        return Identity.from_row(results[0]) if results else None


class RegistryRepository:
    """Repository for signed-document registry entries."""

    def __init__(self, db: Optional[Database] = None):
        self.db = db or get_database()

    def insert(self, entry: RegistryEntry) -> RegistryEntry:
        """
        Record a signing event.

        Raises ConflictError if the signature is already registered and
        UnknownSignerError if the signer identity does not exist.
        """
        try:
            self.db.execute(
                """INSERT INTO signed_documents
                   (signature, content_digest, signer_identity_id, filename, created_at)
                   VALUES (?, ?, ?, ?, ?)""",
                entry.to_db_tuple()
            )
        except IntegrityViolation as e:
            if e.foreign_key:
                logger.warning("registry_unknown_signer", signer_identity_id=entry.signer_identity_id)
                raise UnknownSignerError(f"Unknown signer identity: {entry.signer_identity_id}") from e
            logger.warning("registry_conflict", signature=entry.signature.hex()[:16])
            raise ConflictError("Signature is already registered") from e

        logger.debug(
            "registry_entry_created",
            signature=entry.signature.hex()[:16],
            signer_identity_id=entry.signer_identity_id,
        )
        return entry

    def find_by_signature(self, signature: bytes) -> Optional[RegistryEntry]:
        """Look up the signing event for a signature."""
        results = self.db.execute(
            "SELECT * FROM signed_documents WHERE signature = ?",
            (bytes(signature).hex(),)
        )
        return RegistryEntry.from_row(results[0]) if results else None

    def list_by_signer(self, identity_id: str, limit: int = 100) -> List[RegistryEntry]:
        """List documents signed by an identity, newest first."""
        results = self.db.execute(
            "SELECT * FROM signed_documents WHERE signer_identity_id = ? ORDER BY created_at DESC LIMIT ?",
            (identity_id, limit)
        )
        return [RegistryEntry.from_row(r) for r in results]

    def count(self) -> int:
        """Count registry entries."""
        results = self.db.execute("SELECT COUNT(*) as cnt FROM signed_documents")
        return results[0]["cnt"] if results else 0
