"""
Collaborator contracts used by the orchestrators.

persistence.repository provides the sqlite/PostgreSQL implementations; any
object with these methods can stand in (an HTTP client, an in-memory fake).
"""

from typing import Optional, Protocol

from persistence.models import Identity, RegistryEntry


class IdentityStore(Protocol):
    """Lookup and creation of signing identities."""

    def get(self, identity_id: str) -> Optional[Identity]:
        ...

    def create(self, identity: Identity) -> str:
        ...

    def find_by_public_key(self, public_key: bytes) -> Optional[Identity]:
        ...


class RegistryStore(Protocol):
    """
    Attribution registry of signing events.

    insert() must reject a duplicate signature with ConflictError.
    """

    def insert(self, entry: RegistryEntry) -> RegistryEntry:
        ...

    def find_by_signature(self, signature: bytes) -> Optional[RegistryEntry]:
        ...
