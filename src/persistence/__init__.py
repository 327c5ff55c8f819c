"""
Persistence Layer for Docseal

Supports SQLite (dev) and PostgreSQL (production).
"""

from .database import Database, IntegrityViolation, get_database
from .models import Identity, RegistryEntry
from .repository import ConflictError, IdentityRepository, RegistryRepository, UnknownSignerError

__all__ = [
    "Database",
    "IntegrityViolation",
    "get_database",
    "Identity",
    "RegistryEntry",
    "ConflictError",
    "IdentityRepository",
    "RegistryRepository",
    "UnknownSignerError",
]
