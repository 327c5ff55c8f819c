"""
Database Connection Layer

Supports SQLite (dev) and PostgreSQL (production) with automatic schema creation.
"""

import os
import sqlite3
from contextlib import contextmanager
from typing import Optional, Generator, Any, Dict, List
from datetime import datetime, timezone
import threading
import structlog

logger = structlog.get_logger()

# Schema version for migrations
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Signing identities (only the wrapped private key is ever stored)
CREATE TABLE IF NOT EXISTS identities (
    identity_id TEXT PRIMARY KEY,
    label TEXT NOT NULL UNIQUE,
    public_key TEXT NOT NULL UNIQUE,
    wrapped_private_key TEXT NOT NULL,
    nonce TEXT NOT NULL,
    kdf_salt TEXT NOT NULL,
    created_at TEXT NOT NULL
);

-- Signature registry (attribution of signing events)
CREATE TABLE IF NOT EXISTS signed_documents (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    signature TEXT NOT NULL UNIQUE,
    content_digest TEXT NOT NULL,
    signer_identity_id TEXT NOT NULL,
    filename TEXT NOT NULL,
    created_at TEXT NOT NULL,
    FOREIGN KEY (signer_identity_id) REFERENCES identities(identity_id)
);

-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_signed_documents_digest ON signed_documents(content_digest);
CREATE INDEX IF NOT EXISTS idx_signed_documents_signer ON signed_documents(signer_identity_id);
CREATE INDEX IF NOT EXISTS idx_signed_documents_digest_signer ON signed_documents(content_digest, signer_identity_id);
"""

POSTGRES_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS identities (
    identity_id TEXT PRIMARY KEY,
    label TEXT NOT NULL UNIQUE,
    public_key TEXT NOT NULL UNIQUE,
    wrapped_private_key TEXT NOT NULL,
    nonce TEXT NOT NULL,
    kdf_salt TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS signed_documents (
    id SERIAL PRIMARY KEY,
    signature TEXT NOT NULL UNIQUE,
    content_digest TEXT NOT NULL,
    signer_identity_id TEXT NOT NULL REFERENCES identities(identity_id),
    filename TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
);

CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_signed_documents_digest ON signed_documents(content_digest);
CREATE INDEX IF NOT EXISTS idx_signed_documents_signer ON signed_documents(signer_identity_id);
CREATE INDEX IF NOT EXISTS idx_signed_documents_digest_signer ON signed_documents(content_digest, signer_identity_id);
"""


class IntegrityViolation(Exception):
    """A write violated a uniqueness or foreign-key constraint."""

    def __init__(self, message: str, foreign_key: bool = False):
        super().__init__(message)
        self.foreign_key = foreign_key


class Database:
    """
    Database connection manager with SQLite and PostgreSQL support.

    Usage:
        db = Database()  # Uses DATABASE_URL env or defaults to SQLite
        with db.connection() as conn:
            conn.execute("SELECT * FROM identities")
    """

    _instance: Optional["Database"] = None
    _lock = threading.Lock()

    def __init__(self, database_url: Optional[str] = None):
        self.database_url = database_url or os.environ.get(
            "DATABASE_URL",
            "sqlite:///docseal.db"
        )
        self.is_postgres = self.database_url.startswith("postgres")
        self._local = threading.local()
        self._initialized = False

    @classmethod
    def get_instance(cls, database_url: Optional[str] = None) -> "Database":
        """Get singleton database instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = cls(database_url)
        return cls._instance

    def _get_sqlite_path(self) -> str:
        """Extract SQLite file path from URL."""
        if self.database_url.startswith("sqlite:///"):
            return self.database_url[10:]
        return "docseal.db"

    @contextmanager
    def connection(self) -> Generator[Any, None, None]:
        """Get a database connection (thread-safe)."""
        if self.is_postgres:
            with self._postgres_connection() as conn:
                yield conn
        else:
            with self._sqlite_connection() as conn:
                yield conn

    @contextmanager
    def _sqlite_connection(self) -> Generator[sqlite3.Connection, None, None]:
        """SQLite connection with WAL mode for concurrency."""
        if not hasattr(self._local, 'conn') or self._local.conn is None:
            db_path = self._get_sqlite_path()
            self._local.conn = sqlite3.connect(
                db_path,
                check_same_thread=False,
                timeout=30.0,
            )
            self._local.conn.row_factory = sqlite3.Row
            # WAL is a no-op for in-memory databases
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.conn.execute("PRAGMA synchronous=NORMAL")
            self._local.conn.execute("PRAGMA foreign_keys=ON")

        try:
            yield self._local.conn
            self._local.conn.commit()
        except sqlite3.IntegrityError as e:
            self._local.conn.rollback()
            raise IntegrityViolation(str(e), foreign_key="FOREIGN KEY" in str(e)) from e
        except Exception:
            self._local.conn.rollback()
            raise

    @contextmanager
    def _postgres_connection(self) -> Generator[Any, None, None]:
        """PostgreSQL connection (one per unit of work)."""
        try:
            import psycopg2
            from psycopg2.extras import RealDictCursor
        except ImportError:
            raise ImportError("psycopg2 required for PostgreSQL. Install with: pip install psycopg2-binary")

        conn = psycopg2.connect(self.database_url, cursor_factory=RealDictCursor)
        try:
            yield conn
            conn.commit()
        except psycopg2.IntegrityError as e:
            conn.rollback()
            # 23503: foreign_key_violation
            raise IntegrityViolation(str(e), foreign_key=e.pgcode == "23503") from e
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _prepare(self, query: str) -> str:
        """Queries are written with qmark placeholders; psycopg2 wants %s."""
        if self.is_postgres:
            return query.replace("?", "%s")
        return query

    def initialize(self) -> None:
        """Initialize database schema."""
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            schema = POSTGRES_SCHEMA_SQL if self.is_postgres else SCHEMA_SQL

            with self.connection() as conn:
                now = datetime.now(timezone.utc).isoformat()
                if self.is_postgres:
                    cursor = conn.cursor()
                    cursor.execute(schema)
                    cursor.execute(
                        "INSERT INTO schema_version (version, applied_at) VALUES (%s, %s) ON CONFLICT (version) DO NOTHING",
                        (SCHEMA_VERSION, now)
                    )
                else:
                    conn.executescript(schema)
                    conn.execute(
                        "INSERT OR IGNORE INTO schema_version (version, applied_at) VALUES (?, ?)",
                        (SCHEMA_VERSION, now)
                    )

            self._initialized = True
            logger.info("database_initialized", url=self.database_url[:20] + "...", is_postgres=self.is_postgres)

    def execute(self, query: str, params: tuple = ()) -> List[Dict[str, Any]]:
        """Execute a query and return results as list of dicts."""
        with self.connection() as conn:
            if self.is_postgres:
                cursor = conn.cursor()
                cursor.execute(self._prepare(query), params)
                if cursor.description:
                    return [dict(row) for row in cursor.fetchall()]
                return []
            else:
                cursor = conn.execute(query, params)
                if cursor.description:
                    return [dict(row) for row in cursor.fetchall()]
                return []

    def close(self) -> None:
        """Close database connections."""
        if hasattr(self._local, 'conn') and self._local.conn:
            self._local.conn.close()
            self._local.conn = None


def get_database(database_url: Optional[str] = None) -> Database:
    """Get the database singleton instance."""
    db = Database.get_instance(database_url)
    db.initialize()
    return db
