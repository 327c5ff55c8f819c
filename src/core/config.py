"""
Runtime settings, read from the environment.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_MAX_DOCUMENT_BYTES = 50 * 1024 * 1024


def _env_bool(value: Optional[str], default: bool) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Settings:
    """Docseal configuration."""
    database_url: str = "sqlite:///docseal.db"
    max_document_bytes: int = DEFAULT_MAX_DOCUMENT_BYTES
    min_password_length: int = 8
    record_registry: bool = True  # signer writes attribution entries
    require_registry: bool = True  # verifier runs the attribution check
    log_level: str = "INFO"
    log_format: str = "console"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            database_url=env.get("DATABASE_URL", cls.database_url),
            max_document_bytes=int(env.get("DOCSEAL_MAX_DOCUMENT_BYTES", DEFAULT_MAX_DOCUMENT_BYTES)),
            min_password_length=int(env.get("DOCSEAL_MIN_PASSWORD_LENGTH", cls.min_password_length)),
            record_registry=_env_bool(env.get("DOCSEAL_RECORD_REGISTRY"), cls.record_registry),
            require_registry=_env_bool(env.get("DOCSEAL_REQUIRE_REGISTRY"), cls.require_registry),
            log_level=env.get("LOG_LEVEL", cls.log_level).upper(),
            log_format=env.get("LOG_FORMAT", cls.log_format).lower(),
        )
