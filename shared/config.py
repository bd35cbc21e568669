"""
Server configuration, read from the environment (and a local .env file).
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from shared.constants import (
    DEFAULT_DATA_DIR,
    DATABASE_FILENAME,
    SONGS_DIRNAME,
    COVERS_DIRNAME,
    MAX_UPLOAD_SIZE,
    DEFAULT_TOKEN_TTL_SECONDS,
    DEFAULT_PORT,
)

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ServerConfig:
    """
    Runtime settings for the HTTP service.

    Attributes:
        data_dir: Root for the database, uploaded songs and extracted covers
        secret_key: Secret used to derive the token signing key
        db_path: SQLite file (defaults to data_dir/cadenza.db)
        token_ttl_seconds: Bearer token lifetime
        max_upload_size: Upload size limit in bytes
        count_range_requests: Count every stream request toward play_count,
            including mid-file range requests issued while seeking
        allowed_origins: CORS origins for the JSON API
        port: Listening port for `run.py serve`
        log_level: Root log level for `run.py serve`
    """
    data_dir: str = DEFAULT_DATA_DIR
    secret_key: str = "change-me"
    db_path: Optional[str] = None
    token_ttl_seconds: int = DEFAULT_TOKEN_TTL_SECONDS
    max_upload_size: int = MAX_UPLOAD_SIZE
    count_range_requests: bool = True
    allowed_origins: List[str] = field(default_factory=lambda: ["*"])
    port: int = DEFAULT_PORT
    log_level: str = "INFO"

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()

    @property
    def database_path(self) -> Path:
        if self.db_path:
            return Path(self.db_path).expanduser()
        return self.data_path / DATABASE_FILENAME

    @property
    def songs_dir(self) -> Path:
        return self.data_path / SONGS_DIRNAME

    @property
    def covers_dir(self) -> Path:
        return self.data_path / COVERS_DIRNAME

    @classmethod
    def from_env(cls) -> 'ServerConfig':
        origins = os.getenv("ALLOWED_ORIGINS", "")
        return cls(
            data_dir=os.getenv("CADENZA_DATA_DIR", DEFAULT_DATA_DIR),
            secret_key=os.getenv("CADENZA_SECRET_KEY", "change-me"),
            db_path=os.getenv("CADENZA_DB_PATH") or None,
            token_ttl_seconds=int(os.getenv("TOKEN_TTL_SECONDS", DEFAULT_TOKEN_TTL_SECONDS)),
            max_upload_size=int(os.getenv("MAX_UPLOAD_SIZE", MAX_UPLOAD_SIZE)),
            count_range_requests=_env_bool("COUNT_RANGE_REQUESTS", True),
            allowed_origins=origins.split(",") if origins else ["*"],
            port=int(os.getenv("CADENZA_PORT", DEFAULT_PORT)),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
