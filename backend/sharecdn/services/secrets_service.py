"""Provisioning of the persisted secrets file.

The file is a flat ``KEY=value`` env file. On first start it is created with a
freshly generated upload token (only its argon2 hash is written) and a random
session-signing secret. On later starts any missing field is filled in and
everything else, unknown keys included, is preserved.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import Mapping

from dotenv import dotenv_values
from pydantic import BaseModel, ValidationError

from sharecdn.config import Settings
from sharecdn.utils.security import (
    generate_session_secret,
    generate_upload_token,
    hash_password,
)

logger = logging.getLogger(__name__)

ENV_HEADER = "# Auto-generated .env - do not commit to git"

# Field name -> key in the env file, in the order they are written.
FIELD_KEYS = {
    "port": "PORT",
    "upload_dir": "UPLOAD_DIR",
    "max_upload_bytes": "MAX_UPLOAD_BYTES",
    "rate_limit_tokens": "RATE_LIMIT_TOKENS",
    "rate_limit_refill": "RATE_LIMIT_REFILL",
    "session_secret": "SESSION_SECRET",
    "upload_token_hash": "UPLOAD_TOKEN_HASH",
}
KEY_FIELDS = {key: field for field, key in FIELD_KEYS.items()}


class ProvisioningError(RuntimeError):
    """The secrets file could not be read, parsed or written. Fatal at startup."""


class PersistedConfig(BaseModel):
    port: int | None = None
    upload_dir: str | None = None
    max_upload_bytes: int | None = None
    rate_limit_tokens: int | None = None
    rate_limit_refill: float | None = None
    session_secret: str | None = None
    upload_token_hash: str | None = None
    other_keys: dict[str, str] = {}

    @classmethod
    def from_env_values(cls, values: Mapping[str, str | None]) -> "PersistedConfig":
        known: dict[str, str] = {}
        other_keys: dict[str, str] = {}
        for key, value in values.items():
            field = KEY_FIELDS.get(key)
            if field is None:
                other_keys[key] = value or ""
            elif value and value.strip():
                known[field] = value.strip()
        return cls(**known, other_keys=other_keys)

    @classmethod
    def defaults_from(cls, settings: Settings) -> "PersistedConfig":
        return cls(
            port=settings.port,
            upload_dir=str(settings.upload_dir),
            max_upload_bytes=settings.max_upload_bytes,
            rate_limit_tokens=settings.rate_limit_tokens,
            rate_limit_refill=settings.rate_limit_refill,
        )

    @property
    def has_secrets(self) -> bool:
        return bool(self.session_secret) and bool(self.upload_token_hash)

    def to_env_text(self) -> str:
        lines = [ENV_HEADER]
        for field, key in FIELD_KEYS.items():
            value = getattr(self, field)
            if value is not None:
                lines.append(f"{key}={value}")
        for key, value in self.other_keys.items():
            lines.append(f"{key}={value}")
        return "\n".join(lines) + "\n"


def fill_missing(current: PersistedConfig, generated: PersistedConfig) -> PersistedConfig:
    """Return *current* with each unset field taken from *generated*.

    Fields already set on *current* are never overwritten; ``other_keys`` are
    kept from *current* only.
    """
    updates = {}
    for field in FIELD_KEYS:
        if getattr(current, field) is None and getattr(generated, field) is not None:
            updates[field] = getattr(generated, field)
    return current.model_copy(update=updates)


class ProvisionResult(BaseModel):
    created: bool
    plaintext_token: str | None = None
    config: PersistedConfig


class SecretsStore:
    def __init__(self, env_path: Path, defaults: PersistedConfig | None = None):
        self.env_path = env_path
        self.defaults = defaults or PersistedConfig()

    def exists(self) -> bool:
        return self.env_path.is_file()

    def load(self) -> PersistedConfig:
        try:
            values = dotenv_values(self.env_path, interpolate=False, encoding="utf-8")
        except OSError as exc:
            raise ProvisioningError(f"Cannot read secrets file {self.env_path}: {exc}") from exc
        try:
            return PersistedConfig.from_env_values(values)
        except ValidationError as exc:
            raise ProvisioningError(f"Invalid value in secrets file {self.env_path}: {exc}") from exc

    def save(self, config: PersistedConfig) -> None:
        """Write *config* via a temp file in the same directory and ``os.replace``."""
        directory = self.env_path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".env.", suffix=".tmp", dir=str(directory))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(config.to_env_text())
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, self.env_path)
            tmp_name = None
        except OSError as exc:
            raise ProvisioningError(f"Cannot write secrets file {self.env_path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)

    def ensure_secrets(self) -> ProvisionResult:
        if not self.exists():
            token = generate_upload_token()
            fresh = PersistedConfig(
                upload_token_hash=hash_password(token),
                session_secret=generate_session_secret(),
            )
            config = fill_missing(fresh, self.defaults)
            self.save(config)
            logger.info("Created secrets file %s", self.env_path)
            return ProvisionResult(created=True, plaintext_token=token, config=config)

        current = self.load()
        generated = self.defaults.model_copy()
        token = None
        if current.upload_token_hash is None:
            token = generate_upload_token()
            generated.upload_token_hash = hash_password(token)
        if current.session_secret is None:
            generated.session_secret = generate_session_secret()

        merged = fill_missing(current, generated)
        if merged != current:
            self.save(merged)
            missing = [FIELD_KEYS[f] for f in FIELD_KEYS if getattr(current, f) is None]
            logger.info("Filled missing keys in %s: %s", self.env_path, ", ".join(missing))
        return ProvisionResult(created=False, plaintext_token=token, config=merged)

    def store_upload_token_hash(self, new_hash: str) -> PersistedConfig:
        current = self.load() if self.exists() else PersistedConfig()
        config = fill_missing(current.model_copy(update={"upload_token_hash": new_hash}), self.defaults)
        self.save(config)
        return config
