"""Process-scoped state shared by request handlers.

One :class:`AppContext` is built per application in the lifespan handler and
stored on ``app.state.context``. It owns every piece of mutable in-memory
state: the current-run upload token plaintext (inside the verifier) and the
rate-limit buckets. Tests get isolation by building a fresh app.
"""

import logging
from dataclasses import dataclass

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from sharecdn.config import Settings
from sharecdn.database import get_engine, init_db, make_session_factory
from sharecdn.services.rate_limiter import TokenBucketLimiter
from sharecdn.services.secrets_service import (
    PersistedConfig,
    ProvisioningError,
    SecretsStore,
)
from sharecdn.services.session_service import SessionCodec
from sharecdn.services.token_service import UploadTokenVerifier
from sharecdn.services.user_service import ensure_admin_user
from sharecdn.utils.filesystem import ensure_storage_dirs

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    settings: Settings
    engine: Engine
    session_factory: sessionmaker
    secrets: SecretsStore
    sessions: SessionCodec
    upload_tokens: UploadTokenVerifier
    rate_limiter: TokenBucketLimiter
    initial_admin_password: str | None = None

    def close(self) -> None:
        self.engine.dispose()


def build_context(settings: Settings) -> AppContext:
    """Provision secrets, storage and the default admin. Raises ProvisioningError on failure."""
    store = SecretsStore(settings.env_path, PersistedConfig.defaults_from(settings))
    result = store.ensure_secrets()
    config = result.config
    if not config.has_secrets:
        raise ProvisioningError(f"UPLOAD_TOKEN_HASH or SESSION_SECRET missing in {settings.env_path}")

    try:
        ensure_storage_dirs(settings)
        init_db(settings.db_path)
    except OSError as exc:
        raise ProvisioningError(f"Cannot prepare storage directories: {exc}") from exc

    engine = get_engine(settings.db_path)
    session_factory = make_session_factory(engine)
    db = session_factory()
    try:
        admin_password = ensure_admin_user(db, settings.admin_username)
    finally:
        db.close()

    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        secrets=store,
        sessions=SessionCodec(config.session_secret),
        upload_tokens=UploadTokenVerifier(config.upload_token_hash, store, plaintext=result.plaintext_token),
        rate_limiter=TokenBucketLimiter(settings.rate_limit_tokens, settings.rate_limit_refill),
        initial_admin_password=admin_password,
    )
