import logging

from sharecdn.services.secrets_service import SecretsStore
from sharecdn.utils.security import (
    constant_time_equals,
    generate_upload_token,
    hash_password,
    verify_password,
)

logger = logging.getLogger(__name__)


class UploadTokenVerifier:
    """Checks bearer tokens for the public upload endpoint.

    The plaintext is only known for tokens generated or set during this run;
    after a restart verification goes through the persisted argon2 hash.
    """

    def __init__(self, token_hash: str, store: SecretsStore, plaintext: str | None = None):
        self._token_hash = token_hash
        self._store = store
        self._plaintext = plaintext

    @property
    def current_plaintext(self) -> str | None:
        return self._plaintext

    def verify(self, candidate: str | None) -> bool:
        if not candidate:
            return False
        if self._plaintext and constant_time_equals(candidate, self._plaintext):
            return True
        try:
            return verify_password(self._token_hash, candidate)
        except Exception:
            logger.exception("Upload token hash comparison failed")
            return False

    def rotate(self, new_plaintext: str) -> str:
        new_hash = hash_password(new_plaintext)
        self._store.store_upload_token_hash(new_hash)
        self._token_hash = new_hash
        self._plaintext = new_plaintext
        return new_hash

    def issue(self) -> str:
        """Plaintext token for a ShareX profile, rotating to a fresh one if none is known this run."""
        if self._plaintext:
            return self._plaintext
        token = generate_upload_token()
        self.rotate(token)
        logger.warning("Generated a new upload token for a ShareX profile; the previous token is no longer valid")
        return token
