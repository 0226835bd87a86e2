import time
from typing import Callable

from sharecdn.utils.hashing import hmac_sha256_hex
from sharecdn.utils.security import constant_time_equals

SESSION_COOKIE_NAME = "session"
SESSION_MAX_AGE_SECONDS = 30 * 24 * 60 * 60
SESSION_MAX_AGE_MS = SESSION_MAX_AGE_SECONDS * 1000


class SessionCodec:
    """Signed session identifiers of the form ``<username>.<issued_ms>.<hex hmac>``.

    The signature is HMAC-SHA256 over ``<username>.<issued_ms>`` keyed with the
    session secret. Usernames may contain dots, so tokens are parsed from the
    right.
    """

    def __init__(self, secret: str, clock: Callable[[], float] = time.time):
        if not secret:
            raise ValueError("session secret must not be empty")
        self._secret = secret
        self._clock = clock

    def _now_ms(self) -> int:
        return round(self._clock() * 1000)

    def _sign(self, username: str, issued_ms: str) -> str:
        return hmac_sha256_hex(self._secret, f"{username}.{issued_ms}")

    def mint(self, username: str) -> str:
        issued_ms = str(self._now_ms())
        return f"{username}.{issued_ms}.{self._sign(username, issued_ms)}"

    def verify(self, token: str | None) -> str | None:
        """Return the username carried by *token*, or None if it is not valid."""
        if not token:
            return None
        try:
            parts = token.rsplit(".", 2)
            if len(parts) < 3:
                return None
            username, issued_ms, signature = parts
            if not username:
                return None
            if not constant_time_equals(self._sign(username, issued_ms), signature):
                return None
            issued = int(issued_ms)
            if self._now_ms() - issued > SESSION_MAX_AGE_MS:
                return None
            return username
        except (ValueError, TypeError, UnicodeError):
            return None
