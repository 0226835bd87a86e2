import hmac
import secrets
from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

ph = PasswordHasher(time_cost=3, memory_cost=65536, parallelism=4)


def hash_password(password: str) -> str:
    return ph.hash(password)


def verify_password(stored_hash: str, password: str) -> bool:
    """Check *password* against an argon2 hash. Malformed hashes count as a mismatch."""
    if not stored_hash or not password:
        return False
    try:
        return ph.verify(stored_hash, password)
    except (VerificationError, InvalidHashError):
        return False


def random_hex(nbytes: int = 32) -> str:
    return secrets.token_hex(nbytes)


def generate_upload_token() -> str:
    return random_hex(24)


def generate_session_secret() -> str:
    return random_hex(32)


def generate_admin_password() -> str:
    return random_hex(8)


def constant_time_equals(a: str, b: str) -> bool:
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
