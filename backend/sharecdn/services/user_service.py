import logging
import re
import time

from sqlalchemy import func
from sqlalchemy.orm import Session

from sharecdn.models.setting import AppSetting
from sharecdn.models.user import User
from sharecdn.utils.security import generate_admin_password, hash_password

logger = logging.getLogger(__name__)

USERNAME_RE = re.compile(r"^[a-zA-Z0-9._-]{3,32}$")
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
HEX_COLOR_RE = re.compile(r"^#([0-9a-fA-F]{3}|[0-9a-fA-F]{6})$")
MIN_PASSWORD_LENGTH = 6

DEFAULT_ADMIN_EMAIL = "admin@example.com"
DEFAULT_BACKGROUND = {"type": "color", "value": "#05080f"}
TEMPLATE_BACKGROUNDS = [
    "https://images.unsplash.com/photo-1526481280695-3c469be254d2?auto=format&fit=crop&w=1600&q=80",
    "https://images.unsplash.com/photo-1500530855697-b586d89ba3ee?auto=format&fit=crop&w=1600&q=80",
    "https://images.unsplash.com/photo-1502082553048-f009c37129b9?auto=format&fit=crop&w=1600&q=80",
    "https://images.unsplash.com/photo-1451188214936-ec16af5ca155?auto=format&fit=crop&w=1600&q=80",
]

REGISTER_BLOCKED_KEY = "register_blocked"


def now_ms() -> int:
    return int(time.time() * 1000)


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.created_at.desc()).all()


def find_user(db: Session, username: str) -> User | None:
    if not username:
        return None
    return db.query(User).filter(User.username == username).first()


def find_user_by_email(db: Session, email: str) -> User | None:
    if not email or not email.strip():
        return None
    return db.query(User).filter(func.lower(User.email) == email.strip().lower()).first()


def create_user(db: Session, username: str, email: str, password: str, role: str = "user") -> User:
    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        role=role,
        created_at=now_ms(),
        background_type=DEFAULT_BACKGROUND["type"],
        background_value=DEFAULT_BACKGROUND["value"],
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def update_user(db: Session, username: str, **fields) -> User | None:
    user = find_user(db, username)
    if not user:
        return None
    for key, value in fields.items():
        setattr(user, key, value)
    db.commit()
    db.refresh(user)
    return user


def delete_user(db: Session, username: str) -> bool:
    user = find_user(db, username)
    if not user:
        return False
    db.delete(user)
    db.commit()
    return True


def account_validation_error(username: str, email: str, password: str) -> str | None:
    """Reason a new account would be rejected, or None if the fields are acceptable."""
    if not USERNAME_RE.match(username):
        return "Username must be 3-32 chars (letters / numbers / . _ -)"
    if not EMAIL_RE.match(email):
        return "Invalid email format"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return None


def ensure_admin_user(db: Session, username: str = "admin") -> str | None:
    """Create the default admin when no users exist.

    Returns the generated password so it can be shown once, or None if users
    already exist.
    """
    if db.query(func.count(User.username)).scalar():
        return None
    password = generate_admin_password()
    create_user(db, username, DEFAULT_ADMIN_EMAIL, password, role="admin")
    logger.info("Created default admin user '%s'", username)
    return password


def normalize_background(pref: dict | None) -> dict:
    if not isinstance(pref, dict):
        return dict(DEFAULT_BACKGROUND)
    kind = pref.get("type")
    value = pref.get("value")
    value = value.strip() if isinstance(value, str) else ""
    if kind == "color" and HEX_COLOR_RE.match(value):
        return {"type": "color", "value": value.lower()}
    if kind == "template" and value in TEMPLATE_BACKGROUNDS:
        return {"type": "template", "value": value}
    if kind == "image" and value.startswith("/backgrounds/") and ".." not in value:
        return {"type": "image", "value": value}
    return dict(DEFAULT_BACKGROUND)


def background_of(user: User) -> dict:
    return normalize_background({"type": user.background_type, "value": user.background_value})


def set_background(db: Session, username: str, pref: dict | None) -> dict | None:
    sanitized = normalize_background(pref)
    user = update_user(
        db, username, background_type=sanitized["type"], background_value=sanitized["value"]
    )
    return sanitized if user else None


def is_register_blocked(db: Session) -> bool:
    row = db.query(AppSetting).filter_by(key=REGISTER_BLOCKED_KEY).first()
    return bool(row) and row.value == "true"


def set_register_blocked(db: Session, blocked: bool) -> bool:
    db.merge(AppSetting(key=REGISTER_BLOCKED_KEY, value="true" if blocked else "false"))
    db.commit()
    return blocked
