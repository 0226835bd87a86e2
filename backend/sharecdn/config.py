from pathlib import Path
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    host: str = "0.0.0.0"
    port: int = 3000
    data_dir: Path = Path("data")
    upload_dir: Path = Path("uploads")
    # Holds SESSION_SECRET and UPLOAD_TOKEN_HASH; written by secrets provisioning.
    env_path: Path = Path(".env")
    max_upload_bytes: int = 10 * 1024 * 1024  # 10 MiB
    max_background_bytes: int = 5 * 1024 * 1024  # 5 MiB
    rate_limit_tokens: int = 20
    rate_limit_refill: float = 1.0
    cookie_secure: bool = False
    # Used instead of the request host when building image URLs, e.g. "https://cdn.example.com"
    public_origin: str | None = None
    admin_username: str = "admin"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "db.sqlite"

    @property
    def background_dir(self) -> Path:
        return self.upload_dir / "backgrounds"

    model_config = {"env_file": ".env", "extra": "ignore"}


def load_settings() -> Settings:
    """Settings with file values taken from ``ENV_PATH``, the file secrets provisioning writes."""
    env_path = Settings().env_path
    return Settings(_env_file=env_path)


settings = load_settings()
