from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # ── Tokens (shared by HTTP routes and the /ws handshake) ────────────
    jwt_secret: str = "change-me"
    jwt_algorithm: str = "HS256"
    jwt_expires_days: int = 7

    # ── Data ────────────────────────────────────────────────────────────
    # JSON file with "users" and "classes" lists loaded into the in-memory
    # repository at startup.  Empty = start with no data.
    seed_file: str = ""

    # ── General ─────────────────────────────────────────────────────────
    log_level: str = "INFO"
    cors_origins: list[str] = ["*"]


@lru_cache
def get_settings() -> Settings:
    return Settings()
