from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # --- Core ---
    DATABASE_URL: str = "sqlite+pysqlite:///./local.db"
    BUILD_ID: str | None = None
    LOG_LEVEL: str = "INFO"

    # Admin surface (package lifecycle, reserve funding)
    ADMIN_API_KEY: str | None = None

    # Account that holds pooled principal and pays rewards
    RESERVE_ADDRESS: str = "0x000000000000000000000000000000000000dEaD"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
