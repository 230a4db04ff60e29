from pydantic_settings import BaseSettings, SettingsConfigDict
from pathlib import Path


class Settings(BaseSettings):
    APP_NAME: str = "Budget Engine"
    ENV: str = "dev"

    # apps/backend/db.sqlite3 as an absolute path so the CWD does not matter
    _default_db_path = Path(__file__).resolve().parents[2] / "db.sqlite3"
    DATABASE_URL: str = f"sqlite:///{_default_db_path}"

    CORS_ORIGINS: list[str] = ["*"]
    LOG_LEVEL: str = "INFO"

    # Upper bound of documents committed together in one batch write
    REASSIGN_BATCH_SIZE: int = 500
    CATCH_ALL_BUDGET_NAME: str = "Everything Else"
    DEFAULT_CURRENCY: str = "USD"

    model_config = SettingsConfigDict(env_file=(".env",), env_prefix="BUDGET_ENGINE_", case_sensitive=False)


settings = Settings()
