# lfa_studio/app_config.py

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s\n%(message)s\n"
LOGGER_NAME = "lfa_studio"

DEFAULT_LLM_MODEL = "gemini-2.5-flash-lite"

logger = logging.getLogger(LOGGER_NAME)


@dataclass(frozen=True)
class Settings:
    database_url: str = ""
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = ""
    db_user: str = ""
    db_password: str | None = None
    db_secret_id: str | None = None

    google_project: str = "your-project-id"
    google_region: str = "us-central1"

    llm_model: str = DEFAULT_LLM_MODEL
    llm_timeout: float = 60.0
    llm_retries: int = 3

    log_level: str = "INFO"
    cors_origins: list[str] = field(default_factory=lambda: ["*"])

    @property
    def is_local_db(self) -> bool:
        return not self.database_url and self.db_host == "localhost"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def load_settings() -> Settings:
    """
    Read the process environment (and .env, loaded at import) into a Settings snapshot.
    DATABASE_URL wins over the DB_* variables when both are present.
    """
    origins = os.getenv("CORS_ORIGINS", "*")
    return Settings(
        database_url=os.getenv("DATABASE_URL", ""),
        db_host=os.getenv("DB_HOST", "localhost"),
        db_port=_int_env("DB_PORT", 5432),
        db_name=os.getenv("DB_NAME", ""),
        db_user=os.getenv("DB_USER", ""),
        db_password=os.getenv("DB_PASSWORD") or None,
        db_secret_id=os.getenv("DB_SECRET_ID") or None,
        google_project=os.getenv("GOOGLE_CLOUD_PROJECT", "your-project-id"),
        google_region=os.getenv("GOOGLE_CLOUD_REGION", "us-central1"),
        llm_model=os.getenv("LLM_MODEL", DEFAULT_LLM_MODEL),
        llm_timeout=_float_env("LLM_TIMEOUT", 60.0),
        llm_retries=_int_env("LLM_RETRIES", 3),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        cors_origins=[o.strip() for o in origins.split(",") if o.strip()],
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format=LOG_FORMAT,
    )
