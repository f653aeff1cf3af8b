from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


SUPPORTED_TOKEN_STORES = {"memory", "sql"}
SUPPORTED_PROVIDERS = {"fcm", "mock"}


def _get_first_set(*env_names: str) -> str:
    for env_name in env_names:
        value = os.getenv(env_name, "").strip()
        if value:
            return value
    return ""


def _normalize_database_url(raw_url: str) -> str:
    if not raw_url:
        return raw_url
    if raw_url.startswith("postgres://"):
        return raw_url.replace("postgres://", "postgresql+psycopg2://", 1)
    if raw_url.startswith("postgresql://") and "+" not in raw_url.split("://", 1)[0]:
        return raw_url.replace("postgresql://", "postgresql+psycopg2://", 1)
    return raw_url


def _build_database_url() -> str:
    explicit = _get_first_set("DATABASE_URL", "DATABASE_PUBLIC_URL")
    if explicit:
        return _normalize_database_url(explicit)

    # Local dev fallback when DATABASE_URL is not set.
    sqlite_file = Path(os.getenv("SQLITE_DB_PATH", "./push.db")).as_posix()
    if sqlite_file.startswith("/"):
        return f"sqlite:///{sqlite_file}"
    return f"sqlite:///./{sqlite_file.lstrip('./')}"


def _choice(env_name: str, default: str, supported: set[str]) -> str:
    raw = os.getenv(env_name, default).strip().lower() or default
    if raw not in supported:
        raise ValueError(f"Invalid {env_name}: {raw}. Supported values: {sorted(supported)}")
    return raw


@dataclass(frozen=True)
class Settings:
    app_name: str = os.getenv("APP_NAME", "chat_push_engine")
    app_debug: bool = os.getenv("APP_DEBUG", "false").lower() == "true"
    app_host: str = os.getenv("APP_HOST", "0.0.0.0")
    app_port: int = int(os.getenv("APP_PORT", "8004"))

    database_url: str = _build_database_url()
    token_store: str = _choice("TOKEN_STORE", "memory", SUPPORTED_TOKEN_STORES)

    notification_provider: str = _choice("NOTIFICATION_PROVIDER", "mock", SUPPORTED_PROVIDERS)
    firebase_credentials_path: str = _get_first_set("FIREBASE_CREDENTIALS_PATH", "GOOGLE_APPLICATION_CREDENTIALS")

    circuit_threshold: int = int(os.getenv("PUSH_CIRCUIT_THRESHOLD", "5"))
    circuit_open_seconds: float = float(os.getenv("PUSH_CIRCUIT_OPEN_SECONDS", "60"))

    token_load_timeout_seconds: float = float(os.getenv("PUSH_TOKEN_LOAD_TIMEOUT_SECONDS", "5"))
    send_timeout_seconds: float = float(os.getenv("PUSH_SEND_TIMEOUT_SECONDS", "10"))
    call_send_timeout_seconds: float = float(os.getenv("PUSH_CALL_SEND_TIMEOUT_SECONDS", "12"))

    message_max_attempts: int = int(os.getenv("PUSH_MESSAGE_MAX_ATTEMPTS", "3"))
    message_base_delay_ms: int = int(os.getenv("PUSH_MESSAGE_BASE_DELAY_MS", "100"))
    call_max_attempts: int = int(os.getenv("PUSH_CALL_MAX_ATTEMPTS", "2"))
    call_base_delay_ms: int = int(os.getenv("PUSH_CALL_BASE_DELAY_MS", "50"))

    token_min_length: int = int(os.getenv("PUSH_TOKEN_MIN_LENGTH", "50"))
    token_max_length: int = int(os.getenv("PUSH_TOKEN_MAX_LENGTH", "500"))


settings = Settings()


def get_settings() -> Settings:
    return settings
