from __future__ import annotations

import os
from dataclasses import dataclass


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    # Core
    db_path: str = os.getenv("FSR_DB_PATH", "fsr.db")
    log_level: str = os.getenv("FSR_LOG_LEVEL", "INFO")

    # Retry policy defaults
    max_retries: int = _env_int("FSR_MAX_RETRIES", 2)
    backoff_base_s: float = _env_float("FSR_BACKOFF_BASE_S", 0.5)
    backoff_multiplier: float = _env_float("FSR_BACKOFF_MULTIPLIER", 2.0)
    backoff_max_s: float = _env_float("FSR_BACKOFF_MAX_S", 10.0)
    retry_reads: bool = _env_bool("FSR_RETRY_READS", True)
    call_timeout_s: float = _env_float("FSR_CALL_TIMEOUT_S", 0)  # 0 disables

    # HTTP targets
    remote_url: str | None = os.getenv("FSR_REMOTE_URL")
    remote_timeout_s: float = _env_float("FSR_REMOTE_TIMEOUT_S", 10.0)

    # Contract targets
    rpc_url: str | None = os.getenv("FSR_RPC_URL")
    deployments_dir: str = os.getenv("FSR_DEPLOYMENTS_DIR", "deployments")
    sender: str | None = os.getenv("FSR_SENDER")
    receipt_timeout_s: int = _env_int("FSR_RECEIPT_TIMEOUT_S", 120)

    # Email alerting (optional)
    enable_email: bool = _env_bool("FSR_ENABLE_EMAIL", False)
    smtp_host: str = os.getenv("FSR_SMTP_HOST", "smtp.gmail.com")
    smtp_port: int = _env_int("FSR_SMTP_PORT", 587)
    smtp_user: str | None = os.getenv("FSR_SMTP_USER")
    smtp_password: str | None = os.getenv("FSR_SMTP_PASSWORD")
    email_from: str | None = os.getenv("FSR_EMAIL_FROM")
    email_to: str | None = os.getenv("FSR_EMAIL_TO")


settings = Settings()
