"""Application configuration loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from beanstalker.utils.env import default_env_path, load_env_file

load_env_file(default_env_path(), override=False)


@dataclass(frozen=True)
class Settings:
  """Typed settings for the Bean Stalker ordering service."""

  environment: str
  debug: bool
  allowed_origins: tuple[str, ...]
  log_max_bytes: int
  log_backup_count: int
  log_http_4xx: bool
  log_http_bodies: bool
  log_http_body_bytes: int
  pg_dsn: str | None
  pg_connect_timeout: int
  firebase_project_id: str | None
  firebase_service_account_json_path: str | None
  push_notifications_enabled: bool
  push_vapid_public_key: str | None
  push_vapid_private_key: str | None
  push_vapid_sub: str | None
  push_ttl_seconds: int
  push_timeout_seconds: float
  in_app_poll_interval_seconds: float
  subscribe_timeout_seconds: float


@dataclass(frozen=True)
class DatabaseSettings:
  """Typed settings for database connectivity."""

  debug: bool
  pg_dsn: str | None
  pg_connect_timeout: int


def _parse_origins(raw: str | None) -> tuple[str, ...]:
  if not raw:
    raise ValueError("BEANSTALKER_ALLOWED_ORIGINS must be set to one or more origins.")

  origins = [origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()]

  if not origins:
    raise ValueError("BEANSTALKER_ALLOWED_ORIGINS must include at least one origin.")

  if "*" in origins:
    raise ValueError("BEANSTALKER_ALLOWED_ORIGINS must not include wildcard origins.")

  return tuple(origins)


def _parse_bool(raw: str | None) -> bool:
  """Parse a boolean-ish string from environment variables."""

  if raw is None:
    return False

  normalized = raw.strip().lower()
  return normalized in {"1", "true", "yes", "on"}


def _optional_str(raw: str | None) -> str | None:
  if raw is None:
    return None

  stripped = raw.strip()
  return stripped or None


def _positive_int(name: str, default: str) -> int:
  value = int(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive integer.")

  return value


def _positive_float(name: str, default: str) -> float:
  value = float(os.getenv(name, default))
  if value <= 0:
    raise ValueError(f"{name} must be a positive number.")

  return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
  """Load settings once per process."""

  environment = os.getenv("BEANSTALKER_ENV", "development").lower()
  debug = _parse_bool(os.getenv("BEANSTALKER_DEBUG"))

  log_max_bytes = _positive_int("BEANSTALKER_LOG_MAX_BYTES", "5242880")
  log_backup_count = int(os.getenv("BEANSTALKER_LOG_BACKUP_COUNT", "10"))
  if log_backup_count < 0:
    raise ValueError("BEANSTALKER_LOG_BACKUP_COUNT must be zero or a positive integer.")

  log_http_body_bytes = _positive_int("BEANSTALKER_LOG_HTTP_BODY_BYTES", "2048")

  push_notifications_enabled = _parse_bool(os.getenv("BEANSTALKER_PUSH_NOTIFICATIONS_ENABLED"))
  push_vapid_public_key = _optional_str(os.getenv("BEANSTALKER_PUSH_VAPID_PUBLIC_KEY"))
  push_vapid_private_key = _optional_str(os.getenv("BEANSTALKER_PUSH_VAPID_PRIVATE_KEY"))
  push_vapid_sub = _optional_str(os.getenv("BEANSTALKER_PUSH_VAPID_SUB"))

  # Validate push configuration only when push notifications are enabled.
  if push_notifications_enabled:
    if not push_vapid_public_key:
      raise ValueError("BEANSTALKER_PUSH_VAPID_PUBLIC_KEY must be set when push notifications are enabled.")

    if not push_vapid_private_key:
      raise ValueError("BEANSTALKER_PUSH_VAPID_PRIVATE_KEY must be set when push notifications are enabled.")

    if not push_vapid_sub:
      raise ValueError("BEANSTALKER_PUSH_VAPID_SUB must be set when push notifications are enabled.")

    if not (push_vapid_sub.startswith("mailto:") or push_vapid_sub.startswith("https://")):
      raise ValueError("BEANSTALKER_PUSH_VAPID_SUB must start with 'mailto:' or 'https://'.")

  return Settings(
    environment=environment,
    debug=debug,
    allowed_origins=_parse_origins(os.getenv("BEANSTALKER_ALLOWED_ORIGINS")),
    log_max_bytes=log_max_bytes,
    log_backup_count=log_backup_count,
    log_http_4xx=_parse_bool(os.getenv("BEANSTALKER_LOG_HTTP_4XX")),
    log_http_bodies=_parse_bool(os.getenv("BEANSTALKER_LOG_HTTP_BODIES")),
    log_http_body_bytes=log_http_body_bytes,
    pg_dsn=os.getenv("BEANSTALKER_PG_DSN") or os.getenv("DATABASE_URL"),
    pg_connect_timeout=_positive_int("BEANSTALKER_PG_CONNECT_TIMEOUT", "5"),
    firebase_project_id=_optional_str(os.getenv("FIREBASE_PROJECT_ID")),
    firebase_service_account_json_path=_optional_str(os.getenv("FIREBASE_SERVICE_ACCOUNT_JSON_PATH")),
    push_notifications_enabled=push_notifications_enabled,
    push_vapid_public_key=push_vapid_public_key,
    push_vapid_private_key=push_vapid_private_key,
    push_vapid_sub=push_vapid_sub,
    push_ttl_seconds=_positive_int("BEANSTALKER_PUSH_TTL_SECONDS", "3600"),
    push_timeout_seconds=_positive_float("BEANSTALKER_PUSH_TIMEOUT_SECONDS", "10"),
    in_app_poll_interval_seconds=_positive_float("BEANSTALKER_IN_APP_POLL_INTERVAL_SECONDS", "5"),
    subscribe_timeout_seconds=_positive_float("BEANSTALKER_SUBSCRIBE_TIMEOUT_SECONDS", "5"),
  )


@lru_cache(maxsize=1)
def get_database_settings() -> DatabaseSettings:
  """Load database settings without requiring web-runtime configuration like CORS."""
  # Migrations and scripts must not depend on unrelated env vars.
  debug = _parse_bool(os.getenv("BEANSTALKER_DEBUG"))
  pg_connect_timeout = _positive_int("BEANSTALKER_PG_CONNECT_TIMEOUT", "5")
  pg_dsn = os.getenv("BEANSTALKER_PG_DSN") or os.getenv("DATABASE_URL")
  return DatabaseSettings(debug=debug, pg_dsn=pg_dsn, pg_connect_timeout=pg_connect_timeout)
