"""Helpers that keep push key material and credentials out of logs."""

from __future__ import annotations

from typing import Any

_SENSITIVE_KEYS = {"p256dh", "auth", "keys", "password", "token", "authorization", "cookie", "secret", "email", "full_name", "fullname"}
_ENDPOINT_LOG_CHARS = 50


def truncate_endpoint(endpoint: str) -> str:
  """Shorten a push endpoint for log lines."""
  if len(endpoint) <= _ENDPOINT_LOG_CHARS:
    return endpoint
  return f"{endpoint[:_ENDPOINT_LOG_CHARS]}..."


def redact_sensitive_keys(data: Any) -> Any:
  """Redact sensitive keys recursively and shorten push endpoints."""
  if isinstance(data, dict):
    redacted: dict[str, Any] = {}
    for key, value in data.items():
      lowered = str(key).lower()
      if lowered in _SENSITIVE_KEYS:
        redacted[key] = "***"
      elif lowered == "endpoint" and isinstance(value, str):
        redacted[key] = truncate_endpoint(value)
      else:
        redacted[key] = redact_sensitive_keys(value)
    return redacted
  if isinstance(data, list):
    return [redact_sensitive_keys(item) for item in data]
  return data
