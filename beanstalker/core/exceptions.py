import logging
from typing import Any

from fastapi import HTTPException, Request, status
from fastapi.exceptions import RequestValidationError

from beanstalker.config import get_settings
from beanstalker.core.json import DecimalJSONResponse

logger = logging.getLogger("uvicorn.error")


def _coerce_json_safe(value: Any) -> Any:
  """Convert unsupported values into JSON-safe primitives for error responses."""
  if value is None or isinstance(value, bool | int | float | str):
    return value
  if isinstance(value, dict):
    return {str(key): _coerce_json_safe(item) for key, item in value.items()}
  if isinstance(value, list | tuple | set):
    return [_coerce_json_safe(item) for item in value]
  if isinstance(value, BaseException):
    message = str(value)
    return f"{type(value).__name__}: {message}" if message else type(value).__name__
  return str(value)


def _error_payload(detail: Any, *, request_id: str | None = None) -> dict[str, Any]:
  payload: dict[str, Any] = {"detail": detail}
  # Lets support correlate a client report with server logs.
  if request_id:
    payload["requestId"] = request_id
  return payload


def _sanitize_validation_errors(errors: list[dict[str, Any]] | tuple[dict[str, Any], ...]) -> list[dict[str, Any]]:
  """Return validation errors without raw input payloads (push keys must never be echoed)."""
  sanitized: list[dict[str, Any]] = []
  for error in errors:
    scrubbed = {key: value for key, value in error.items() if key != "input"}
    if "ctx" in scrubbed and isinstance(scrubbed["ctx"], dict):
      scrubbed_ctx = dict(scrubbed["ctx"])
      scrubbed_ctx.pop("input", None)
      scrubbed["ctx"] = scrubbed_ctx

    sanitized.append(_coerce_json_safe(scrubbed))

  return sanitized


def _sanitize_http_detail(detail: Any) -> Any:
  if isinstance(detail, dict):
    return {key: _sanitize_http_detail(value) for key, value in detail.items() if key not in {"input", "body", "payload", "keys"}}
  if isinstance(detail, list):
    return [_sanitize_http_detail(item) for item in detail]
  return detail


async def global_exception_handler(request: Request, exc: Exception) -> DecimalJSONResponse:
  """Catch-all handler for unhandled errors."""
  request_id = getattr(request.state, "request_id", None)
  logger.error("Global exception request_id=%s path=%s error_type=%s", request_id, request.url.path, type(exc).__name__, exc_info=True)
  return DecimalJSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=_error_payload("Internal Server Error", request_id=request_id))


async def request_validation_exception_handler(request: Request, exc: RequestValidationError) -> DecimalJSONResponse:
  request_id = getattr(request.state, "request_id", None)
  sanitized_errors = _sanitize_validation_errors(exc.errors())
  logger.warning("Request validation failed request_id=%s path=%s method=%s errors=%s", request_id, request.url.path, request.method, sanitized_errors)
  return DecimalJSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=_error_payload(sanitized_errors, request_id=request_id))


async def http_exception_handler(request: Request, exc: HTTPException) -> DecimalJSONResponse:
  """Hide 5xx details from callers and pass 4xx details through."""
  settings = get_settings()
  request_id = getattr(request.state, "request_id", None)
  if exc.status_code >= 500:
    logger.error("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, exc.detail, exc_info=True)
    return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload("Internal Server Error", request_id=request_id))

  if settings.log_http_4xx:
    logger.warning("HTTPException request_id=%s path=%s status_code=%s detail=%s", request_id, request.url.path, exc.status_code, _sanitize_http_detail(exc.detail))

  return DecimalJSONResponse(status_code=exc.status_code, content=_error_payload(exc.detail, request_id=request_id), headers=getattr(exc, "headers", None))
