import json
import logging
import time
import uuid
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from beanstalker.config import get_settings
from beanstalker.utils.redaction import redact_sensitive_keys

logger = logging.getLogger("beanstalker.core.middleware")


def _build_request_url(scope: Scope) -> str:
  path = scope.get("path", "")
  query_string = scope.get("query_string", b"")
  if query_string:
    return f"{path}?{query_string.decode('latin-1')}"
  return path


def _format_body_for_log(body: bytes, content_type: str | None, max_bytes: int) -> str:
  """Format a request/response body for logging with redaction."""
  if not body:
    return "<empty>"

  normalized = (content_type or "").lower()
  is_json = "application/json" in normalized or normalized.endswith("+json")
  if not is_json and not normalized.startswith("text/"):
    return f"<non-text body {len(body)} bytes>"

  # Truncated JSON is logged raw rather than parsed.
  if len(body) > max_bytes:
    return f"{body[:max_bytes].decode('utf-8', errors='replace')}...(truncated)"

  text = body.decode("utf-8", errors="replace")
  if not is_json:
    return text

  try:
    parsed = json.loads(text)
  except json.JSONDecodeError:
    return text
  return json.dumps(redact_sensitive_keys(parsed), ensure_ascii=True)


class RequestLoggingMiddleware:
  """Log request/response metadata and attach an ``x-request-id`` header."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    settings = get_settings()
    log_http_bodies = settings.log_http_bodies
    max_bytes = settings.log_http_body_bytes

    request_id = str(uuid.uuid4())
    scope.setdefault("state", {})["request_id"] = request_id

    start_time = time.time()
    logger.info("Incoming request request_id=%s %s %s", request_id, scope.get("method", "UNKNOWN"), _build_request_url(scope))
    headers = {key.decode("latin-1").lower(): value.decode("latin-1") for key, value in scope.get("headers", [])}
    content_type = headers.get("content-type")

    receive_wrapper = receive
    if log_http_bodies:
      # Drain and replay the body so handlers still receive it.
      chunks: list[bytes] = []
      more_body = True
      while more_body:
        message = await receive()
        if message.get("type") != "http.request":
          break
        chunks.append(message.get("body", b""))
        more_body = message.get("more_body", False)

      request_body = b"".join(chunks)
      body_sent = False

      async def receive_wrapper() -> Message:
        nonlocal body_sent
        if body_sent:
          return {"type": "http.request", "body": b"", "more_body": False}
        body_sent = True
        return {"type": "http.request", "body": request_body, "more_body": False}

      if request_body:
        logger.info("Request body request_id=%s body=%s", request_id, _format_body_for_log(request_body, content_type, max_bytes))

    status_code: int | None = None
    response_chunks: list[bytes] = []
    response_content_type: str | None = None

    async def send_wrapper(message: Message) -> None:
      nonlocal status_code, response_content_type
      if message["type"] == "http.response.start":
        status_code = message.get("status")
        response_headers = MutableHeaders(scope=message)
        if "x-request-id" not in response_headers:
          response_headers["x-request-id"] = request_id
        response_content_type = response_headers.get("content-type")
      elif log_http_bodies and message["type"] == "http.response.body":
        if sum(len(chunk) for chunk in response_chunks) <= max_bytes:
          response_chunks.append(message.get("body", b""))

      await send(message)

    await self.app(scope, receive_wrapper, send_wrapper)

    process_time = (time.time() - start_time) * 1000
    logger.info("Response request_id=%s status=%s (took %.2fms)", request_id, status_code or 0, process_time)
    if log_http_bodies and response_chunks:
      logger.info("Response body request_id=%s body=%s", request_id, _format_body_for_log(b"".join(response_chunks), response_content_type, max_bytes))


class SecurityHeadersMiddleware:
  """Strip headers that advertise the server stack."""

  def __init__(self, app: ASGIApp) -> None:
    self.app = app

  async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
    if scope["type"] != "http":
      await self.app(scope, receive, send)
      return

    async def send_wrapper(message: Message) -> None:
      if message["type"] == "http.response.start":
        headers = MutableHeaders(scope=message)
        for name in ("x-powered-by", "server"):
          if name in headers:
            del headers[name]

      await send(message)

    await self.app(scope, receive, send_wrapper)
