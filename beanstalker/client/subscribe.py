"""Browser-side push subscription flow with its user-facing outcomes."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

import httpx

logger = logging.getLogger(__name__)


class SubscribeResult(str, Enum):
  SUBSCRIBED = "subscribed"
  PERMISSION_DENIED = "permission-denied"
  NOT_SUPPORTED = "not-supported"
  TIMED_OUT = "timed-out"
  FAILED = "failed"


USER_MESSAGES: dict[SubscribeResult, str] = {
  SubscribeResult.SUBSCRIBED: "Notifications enabled. You'll hear from us when your order changes.",
  SubscribeResult.PERMISSION_DENIED: "Notifications are blocked. Allow them in your browser's site settings, then try again.",
  SubscribeResult.NOT_SUPPORTED: "This browser can't receive push notifications. Turn on in-app notifications instead.",
  SubscribeResult.TIMED_OUT: "Enabling notifications took too long. Please try again.",
  SubscribeResult.FAILED: "Notifications could not be enabled. Please try again later.",
}


@dataclass(frozen=True)
class SubscribeOutcome:
  result: SubscribeResult
  endpoint: str | None = None

  @property
  def message(self) -> str:
    return USER_MESSAGES[self.result]


class PushManager(Protocol):
  """The browser capabilities the flow needs (``Notification`` and ``PushManager``)."""

  def is_supported(self) -> bool: ...

  async def request_permission(self) -> str: ...

  async def subscribe(self, application_server_key: str) -> dict[str, Any]: ...


class PushSubscriptionFlow:
  """Ask permission, subscribe with the server's VAPID key, then register the subscription.

  Everything after the permission prompt runs under a single timeout; the UI gives
  up even if the vendor call would still complete later.
  """

  def __init__(self, *, push_manager: PushManager, http: httpx.AsyncClient, timeout_seconds: float = 5.0) -> None:
    self._push_manager = push_manager
    self._http = http
    self._timeout_seconds = timeout_seconds

  async def subscribe(self) -> SubscribeOutcome:
    if not self._push_manager.is_supported():
      return SubscribeOutcome(SubscribeResult.NOT_SUPPORTED)

    permission = await self._push_manager.request_permission()
    if permission != "granted":
      logger.info("Notification permission not granted: %s", permission)
      return SubscribeOutcome(SubscribeResult.PERMISSION_DENIED)

    try:
      endpoint = await asyncio.wait_for(self._register(), timeout=self._timeout_seconds)
    except TimeoutError:
      logger.warning("Push subscription timed out after %ss", self._timeout_seconds)
      return SubscribeOutcome(SubscribeResult.TIMED_OUT)
    except httpx.HTTPError as exc:
      logger.error("Push subscription registration failed: %s", exc)
      return SubscribeOutcome(SubscribeResult.FAILED)

    return SubscribeOutcome(SubscribeResult.SUBSCRIBED, endpoint=endpoint)

  async def unsubscribe(self, endpoint: str) -> None:
    response = await self._http.request("DELETE", "/api/push/unsubscribe", json={"endpoint": endpoint})
    response.raise_for_status()

  async def _register(self) -> str:
    key_response = await self._http.get("/api/push/vapid-key")
    key_response.raise_for_status()
    subscription = await self._push_manager.subscribe(key_response.json()["publicKey"])

    response = await self._http.post("/api/push/subscribe", json=subscription)
    response.raise_for_status()
    return str(subscription.get("endpoint", ""))
