from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from beanstalker.client.subscribe import PushSubscriptionFlow, SubscribeResult

_SUBSCRIPTION = {"endpoint": "https://fcm.googleapis.com/fcm/send/abc", "expirationTime": None, "keys": {"p256dh": "BEl6f5Y8X5Y_u7d8mV_AbpZfXfTLT3s1O3L4wM1x8QY2_5qWQ-jxJq7uKjv8mQ4I", "auth": "gq8Yh5xA9l2mQ6pR"}}


class _PushManager:
  def __init__(self, *, supported: bool = True, permission: str = "granted", delay: float = 0.0) -> None:
    self.supported = supported
    self.permission = permission
    self.delay = delay
    self.keys: list[str] = []

  def is_supported(self) -> bool:
    return self.supported

  async def request_permission(self) -> str:
    return self.permission

  async def subscribe(self, application_server_key: str) -> dict:
    self.keys.append(application_server_key)
    if self.delay:
      await asyncio.sleep(self.delay)
    return dict(_SUBSCRIPTION)


def _http(requests: list[httpx.Request], *, subscribe_status: int = 204) -> httpx.AsyncClient:
  def _handler(request: httpx.Request) -> httpx.Response:
    requests.append(request)
    if request.url.path == "/api/push/vapid-key":
      return httpx.Response(200, json={"publicKey": "BServerKey"})
    if request.url.path == "/api/push/subscribe":
      return httpx.Response(subscribe_status)
    return httpx.Response(204)

  return httpx.AsyncClient(transport=httpx.MockTransport(_handler), base_url="http://test")


@pytest.mark.anyio
async def test_subscribe_registers_with_server_key():
  requests: list[httpx.Request] = []
  push_manager = _PushManager()

  async with _http(requests) as http:
    outcome = await PushSubscriptionFlow(push_manager=push_manager, http=http).subscribe()

  assert outcome.result is SubscribeResult.SUBSCRIBED
  assert outcome.endpoint == _SUBSCRIPTION["endpoint"]
  assert push_manager.keys == ["BServerKey"]
  assert json.loads(requests[-1].content)["keys"]["auth"] == "gq8Yh5xA9l2mQ6pR"


@pytest.mark.anyio
async def test_subscribe_times_out():
  requests: list[httpx.Request] = []

  async with _http(requests) as http:
    outcome = await PushSubscriptionFlow(push_manager=_PushManager(delay=1.0), http=http, timeout_seconds=0.05).subscribe()

  assert outcome.result is SubscribeResult.TIMED_OUT
  assert "try again" in outcome.message
  assert all(request.url.path != "/api/push/subscribe" for request in requests)


@pytest.mark.anyio
async def test_denied_permission_never_contacts_the_server():
  requests: list[httpx.Request] = []

  async with _http(requests) as http:
    outcome = await PushSubscriptionFlow(push_manager=_PushManager(permission="denied"), http=http).subscribe()

  assert outcome.result is SubscribeResult.PERMISSION_DENIED
  assert requests == []


@pytest.mark.anyio
async def test_unsupported_browser_suggests_in_app_notifications():
  async with _http([]) as http:
    outcome = await PushSubscriptionFlow(push_manager=_PushManager(supported=False), http=http).subscribe()

  assert outcome.result is SubscribeResult.NOT_SUPPORTED
  assert "in-app" in outcome.message


@pytest.mark.anyio
async def test_server_rejection_is_a_failure():
  async with _http([], subscribe_status=422) as http:
    outcome = await PushSubscriptionFlow(push_manager=_PushManager(), http=http).subscribe()

  assert outcome.result is SubscribeResult.FAILED


@pytest.mark.anyio
async def test_unsubscribe_sends_endpoint():
  requests: list[httpx.Request] = []

  async with _http(requests) as http:
    await PushSubscriptionFlow(push_manager=_PushManager(), http=http).unsubscribe(_SUBSCRIPTION["endpoint"])

  assert requests[0].method == "DELETE"
  assert json.loads(requests[0].content) == {"endpoint": _SUBSCRIPTION["endpoint"]}
