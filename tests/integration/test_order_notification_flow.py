"""Order status change from the admin API through vendor delivery to the device."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from beanstalker.api.deps import get_orders_repo
from beanstalker.client.page import InProcessClients, PageSession
from beanstalker.client.worker import NotificationWorker
from beanstalker.core.security import get_current_admin_user
from beanstalker.main import app
from beanstalker.notifications.contracts import DeliveryStatus, InvalidSubscriptionReason
from beanstalker.notifications.factory import get_notification_service
from beanstalker.notifications.push_sender import VapidConfig, WebPushSender
from beanstalker.notifications.push_subscription_repo import PushSubscriptionEntry
from beanstalker.notifications.service import NotificationService
from beanstalker.storage.orders_repo import OrderRecord, StatusChange
from beanstalker.storage.users_repo import UserRecord

_FIREBASE = "https://fcm.googleapis.com/fcm/send/device-1"
_WINDOWS = "https://wns2-par02p.notify.windows.com/w/?token=device-2"
_KEYS = {"p256dh": "BEl6f5Y8X5Y_u7d8mV_AbpZfXfTLT3s1O3L4wM1x8QY2_5qWQ-jxJq7uKjv8mQ4I", "auth": "gq8Yh5xA9l2mQ6pR"}


class _FakeResponse:
  def __init__(self, status_code: int, headers: dict[str, str] | None = None) -> None:
    self.status_code = status_code
    self.headers = headers or {}


class _FakeWebPushError(Exception):
  def __init__(self, status_code: int, headers: dict[str, str]) -> None:
    super().__init__(f"status={status_code}")
    self.response = _FakeResponse(status_code, headers)


class _Display:
  def __init__(self) -> None:
    self.shown: list = []

  async def show_notification(self, title, options) -> None:
    self.shown.append((title, options))


@pytest.mark.anyio
async def test_completed_order_reaches_firebase_and_prunes_expired_windows_channel(monkeypatch):
  deliveries: list[dict] = []

  def _webpush(**kwargs):
    if kwargs["subscription_info"]["endpoint"] == _WINDOWS:
      raise _FakeWebPushError(401, {"X-WNS-Error-Description": "Channel Expired"})
    deliveries.append(kwargs)
    return _FakeResponse(201)

  monkeypatch.setattr("beanstalker.notifications.push_sender.WebPushException", _FakeWebPushError)
  monkeypatch.setattr("beanstalker.notifications.push_sender.webpush", _webpush)

  subscriptions = AsyncMock()
  subscriptions.list_for_user.return_value = [PushSubscriptionEntry(user_id=7, endpoint=_FIREBASE, **_KEYS), PushSubscriptionEntry(user_id=7, endpoint=_WINDOWS, **_KEYS)]
  sender = WebPushSender(vapid_config=VapidConfig(public_key="pub", private_key="priv", sub="mailto:ops@beanstalker.example"))
  service = NotificationService(push_sender=sender, push_subscription_repo=subscriptions, users_repo=AsyncMock(), push_enabled=True)

  tasks = []
  schedule = service.dispatch_order_status_notification

  def _capture(**kwargs):
    task = schedule(**kwargs)
    tasks.append(task)
    return task

  monkeypatch.setattr(service, "dispatch_order_status_notification", _capture)

  now = datetime(2024, 5, 1, 8, 5, tzinfo=UTC)
  orders = AsyncMock()
  orders.update_status.return_value = StatusChange(order=OrderRecord(id=42, user_id=7, status="completed", total=Decimal("4.50"), items=[], created_at=now, updated_at=now), previous_status="processing")

  app.dependency_overrides[get_current_admin_user] = lambda: UserRecord(id=1, firebase_uid="admin", username="barista", email=None, full_name=None, is_admin=True, is_active=True)
  app.dependency_overrides[get_orders_repo] = lambda: orders
  app.dependency_overrides[get_notification_service] = lambda: service

  async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
    response = await client.patch("/api/admin/orders/42", json={"status": "completed"})

  assert response.status_code == 200
  assert len(tasks) == 1
  outcomes = await tasks[0]

  delivered = [outcome for outcome in outcomes if outcome.delivered]
  assert [outcome.endpoint for outcome in delivered] == [_FIREBASE]
  windows = next(outcome for outcome in outcomes if outcome.endpoint == _WINDOWS)
  assert windows.status is DeliveryStatus.SUBSCRIPTION_INVALID
  assert windows.reason == InvalidSubscriptionReason.CHANNEL_EXPIRED.value
  subscriptions.delete_by_endpoint.assert_awaited_once_with(endpoint=_WINDOWS)

  # The delivered payload is only displayed on a device where user 7 is signed in.
  assert len(deliveries) == 1
  body = deliveries[0]["data"]
  assert json.loads(body)["body"] == "Your order is now ready for pickup"

  display = _Display()
  clients = InProcessClients()
  worker = NotificationWorker(clients=clients, display=display)
  clients.pages.append(PageSession(worker=worker, current_user_id=8))
  await worker.handle_push(body)
  assert display.shown == []

  clients.pages.append(PageSession(worker=worker, current_user_id="7"))
  await worker.handle_push(body)
  assert [title for title, _ in display.shown] == ["✅ Order #42 Update"]

  _, options = display.shown[0]
  assert options.actions == ({"action": "view", "title": "View Order"},)
  assert await worker.handle_notification_click(options, action="view") == "/orders?highlight=42"
