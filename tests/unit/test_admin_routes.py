from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from fastapi.testclient import TestClient

from beanstalker.api.deps import get_orders_repo, get_push_subscription_repo
from beanstalker.core.security import get_current_active_user, get_current_admin_user
from beanstalker.main import app
from beanstalker.notifications.contracts import DeliveryOutcome, DeliveryStatus, Vendor
from beanstalker.notifications.factory import get_notification_service
from beanstalker.notifications.push_sender import NullPushSender
from beanstalker.notifications.push_subscription_repo import PushSubscriptionEntry
from beanstalker.notifications.service import NotificationService, TestDispatch
from beanstalker.storage.orders_repo import OrderRecord, StatusChange
from beanstalker.storage.users_repo import UserRecord

_CREATED = datetime(2024, 5, 1, 8, 0, tzinfo=UTC)


def _admin() -> UserRecord:
  return UserRecord(id=1, firebase_uid="admin-uid", username="barista", email=None, full_name=None, is_admin=True, is_active=True)


def _order(status: str) -> OrderRecord:
  return OrderRecord(id=42, user_id=7, status=status, total=Decimal("4.50"), items=[{"name": "Flat white"}], created_at=_CREATED, updated_at=_CREATED)


def _client(*, orders=None, repo=None, service=None) -> TestClient:
  app.dependency_overrides[get_current_admin_user] = _admin
  if orders is not None:
    app.dependency_overrides[get_orders_repo] = lambda: orders
  if repo is not None:
    app.dependency_overrides[get_push_subscription_repo] = lambda: repo
  if service is not None:
    app.dependency_overrides[get_notification_service] = lambda: service
  return TestClient(app)


def test_status_change_schedules_owner_notification():
  orders = AsyncMock()
  orders.update_status.return_value = StatusChange(order=_order("completed"), previous_status="processing")
  service = MagicMock()

  response = _client(orders=orders, service=service).patch("/api/admin/orders/42", json={"status": "Completed"})

  assert response.status_code == 200
  assert response.json()["status"] == "completed"
  assert response.json()["userId"] == 7
  orders.update_status.assert_awaited_once_with(42, "completed")
  service.dispatch_order_status_notification.assert_called_once_with(user_id=7, order_id=42, status="completed")


def test_unchanged_status_does_not_notify():
  orders = AsyncMock()
  orders.update_status.return_value = StatusChange(order=_order("processing"), previous_status="processing")
  service = MagicMock()

  response = _client(orders=orders, service=service).patch("/api/admin/orders/42", json={"status": "processing"})

  assert response.status_code == 200
  service.dispatch_order_status_notification.assert_not_called()


def test_invalid_status_is_rejected():
  orders = AsyncMock()
  response = _client(orders=orders, service=MagicMock()).patch("/api/admin/orders/42", json={"status": "teleported"})

  assert response.status_code == 400
  orders.update_status.assert_not_awaited()


def test_missing_order_is_404():
  orders = AsyncMock()
  orders.update_status.return_value = None

  response = _client(orders=orders, service=MagicMock()).patch("/api/admin/orders/999", json={"status": "completed"})

  assert response.status_code == 404


def test_non_admin_is_forbidden():
  app.dependency_overrides[get_current_active_user] = lambda: UserRecord(id=7, firebase_uid="uid", username="jess", email=None, full_name=None, is_admin=False, is_active=True)

  response = TestClient(app).patch("/api/admin/orders/42", json={"status": "completed"})

  assert response.status_code == 403
  assert response.json()["detail"] == "Not enough permissions"


def test_admin_test_notification_without_subscriptions_gives_a_hint():
  repo = AsyncMock()
  repo.list_for_user.return_value = []

  response = _client(repo=repo, service=MagicMock()).post("/api/admin/test-notification")

  assert response.status_code == 404
  assert "hint" in response.json()["detail"]


def test_admin_test_notification_reports_per_subscription_results():
  endpoint = "https://wns2-par02p.notify.windows.com/w/?token=" + "a" * 80
  repo = AsyncMock()
  repo.list_for_user.return_value = [PushSubscriptionEntry(user_id=1, endpoint=endpoint, p256dh="p" * 87, auth="a" * 22)]
  outcomes = [DeliveryOutcome(endpoint=endpoint, vendor=Vendor.WINDOWS, status=DeliveryStatus.SUBSCRIPTION_INVALID, status_code=401, reason="channel-expired", subscription_deleted=True)]
  service = MagicMock()
  service.send_test_notification = AsyncMock(return_value=TestDispatch(test_id="t1234567", timestamp=_CREATED, outcomes=outcomes))

  response = _client(repo=repo, service=service).post("/api/admin/test-notification")

  assert response.status_code == 200
  body = response.json()
  assert body["success"] is False
  assert body["succeeded"] == 0
  assert body["failed"] == 1
  assert body["results"][0]["vendor"] == "windows"
  assert body["results"][0]["subscriptionDeleted"] is True
  assert body["results"][0]["endpoint"].endswith("...")
  service.send_test_notification.assert_awaited_once_with(user_id=1, url="/admin", subscriptions=repo.list_for_user.return_value)


def test_push_subscription_debug_never_exposes_keys():
  repo = AsyncMock()
  repo.list_for_user.return_value = [PushSubscriptionEntry(user_id=1, endpoint="https://fcm.googleapis.com/fcm/send/abc", p256dh="secret-p256dh", auth="secret-auth", user_agent="ua")]

  response = _client(repo=repo).get("/api/admin/push-subscription-debug")

  assert response.status_code == 200
  body = response.json()
  assert body["subscriptionCount"] == 1
  assert body["subscriptions"][0]["vendor"] == "firebase"
  assert "secret-p256dh" not in response.text
  assert "secret-auth" not in response.text


def test_admin_test_notification_with_push_disabled_is_not_a_success():
  repo = AsyncMock()
  repo.list_for_user.return_value = [PushSubscriptionEntry(user_id=1, endpoint="https://fcm.googleapis.com/fcm/send/admin", p256dh="p256dh", auth="auth")]
  service = NotificationService(push_sender=NullPushSender(), push_subscription_repo=repo, users_repo=AsyncMock(), push_enabled=False)

  response = _client(repo=repo, service=service).post("/api/admin/test-notification")

  assert response.status_code == 200
  body = response.json()
  assert body["success"] is False
  assert body["succeeded"] == 0
  assert body["results"][0]["status"] == "disabled"
