"""Turn notification intents into the canonical payload every vendor receives."""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from beanstalker.notifications.contracts import IntentKind, NormalizedPayload, NotificationIntent
from beanstalker.utils.ids import generate_test_id, unique_timestamp_ms

# status -> (emoji, phrase used in "Your order is now ...")
_ORDER_STATUS_TEXT: dict[str, tuple[str, str]] = {
  "processing": ("☕", "being prepared"),
  "completed": ("✅", "ready for pickup"),
  "cancelled": ("❌", "cancelled"),
  "test": ("🔔", "a test"),
}

VIEW_ORDER_ACTION = {"action": "view", "title": "View Order"}

TEST_NOTIFICATION_TITLE = "Test Notification"
ADMIN_NEW_ORDER_TITLE = "New Order Received"


def status_phrase(status: str) -> str | None:
  """Return the friendly phrase for a known order status."""
  entry = _ORDER_STATUS_TEXT.get(status.strip().lower())
  return entry[1] if entry else None


def status_emoji(status: str) -> str | None:
  entry = _ORDER_STATUS_TEXT.get(status.strip().lower())
  return entry[0] if entry else None


def describe_order_status(order_id: int, status: str) -> str:
  """Body text for an order status change; unknown statuses fall back to a generic sentence."""
  phrase = status_phrase(status)
  if phrase is None:
    return f"Your order #{order_id} status has been updated to: {status}"
  return f"Your order is now {phrase}"


def order_update_title(order_id: int, status: str) -> str:
  emoji = status_emoji(status)
  if emoji is None:
    return f"Order #{order_id} Update"
  return f"{emoji} Order #{order_id} Update"


def normalize(intent: NotificationIntent, *, now: datetime | None = None) -> NormalizedPayload:
  """Build the payload for a single-recipient intent.

  Every payload carries ``data.userId`` (the ownership check on the client keys off
  it) and an ISO ``data.timestamp``. Tags embed a per-process unique millisecond
  stamp so repeated updates for the same order never collapse on the device.
  """
  if intent.target_user_id is None:
    raise ValueError("Notification intents must be expanded to a single recipient before normalization.")

  moment = now or datetime.now(UTC)
  stamp = unique_timestamp_ms()

  if intent.kind is IntentKind.ORDER_STATUS_CHANGED:
    payload = _order_status_payload(intent, stamp=stamp)
  elif intent.kind is IntentKind.TEST:
    payload = _test_payload(intent, stamp=stamp, moment=moment)
  elif intent.kind is IntentKind.ADMIN_NEW_ORDER:
    payload = _admin_new_order_payload(intent, stamp=stamp)
  else:
    raise ValueError(f"Unsupported notification intent: {intent.kind!r}")

  return payload.for_user(intent.target_user_id, now=moment)


def _order_status_payload(intent: NotificationIntent, *, stamp: int) -> NormalizedPayload:
  order_id = _require_order_id(intent)
  status = intent.status or "unknown"
  data = {"orderId": order_id, "status": status, "url": intent.url or "/orders"}
  return NormalizedPayload(title=order_update_title(order_id, status), body=describe_order_status(order_id, status), tag=f"order-{order_id}-{stamp}", data=data, actions=(VIEW_ORDER_ACTION,))


def _test_payload(intent: NotificationIntent, *, stamp: int, moment: datetime) -> NormalizedPayload:
  test_id = intent.test_id or generate_test_id()
  body = f"This is a test notification ({moment.strftime('%H:%M:%S')})"
  data = {"testId": test_id, "isTestNotification": True, "url": intent.url or "/profile"}
  return NormalizedPayload(title=TEST_NOTIFICATION_TITLE, body=body, tag=f"test-{stamp}", data=data)


def _admin_new_order_payload(intent: NotificationIntent, *, stamp: int) -> NormalizedPayload:
  order_id = _require_order_id(intent)
  total = Decimal(str(intent.order_total if intent.order_total is not None else 0))
  customer = intent.customer_name or "a customer"
  body = f"New order #{order_id} from {customer} for {total:.2f} credits"
  data = {"orderId": order_id, "url": intent.url or "/admin", "isAdminNotification": True, "type": "new_order"}
  return NormalizedPayload(title=ADMIN_NEW_ORDER_TITLE, body=body, tag=f"admin-order-{order_id}-{stamp}", data=data)


def _require_order_id(intent: NotificationIntent) -> int:
  if intent.order_id is None:
    raise ValueError(f"{intent.kind.value} intents require an order id.")
  return intent.order_id
