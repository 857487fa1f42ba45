"""Contracts shared by the push notification pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Protocol


class Vendor(str, Enum):
  """Push service family derived from a subscription endpoint."""

  WINDOWS = "windows"
  APPLE = "apple"
  FIREBASE = "firebase"
  STANDARD = "standard"


class IntentKind(str, Enum):
  ORDER_STATUS_CHANGED = "order-status-changed"
  TEST = "test"
  ADMIN_NEW_ORDER = "admin-new-order"


@dataclass(frozen=True)
class NotificationIntent:
  """Domain event that should become a notification.

  ``target_user_id`` is ``None`` for intents addressed to every admin; those are
  expanded per recipient with :meth:`for_recipient` before normalization.
  """

  kind: IntentKind
  target_user_id: int | None
  order_id: int | None = None
  status: str | None = None
  test_id: str | None = None
  url: str | None = None
  customer_name: str | None = None
  order_total: Decimal | float | None = None

  def for_recipient(self, user_id: int) -> NotificationIntent:
    return replace(self, target_user_id=user_id)


@dataclass(frozen=True)
class NormalizedPayload:
  """Canonical notification content delivered to every vendor."""

  title: str
  body: str
  tag: str
  data: dict[str, Any] = field(default_factory=dict)
  actions: tuple[dict[str, str], ...] = ()

  def for_user(self, user_id: int, *, now: datetime | None = None) -> NormalizedPayload:
    """Return a copy whose data carries the recipient id and a dispatch timestamp."""
    data = dict(self.data)
    data["userId"] = user_id
    if not data.get("timestamp"):
      data["timestamp"] = (now or datetime.now(UTC)).isoformat()
    return replace(self, data=data)

  def to_dict(self) -> dict[str, Any]:
    body = {"title": self.title, "body": self.body, "tag": self.tag, "data": dict(self.data)}
    if self.actions:
      body["actions"] = [dict(action) for action in self.actions]
    return body

  def to_json(self) -> str:
    return json.dumps(self.to_dict(), ensure_ascii=False)


@dataclass(frozen=True)
class PushNotification:
  """A normalized payload addressed to one stored subscription."""

  endpoint: str
  p256dh: str
  auth: str
  payload: NormalizedPayload


class PayloadShape(str, Enum):
  FULL = "full"
  MINIMAL_RAW = "minimal-raw"
  BADGE = "badge"


@dataclass(frozen=True)
class SendReceipt:
  """Successful vendor response for a single subscription."""

  vendor: Vendor
  status_code: int
  shape: PayloadShape = PayloadShape.FULL
  attempts: int = 1
  dropped: bool = False
  disabled: bool = False


class DeliveryStatus(str, Enum):
  DELIVERED = "delivered"
  DROPPED = "dropped"
  DISABLED = "disabled"
  SUBSCRIPTION_INVALID = "subscription-invalid"
  UNAUTHORIZED = "unauthorized"
  PAYLOAD_REJECTED = "payload-rejected"
  TRANSIENT = "transient"
  FAILED = "failed"


@dataclass(frozen=True)
class DeliveryOutcome:
  """Result of one delivery attempt after the subscription store was reconciled."""

  endpoint: str
  vendor: Vendor
  status: DeliveryStatus
  status_code: int | None = None
  reason: str | None = None
  subscription_deleted: bool = False

  @property
  def delivered(self) -> bool:
    # Windows "dropped" is reported as accepted by the vendor.
    return self.status in {DeliveryStatus.DELIVERED, DeliveryStatus.DROPPED}


class InvalidSubscriptionReason(str, Enum):
  GONE = "gone"
  NOT_FOUND = "not-found"
  VAPID_MISMATCH = "vapid-mismatch"
  AUTHENTICATION_FAILED = "authentication-failed"
  DEVICE_UNREACHABLE = "device-unreachable"
  CHANNEL_EXPIRED = "channel-expired"


class NotificationError(Exception):
  """Base class for all notification delivery failures."""


class NotificationProviderError(NotificationError):
  """Exception raised when a push service rejects a delivery."""

  def __init__(self, message: str, *, status_code: int | None = None, headers: dict[str, str] | None = None, vendor: Vendor | None = None) -> None:
    super().__init__(message)
    self.status_code = status_code
    self.headers = dict(headers or {})
    self.vendor = vendor


class InvalidPushSubscriptionError(NotificationProviderError):
  """Exception raised when a push subscription can never be delivered to again."""

  def __init__(self, message: str, *, reason: InvalidSubscriptionReason, status_code: int | None = None, headers: dict[str, str] | None = None, vendor: Vendor | None = None) -> None:
    super().__init__(message, status_code=status_code, headers=headers, vendor=vendor)
    self.reason = reason


class PushAuthorizationError(NotificationProviderError):
  """Exception raised for authorization rejections that do not invalidate the subscription."""


class PushPayloadRejectedError(NotificationProviderError):
  """Exception raised when the vendor refuses the payload itself."""


class TransientPushProviderError(NotificationProviderError):
  """Exception raised for vendor-side or network failures that may clear on their own."""


class PushSender(Protocol):
  """Delivery contract for sending push notifications."""

  def send(self, notification: PushNotification) -> SendReceipt:
    """Send a push notification synchronously."""
