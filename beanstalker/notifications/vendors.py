"""Vendor classification and per-vendor delivery attempts."""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field

from beanstalker.notifications.contracts import NormalizedPayload, PayloadShape, Vendor

# Windows rejections with these statuses are retried with a smaller payload.
DEGRADABLE_STATUS_CODES = frozenset({400, 401})

_WNS_RAW_HEADERS = {"X-WNS-Type": "wns/raw", "Content-Type": "application/octet-stream", "X-WNS-Cache-Policy": "cache"}
_WNS_MINIMAL_HEADERS = {"X-WNS-Type": "wns/raw", "Content-Type": "text/plain", "X-WNS-Cache-Policy": "cache"}
_WNS_BADGE_HEADERS = {"X-WNS-Type": "wns/badge", "Content-Type": "text/xml"}
_WNS_BADGE_BODY = '<badge value="alert"/>'


def classify_endpoint(endpoint: str) -> Vendor:
  """Classify a push endpoint by substring; Windows wins over Apple over Firebase."""
  lowered = endpoint.lower()
  if "windows.com" in lowered or "microsoft" in lowered:
    return Vendor.WINDOWS
  if "apple" in lowered or "icloud" in lowered:
    return Vendor.APPLE
  if "fcm" in lowered or "firebase" in lowered:
    return Vendor.FIREBASE
  return Vendor.STANDARD


@dataclass(frozen=True)
class DeliveryAttempt:
  """One rung of a vendor's attempt ladder."""

  shape: PayloadShape
  headers: Mapping[str, str] = field(default_factory=dict)

  def render(self, payload: NormalizedPayload) -> str:
    if self.shape is PayloadShape.FULL:
      return payload.to_json()
    if self.shape is PayloadShape.MINIMAL_RAW:
      return json.dumps({"msg": _minimal_message(payload), "title": payload.title, "data": payload.data, "type": "toast"}, ensure_ascii=False)
    return _WNS_BADGE_BODY


def attempts_for(vendor: Vendor) -> tuple[DeliveryAttempt, ...]:
  """Return the ordered attempts for a vendor; only Windows has more than one."""
  if vendor is Vendor.WINDOWS:
    return (
      DeliveryAttempt(shape=PayloadShape.FULL, headers=_WNS_RAW_HEADERS),
      DeliveryAttempt(shape=PayloadShape.MINIMAL_RAW, headers=_WNS_MINIMAL_HEADERS),
      DeliveryAttempt(shape=PayloadShape.BADGE, headers=_WNS_BADGE_HEADERS),
    )
  if vendor is Vendor.FIREBASE:
    return (DeliveryAttempt(shape=PayloadShape.FULL, headers={"Urgency": "high"}),)
  return (DeliveryAttempt(shape=PayloadShape.FULL),)


def _minimal_message(payload: NormalizedPayload) -> str:
  order_id = payload.data.get("orderId")
  status = payload.data.get("status")
  if order_id is not None and status:
    return f"Order #{order_id} is now {status}"
  return payload.body
