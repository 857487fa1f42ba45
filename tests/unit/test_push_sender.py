from __future__ import annotations

import json

import pytest
import requests

from beanstalker.notifications.contracts import (
  InvalidPushSubscriptionError,
  InvalidSubscriptionReason,
  NormalizedPayload,
  PayloadShape,
  PushAuthorizationError,
  PushNotification,
  PushPayloadRejectedError,
  TransientPushProviderError,
  Vendor,
)
from beanstalker.notifications.push_sender import NullPushSender, VapidConfig, WebPushSender

_FIREBASE = "https://fcm.googleapis.com/fcm/send/abc"
_WINDOWS = "https://wns2-par02p.notify.windows.com/w/?token=abc"


class _FakeResponse:
  def __init__(self, status_code: int, headers: dict[str, str] | None = None) -> None:
    self.status_code = status_code
    self.headers = headers or {}


class _FakeWebPushError(Exception):
  def __init__(self, status_code: int, headers: dict[str, str] | None = None) -> None:
    super().__init__(f"status={status_code}")
    self.response = _FakeResponse(status_code, headers)


def _notification(endpoint: str = _FIREBASE) -> PushNotification:
  payload = NormalizedPayload(title="✅ Order #42 Update", body="Your order is now ready for pickup", tag="order-42-1", data={"orderId": 42, "status": "completed", "userId": 7})
  return PushNotification(endpoint=endpoint, p256dh="BEl6f5Y8X5Y_u7d8mV_AbpZfXfTLT3s1O3L4wM1x8QY2_5qWQ-jxJq7uKjv8mQ4I", auth="gq8Yh5xA9l2mQ6pR", payload=payload)


def _sender() -> WebPushSender:
  return WebPushSender(vapid_config=VapidConfig(public_key="pub", private_key="priv", sub="mailto:test@example.com"))


@pytest.fixture
def fake_webpush(monkeypatch):
  """Install a scripted webpush; each call pops the next outcome (exception or response)."""
  calls: list[dict] = []
  script: list = []

  def _webpush(**kwargs):
    calls.append(kwargs)
    outcome = script.pop(0) if script else _FakeResponse(201)
    if isinstance(outcome, BaseException):
      raise outcome
    return outcome

  monkeypatch.setattr("beanstalker.notifications.push_sender.WebPushException", _FakeWebPushError)
  monkeypatch.setattr("beanstalker.notifications.push_sender.webpush", _webpush)
  return calls, script


def test_success_sends_full_payload_with_ttl_and_urgency(fake_webpush):
  calls, _ = fake_webpush

  receipt = _sender().send(_notification())

  assert receipt.vendor is Vendor.FIREBASE
  assert receipt.status_code == 201
  assert receipt.shape is PayloadShape.FULL
  assert len(calls) == 1
  assert calls[0]["subscription_info"]["endpoint"] == _FIREBASE
  assert calls[0]["ttl"] == 3600
  assert calls[0]["headers"] == {"Urgency": "high"}
  assert calls[0]["vapid_claims"] == {"sub": "mailto:test@example.com"}
  assert json.loads(calls[0]["data"])["data"]["userId"] == 7


def test_windows_401_degrades_to_minimal_raw(fake_webpush):
  calls, script = fake_webpush
  script.append(_FakeWebPushError(401))

  receipt = _sender().send(_notification(_WINDOWS))

  assert receipt.shape is PayloadShape.MINIMAL_RAW
  assert receipt.attempts == 2
  assert calls[0]["headers"]["X-WNS-Type"] == "wns/raw"
  assert calls[1]["headers"]["Content-Type"] == "text/plain"
  assert json.loads(calls[1]["data"])["msg"] == "Order #42 is now completed"


def test_windows_falls_back_to_badge_after_two_rejections(fake_webpush):
  calls, script = fake_webpush
  script.extend([_FakeWebPushError(400), _FakeWebPushError(401)])

  receipt = _sender().send(_notification(_WINDOWS))

  assert receipt.shape is PayloadShape.BADGE
  assert calls[2]["data"] == '<badge value="alert"/>'


def test_windows_vapid_key_rejection_stops_the_ladder(fake_webpush):
  calls, script = fake_webpush
  script.append(_FakeWebPushError(401, {"X-WNS-Error-Description": "Invalid public key for this channel"}))

  with pytest.raises(InvalidPushSubscriptionError) as exc_info:
    _sender().send(_notification(_WINDOWS))

  assert exc_info.value.reason is InvalidSubscriptionReason.VAPID_MISMATCH
  assert len(calls) == 1


def test_windows_dropped_status_counts_as_accepted(fake_webpush):
  _, script = fake_webpush
  script.append(_FakeWebPushError(410, {"X-WNS-Status": "dropped"}))

  receipt = _sender().send(_notification(_WINDOWS))

  assert receipt.dropped is True
  assert receipt.status_code == 202


def test_windows_channel_expired_on_every_rung_invalidates(fake_webpush):
  calls, script = fake_webpush
  script.extend([_FakeWebPushError(401, {"X-WNS-Error-Description": "Channel Expired"}) for _ in range(3)])

  with pytest.raises(InvalidPushSubscriptionError) as exc_info:
    _sender().send(_notification(_WINDOWS))

  assert exc_info.value.reason is InvalidSubscriptionReason.CHANNEL_EXPIRED
  assert len(calls) == 3


@pytest.mark.parametrize(
  ("status_code", "headers", "error_type"),
  [
    (410, None, InvalidPushSubscriptionError),
    (404, None, InvalidPushSubscriptionError),
    (400, None, PushPayloadRejectedError),
    (403, {"X-WNS-Error-Description": "Not authorized to send"}, PushAuthorizationError),
    (401, None, PushAuthorizationError),
    (500, None, TransientPushProviderError),
    (503, None, TransientPushProviderError),
  ],
)
def test_final_rejections_are_classified(fake_webpush, status_code, headers, error_type):
  calls, script = fake_webpush
  script.append(_FakeWebPushError(status_code, headers))

  with pytest.raises(error_type) as exc_info:
    _sender().send(_notification())

  assert exc_info.value.status_code == status_code
  # No retries outside the Windows ladder.
  assert len(calls) == 1


def test_gone_and_not_found_keep_distinct_reasons(fake_webpush):
  _, script = fake_webpush
  script.extend([_FakeWebPushError(410), _FakeWebPushError(404)])

  with pytest.raises(InvalidPushSubscriptionError) as gone:
    _sender().send(_notification())
  with pytest.raises(InvalidPushSubscriptionError) as not_found:
    _sender().send(_notification())

  assert gone.value.reason is InvalidSubscriptionReason.GONE
  assert not_found.value.reason is InvalidSubscriptionReason.NOT_FOUND


def test_network_errors_are_transient(fake_webpush):
  _, script = fake_webpush
  script.append(requests.ConnectionError("connection reset"))

  with pytest.raises(TransientPushProviderError):
    _sender().send(_notification())


def test_null_sender_marks_receipt_disabled_not_dropped():
  receipt = NullPushSender().send(_notification(_WINDOWS))

  assert receipt.disabled is True
  assert receipt.dropped is False
  assert receipt.vendor is Vendor.WINDOWS


def test_authentication_failure_wins_over_authorization_wording(fake_webpush):
  _, script = fake_webpush
  script.append(_FakeWebPushError(403, {"X-WNS-Error-Description": "JWT authentication failed; check the authorization header"}))

  with pytest.raises(InvalidPushSubscriptionError) as exc_info:
    _sender().send(_notification())

  assert exc_info.value.reason is InvalidSubscriptionReason.AUTHENTICATION_FAILED


def test_authorization_wording_alone_keeps_the_subscription(fake_webpush):
  _, script = fake_webpush
  script.append(_FakeWebPushError(403, {"X-WNS-Error-Description": "The cloud service is not authorized to send; device unreachable"}))

  with pytest.raises(PushAuthorizationError):
    _sender().send(_notification())
