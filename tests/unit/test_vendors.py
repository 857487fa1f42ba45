from __future__ import annotations

import json

import pytest

from beanstalker.notifications.contracts import NormalizedPayload, PayloadShape, Vendor
from beanstalker.notifications.vendors import attempts_for, classify_endpoint


@pytest.mark.parametrize(
  ("endpoint", "vendor"),
  [
    ("https://wns2-par02p.notify.windows.com/w/?token=abc", Vendor.WINDOWS),
    ("https://web.push.apple.com/QGx1", Vendor.APPLE),
    ("https://fcm.googleapis.com/fcm/send/abc", Vendor.FIREBASE),
    ("https://updates.push.services.mozilla.com/wpush/v2/abc", Vendor.STANDARD),
    ("https://FCM.GOOGLEAPIS.COM/fcm/send/abc", Vendor.FIREBASE),
  ],
)
def test_classify_endpoint(endpoint, vendor):
  assert classify_endpoint(endpoint) is vendor
  assert classify_endpoint(endpoint) is classify_endpoint(endpoint)


def test_windows_wins_over_other_markers():
  assert classify_endpoint("https://notify.windows.com/fcm/apple") is Vendor.WINDOWS


def test_windows_ladder_degrades_full_minimal_badge():
  shapes = [attempt.shape for attempt in attempts_for(Vendor.WINDOWS)]
  assert shapes == [PayloadShape.FULL, PayloadShape.MINIMAL_RAW, PayloadShape.BADGE]
  assert attempts_for(Vendor.WINDOWS)[2].headers["X-WNS-Type"] == "wns/badge"


def test_firebase_requests_high_urgency_and_others_send_once():
  assert attempts_for(Vendor.FIREBASE)[0].headers == {"Urgency": "high"}
  assert len(attempts_for(Vendor.APPLE)) == 1
  assert len(attempts_for(Vendor.STANDARD)) == 1


def test_minimal_raw_render_summarises_order_change():
  payload = NormalizedPayload(title="✅ Order #42 Update", body="Your order is now ready for pickup", tag="order-42-1", data={"orderId": 42, "status": "completed", "userId": 7})

  minimal = json.loads(attempts_for(Vendor.WINDOWS)[1].render(payload))

  assert minimal["msg"] == "Order #42 is now completed"
  assert minimal["type"] == "toast"
  assert minimal["data"]["userId"] == 7
  assert attempts_for(Vendor.WINDOWS)[2].render(payload) == '<badge value="alert"/>'
