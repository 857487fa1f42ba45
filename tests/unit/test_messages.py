from __future__ import annotations

import msgspec
import pytest

from beanstalker.client.messages import AppVisible, UserIdForNotification, VerifyNotificationUser, decode_page_message, decode_worker_message, to_wire


def test_wire_shape_uses_type_tag_and_camel_case():
  message = VerifyNotificationUser(notification_data={"title": "t"}, timestamp=1)

  assert to_wire(message) == {"type": "VERIFY_NOTIFICATION_USER", "notificationData": {"title": "t"}, "timestamp": 1}


def test_page_message_decodes_from_wire_json():
  message = decode_page_message({"type": "USER_ID_FOR_TEST_NOTIFICATION", "userId": "7", "notificationData": {"data": {"userId": 7}}})

  assert isinstance(message, UserIdForNotification)
  assert message.user_id == "7"


def test_app_visible_fields_are_optional():
  assert decode_page_message({"type": "APP_VISIBLE"}) == AppVisible()


def test_worker_messages_are_rejected_on_the_worker_side():
  with pytest.raises(msgspec.ValidationError):
    decode_page_message({"type": "VERIFY_NOTIFICATION_USER", "notificationData": {}, "timestamp": 1})


def test_page_messages_are_rejected_on_the_page_side():
  with pytest.raises(msgspec.ValidationError):
    decode_worker_message({"type": "USER_ID_FOR_TEST_NOTIFICATION", "userId": 7, "notificationData": {}})


def test_unknown_type_is_rejected():
  with pytest.raises(msgspec.ValidationError):
    decode_worker_message({"type": "SOMETHING_ELSE"})
