"""Typed messages exchanged between the background worker and open pages.

Each direction has its own tagged union, so a message can only be decoded on the
side that is meant to receive it. The wire shape is the browser's
``postMessage`` JSON: ``{"type": "...", ...camelCase fields}``.
"""

from __future__ import annotations

from typing import Any

import msgspec


class _Message(msgspec.Struct, tag_field="type", rename="camel", frozen=True, kw_only=True):
  pass


# worker -> page


class CheckUserIdForNotification(_Message, tag="CHECK_USER_ID_FOR_NOTIFICATION"):
  """Legacy ownership check: the page answers with its user id unconditionally."""

  notification_data: dict[str, Any]


class VerifyNotificationUser(_Message, tag="VERIFY_NOTIFICATION_USER"):
  """Ask a page to confirm the payload's ``data.userId`` is the signed-in user."""

  notification_data: dict[str, Any]
  timestamp: int


class NotificationClicked(_Message, tag="NOTIFICATION_CLICKED"):
  url: str
  data: dict[str, Any] = {}
  action: str = ""


class TestNotification(_Message, tag="TEST_NOTIFICATION"):
  __test__ = False

  notification_data: dict[str, Any]


# page -> worker


class UserIdForNotification(_Message, tag="USER_ID_FOR_TEST_NOTIFICATION"):
  """A page's answer: its signed-in user id plus the payload it is answering for."""

  user_id: int | str
  notification_data: dict[str, Any]


class AppVisible(_Message, tag="APP_VISIBLE"):
  user_id: int | str | None = None
  timestamp: int | None = None


WorkerToPageMessage = CheckUserIdForNotification | VerifyNotificationUser | NotificationClicked | TestNotification
PageToWorkerMessage = UserIdForNotification | AppVisible


def decode_worker_message(raw: dict[str, Any] | WorkerToPageMessage) -> WorkerToPageMessage:
  """Validate a message a page received; raises ``msgspec.ValidationError`` for other directions."""
  if isinstance(raw, CheckUserIdForNotification | VerifyNotificationUser | NotificationClicked | TestNotification):
    return raw
  return msgspec.convert(raw, type=WorkerToPageMessage)


def decode_page_message(raw: dict[str, Any] | PageToWorkerMessage) -> PageToWorkerMessage:
  """Validate a message the worker received; raises ``msgspec.ValidationError`` for other directions."""
  if isinstance(raw, UserIdForNotification | AppVisible):
    return raw
  return msgspec.convert(raw, type=PageToWorkerMessage)


def to_wire(message: WorkerToPageMessage | PageToWorkerMessage) -> dict[str, Any]:
  return msgspec.to_builtins(message)
