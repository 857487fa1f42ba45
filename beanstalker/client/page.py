"""Page side of the ownership verification protocol."""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, Protocol

from beanstalker.client.messages import (
  AppVisible,
  CheckUserIdForNotification,
  NotificationClicked,
  PageToWorkerMessage,
  TestNotification,
  UserIdForNotification,
  VerifyNotificationUser,
  WorkerToPageMessage,
  decode_worker_message,
)
from beanstalker.utils.ids import unique_timestamp_ms

logger = logging.getLogger(__name__)


class WorkerPort(Protocol):
  """``navigator.serviceWorker.controller`` as seen from a page."""

  async def handle_message(self, message: PageToWorkerMessage) -> Any: ...


class PageSession:
  """One open application window.

  The page knows who is signed in; it answers verification requests only for its
  own user and compares ids as strings so ``7`` and ``"7"`` match.
  """

  def __init__(self, *, worker: WorkerPort, current_user_id: int | str | None = None, on_orders_invalidated: Callable[[Any], None] | None = None, navigate: Callable[[str], Awaitable[None]] | None = None) -> None:
    self._worker = worker
    self._current_user_id = current_user_id
    self._on_orders_invalidated = on_orders_invalidated
    self._navigate = navigate
    self.location = "/"
    self.focused = False
    self._handlers: dict[type, Callable[[Any], Awaitable[None]]] = {
      VerifyNotificationUser: self._on_verify,
      CheckUserIdForNotification: self._on_check,
      TestNotification: self._on_test,
      NotificationClicked: self._on_clicked,
    }

  @property
  def current_user_id(self) -> int | str | None:
    return self._current_user_id

  def sign_in(self, user_id: int | str) -> None:
    self._current_user_id = user_id

  def sign_out(self) -> None:
    self._current_user_id = None

  async def post_message(self, message: dict[str, Any] | WorkerToPageMessage) -> None:
    decoded = decode_worker_message(message)
    await self._handlers[type(decoded)](decoded)

  async def focus(self) -> None:
    self.focused = True

  async def navigate(self, url: str) -> None:
    self.location = url
    if self._navigate is not None:
      await self._navigate(url)

  async def announce_visible(self) -> None:
    await self._worker.handle_message(AppVisible(user_id=self._current_user_id, timestamp=unique_timestamp_ms()))

  async def _on_verify(self, message: VerifyNotificationUser) -> None:
    data = message.notification_data.get("data") or {}
    target = data.get("userId")
    if self._current_user_id is None or target is None or str(target) != str(self._current_user_id):
      logger.debug("Verification declined target=%s current=%s", target, self._current_user_id)
      return
    await self._reply(message.notification_data)

  async def _on_check(self, message: CheckUserIdForNotification) -> None:
    if self._current_user_id is not None:
      await self._reply(message.notification_data)

  async def _on_test(self, message: TestNotification) -> None:
    if self._current_user_id is not None:
      await self._reply(message.notification_data)

  async def _on_clicked(self, message: NotificationClicked) -> None:
    if self._on_orders_invalidated is not None:
      self._on_orders_invalidated(message.data.get("orderId"))

  async def _reply(self, notification_data: dict[str, Any]) -> None:
    await self._worker.handle_message(UserIdForNotification(user_id=self._current_user_id, notification_data=notification_data))


class InProcessClients:
  """``self.clients`` backed by a list of in-process pages."""

  def __init__(self, pages: list[PageSession] | None = None) -> None:
    self.pages: list[PageSession] = list(pages or [])
    self.opened_urls: list[str] = []

  async def match_all(self) -> list[PageSession]:
    return list(self.pages)

  async def open_window(self, url: str) -> None:
    self.opened_urls.append(url)
