"""Background worker side of the ownership verification protocol.

The worker receives vendor pushes but cannot know who is signed in. Payloads that
name a recipient (``data.userId``) are only displayed after an open page confirms
that recipient is its current user. Pushes that arrive with no page open are
dropped; there is no deferred queue.
"""

from __future__ import annotations

import json
import logging
import re
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Protocol

from beanstalker.client.messages import AppVisible, NotificationClicked, PageToWorkerMessage, UserIdForNotification, VerifyNotificationUser, WorkerToPageMessage, decode_page_message
from beanstalker.utils.ids import unique_timestamp_ms

logger = logging.getLogger(__name__)

PLAIN_TEXT_TITLE = "Bean Stalker Coffee"
FALLBACK_TITLE = "New notification"
VIBRATION_PATTERN = (100, 50, 100)
SHOWN_CACHE_SIZE = 50

_ORDER_ID_RE = re.compile(r"Order #(\d+)")
_ORDER_STATUS_RE = re.compile(r"is now (\w+)")


@dataclass(frozen=True)
class NotificationOptions:
  """Subset of ``ServiceWorkerRegistration.showNotification`` options the app uses."""

  body: str
  tag: str
  data: dict[str, Any] = field(default_factory=dict)
  icon: str = "/icons/icon-192x192.png"
  badge: str = "/icons/badge-72x72.png"
  vibrate: tuple[int, ...] = VIBRATION_PATTERN
  renotify: bool = True
  require_interaction: bool = False
  actions: tuple[dict[str, Any], ...] = ()


class WindowClient(Protocol):
  async def post_message(self, message: WorkerToPageMessage) -> None: ...

  async def focus(self) -> None: ...

  async def navigate(self, url: str) -> None: ...


class ClientsApi(Protocol):
  """The worker's view of ``self.clients``."""

  async def match_all(self) -> Sequence[WindowClient]: ...

  async def open_window(self, url: str) -> None: ...


class NotificationDisplay(Protocol):
  async def show_notification(self, title: str, options: NotificationOptions) -> None: ...


class PushHandling(str, Enum):
  VERIFICATION_REQUESTED = "verification-requested"
  DISPLAYED_UNVERIFIED = "displayed-unverified"
  DROPPED_NO_CLIENTS = "dropped-no-clients"


@dataclass(frozen=True)
class ParsedPush:
  title: str
  body: str
  tag: str | None
  data: dict[str, Any]
  has_structured_data: bool
  actions: tuple[dict[str, Any], ...] = ()

  @property
  def target_user_id(self) -> Any:
    return self.data.get("userId")

  def as_message_data(self) -> dict[str, Any]:
    return {"title": self.title, "body": self.body, "tag": self.tag, "data": self.data, "actions": [dict(action) for action in self.actions]}


def parse_push(raw: bytes | str | None) -> ParsedPush:
  """Parse a push body; non-JSON text becomes a plain notification."""
  if raw is None:
    return ParsedPush(title=FALLBACK_TITLE, body="", tag=None, data={}, has_structured_data=False)

  text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
  try:
    decoded = json.loads(text)
  except json.JSONDecodeError:
    decoded = None

  if not isinstance(decoded, dict):
    if text.strip():
      return ParsedPush(title=PLAIN_TEXT_TITLE, body=text.strip(), tag=None, data={}, has_structured_data=False)
    return ParsedPush(title=FALLBACK_TITLE, body="", tag=None, data={}, has_structured_data=False)

  data = decoded.get("data")
  return ParsedPush(
    title=str(decoded.get("title") or FALLBACK_TITLE),
    body=str(decoded.get("body") or ""),
    tag=decoded.get("tag"),
    data=dict(data) if isinstance(data, dict) else {},
    has_structured_data=isinstance(data, dict),
    actions=_parse_actions(decoded.get("actions")),
  )


def _parse_actions(raw: Any) -> tuple[dict[str, Any], ...]:
  if not isinstance(raw, list):
    return ()
  return tuple(dict(action) for action in raw if isinstance(action, dict) and action.get("action"))


class NotificationWorker:
  """Push, message and click handling for the background worker."""

  def __init__(self, *, clients: ClientsApi, display: NotificationDisplay, play_sound: Callable[[], Awaitable[None]] | None = None, platform: str = "other") -> None:
    self._clients = clients
    self._display = display
    self._play_sound = play_sound
    self._platform = platform
    self._shown: OrderedDict[str, None] = OrderedDict()
    self._handlers: dict[type, Callable[[Any], Awaitable[bool]]] = {UserIdForNotification: self._on_user_id, AppVisible: self._on_app_visible}

  async def handle_push(self, raw: bytes | str | None) -> PushHandling:
    parsed = parse_push(raw)

    if parsed.target_user_id is None or parsed.target_user_id == "":
      await self._show_unverified(parsed)
      return PushHandling.DISPLAYED_UNVERIFIED

    pages = await self._clients.match_all()
    if not pages:
      logger.info("Push for user_id=%s dropped; no open page can verify ownership", parsed.target_user_id)
      return PushHandling.DROPPED_NO_CLIENTS

    request = VerifyNotificationUser(notification_data=parsed.as_message_data(), timestamp=unique_timestamp_ms())
    for page in pages:
      await page.post_message(request)
    logger.debug("Asked %d page(s) to verify user_id=%s", len(pages), parsed.target_user_id)
    return PushHandling.VERIFICATION_REQUESTED

  async def handle_message(self, raw: dict[str, Any] | PageToWorkerMessage) -> bool:
    """Dispatch a page message; returns True when a notification was shown."""
    message = decode_page_message(raw)
    return await self._handlers[type(message)](message)

  async def handle_notification_click(self, options: NotificationOptions, action: str = "") -> str:
    """Route a click to the right page and return the URL it was sent to."""
    data = options.data
    order_id = data.get("orderId")
    if order_id is not None and action == "view":
      url = f"/orders?highlight={order_id}"
    elif order_id is not None:
      url = "/orders"
    else:
      url = str(data.get("url") or "/")

    pages = await self._clients.match_all()
    clicked = NotificationClicked(url=url, data=data, action=action)
    for page in pages:
      await page.post_message(clicked)

    if not pages:
      await self._clients.open_window(url)
      return url

    try:
      await pages[0].focus()
      await pages[0].navigate(url)
    except Exception as exc:  # noqa: BLE001
      logger.warning("Navigating existing page failed, opening a new window url=%s error=%s", url, exc)
      await self._clients.open_window(url)
    return url

  async def _on_user_id(self, message: UserIdForNotification) -> bool:
    payload = message.notification_data
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    target = data.get("userId")
    if target is None or str(target) != str(message.user_id):
      logger.info("Notification suppressed; page user does not match target (target=%s page=%s)", target, message.user_id)
      return False

    title = str(payload.get("title") or FALLBACK_TITLE)
    body = str(payload.get("body") or "")
    key = f"{title}|{body}|{data.get('timestamp', '')}"
    # Several pages may confirm the same push; only the first one shows it.
    if key in self._shown:
      return False
    self._remember(key)

    kind = "test" if data.get("isTestNotification") else "standard"
    await self._play_sound_best_effort()
    options = NotificationOptions(
      body=body,
      tag=f"{kind}-{unique_timestamp_ms()}",
      data={**data, "platform": self._platform},
      require_interaction=bool(data.get("isTestNotification")),
      actions=_parse_actions(payload.get("actions")),
    )
    await self._display.show_notification(title, options)
    return True

  async def _on_app_visible(self, message: AppVisible) -> bool:
    logger.debug("Page became visible user_id=%s", message.user_id)
    return False

  async def _show_unverified(self, parsed: ParsedPush) -> None:
    data = dict(parsed.data)
    if not parsed.has_structured_data and "Order #" in parsed.body:
      order_match = _ORDER_ID_RE.search(parsed.body)
      status_match = _ORDER_STATUS_RE.search(parsed.body)
      if order_match:
        data["orderId"] = int(order_match.group(1))
      if status_match:
        data["status"] = status_match.group(1)
    data.setdefault("url", "/orders" if "orderId" in data else "/")

    base_tag = parsed.tag or "beanstalker-notification"
    await self._play_sound_best_effort()
    await self._display.show_notification(parsed.title, NotificationOptions(body=parsed.body, tag=f"{base_tag}-{unique_timestamp_ms()}", data=data, actions=parsed.actions))

  async def _play_sound_best_effort(self) -> None:
    if self._play_sound is None:
      return
    try:
      await self._play_sound()
    except Exception as exc:  # noqa: BLE001
      logger.debug("Notification sound failed: %s", exc)

  def _remember(self, key: str) -> None:
    self._shown[key] = None
    while len(self._shown) > SHOWN_CACHE_SIZE:
      self._shown.popitem(last=False)
