"""Notification orchestration for ordering events."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Coroutine, Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

from starlette.concurrency import run_in_threadpool

from beanstalker.notifications.contracts import DeliveryOutcome, IntentKind, NormalizedPayload, NotificationIntent, PushNotification, PushSender
from beanstalker.notifications.outcomes import DeliveryOutcomeHandler
from beanstalker.notifications.payloads import normalize
from beanstalker.notifications.push_subscription_repo import PushSubscriptionEntry, PushSubscriptionRepository
from beanstalker.storage.users_repo import UsersRepository
from beanstalker.utils.ids import generate_test_id

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TestDispatch:
  """Summary of a test notification fan-out."""

  __test__ = False

  test_id: str
  timestamp: datetime
  outcomes: list[DeliveryOutcome]

  @property
  def delivered(self) -> int:
    return sum(1 for outcome in self.outcomes if outcome.delivered)

  @property
  def failed(self) -> int:
    return len(self.outcomes) - self.delivered


class NotificationService:
  """Dispatches normalized payloads to every subscription of a recipient.

  Every public ``send_*`` coroutine is best-effort: failures are logged and turned
  into outcomes, never raised to the business operation that triggered them.
  """

  def __init__(self, *, push_sender: PushSender, push_subscription_repo: PushSubscriptionRepository, users_repo: UsersRepository, push_enabled: bool, outcome_handler: DeliveryOutcomeHandler | None = None) -> None:
    self._push_sender = push_sender
    self._push_subscription_repo = push_subscription_repo
    self._users_repo = users_repo
    self._push_enabled = push_enabled
    self._outcome_handler = outcome_handler or DeliveryOutcomeHandler(push_subscription_repo=push_subscription_repo)
    self._background_tasks: set[asyncio.Task[Any]] = set()

  @property
  def push_enabled(self) -> bool:
    return self._push_enabled

  async def send_push_notification_to_user(self, user_id: int, payload: NormalizedPayload) -> list[DeliveryOutcome]:
    """Fan a payload out to all of a user's subscriptions and collect every outcome."""
    try:
      subscriptions = await self._push_subscription_repo.list_for_user(user_id=user_id)
    except Exception as exc:  # noqa: BLE001
      logger.error("Push subscription lookup failed user_id=%s error=%s", user_id, exc, exc_info=True)
      return []

    if not subscriptions:
      logger.info("No push subscriptions for user_id=%s", user_id)
      return []

    outcomes = await self.send_to_subscriptions(subscriptions, _enrich(payload, user_id))
    delivered = sum(1 for outcome in outcomes if outcome.delivered)
    logger.info("Push fan-out finished user_id=%s delivered=%s failed=%s", user_id, delivered, len(outcomes) - delivered)
    return outcomes

  async def send_to_subscriptions(self, subscriptions: Sequence[PushSubscriptionEntry], payload: NormalizedPayload) -> list[DeliveryOutcome]:
    """Send concurrently; one subscription's failure never cancels the others."""
    notifications = [PushNotification(endpoint=subscription.endpoint, p256dh=subscription.p256dh, auth=subscription.auth, payload=payload) for subscription in subscriptions]
    results = await asyncio.gather(*(run_in_threadpool(self._push_sender.send, notification) for notification in notifications), return_exceptions=True)
    return list(await asyncio.gather(*(self._outcome_handler.resolve(notification, result) for notification, result in zip(notifications, results, strict=True))))

  async def send_order_status_notification(self, *, user_id: int, order_id: int, status: str) -> list[DeliveryOutcome]:
    intent = NotificationIntent(kind=IntentKind.ORDER_STATUS_CHANGED, target_user_id=user_id, order_id=order_id, status=status)
    return await self._send_intent(intent)

  async def send_notification_to_admins(self, intent: NotificationIntent) -> dict[int, list[DeliveryOutcome]]:
    """Normalize the intent once per admin and deliver to each admin concurrently."""
    try:
      admins = await self._users_repo.list_admins()
    except Exception as exc:  # noqa: BLE001
      logger.error("Admin lookup failed for %s notification: %s", intent.kind.value, exc, exc_info=True)
      return {}

    if not admins:
      logger.info("No admin users to notify kind=%s", intent.kind.value)
      return {}

    results = await asyncio.gather(*(self._send_intent(intent.for_recipient(admin.id)) for admin in admins))
    return {admin.id: outcomes for admin, outcomes in zip(admins, results, strict=True)}

  async def notify_admins_about_new_order(self, *, order_id: int, username: str, total: Decimal | float) -> dict[int, list[DeliveryOutcome]]:
    intent = NotificationIntent(kind=IntentKind.ADMIN_NEW_ORDER, target_user_id=None, order_id=order_id, customer_name=username, order_total=total)
    return await self.send_notification_to_admins(intent)

  async def send_test_notification(self, *, user_id: int, url: str = "/profile", subscriptions: Sequence[PushSubscriptionEntry] | None = None) -> TestDispatch:
    """Send a labelled test notification; callers may pass already-loaded subscriptions."""
    now = datetime.now(UTC)
    test_id = generate_test_id()
    intent = NotificationIntent(kind=IntentKind.TEST, target_user_id=user_id, test_id=test_id, url=url)
    payload = normalize(intent, now=now)
    if subscriptions is None:
      outcomes = await self.send_push_notification_to_user(user_id, payload)
    else:
      outcomes = await self.send_to_subscriptions(subscriptions, payload)
    return TestDispatch(test_id=test_id, timestamp=now, outcomes=outcomes)

  def dispatch_order_status_notification(self, *, user_id: int, order_id: int, status: str) -> asyncio.Task[Any]:
    """Schedule an order status notification without blocking the caller."""
    return self._spawn(self.send_order_status_notification(user_id=user_id, order_id=order_id, status=status))

  def dispatch_new_order_to_admins(self, *, order_id: int, username: str, total: Decimal | float) -> asyncio.Task[Any]:
    return self._spawn(self.notify_admins_about_new_order(order_id=order_id, username=username, total=total))

  async def _send_intent(self, intent: NotificationIntent) -> list[DeliveryOutcome]:
    try:
      payload = normalize(intent)
    except Exception as exc:  # noqa: BLE001
      logger.error("Push content render failed kind=%s error=%s", intent.kind.value, exc, exc_info=True)
      return []
    return await self.send_push_notification_to_user(intent.target_user_id, payload)

  def _spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task[Any]:
    task = asyncio.create_task(coro)
    # Hold a reference until completion so the task is not garbage collected mid-flight.
    self._background_tasks.add(task)
    task.add_done_callback(self._background_tasks.discard)
    task.add_done_callback(self._log_task_error)
    return task

  @staticmethod
  def _log_task_error(task: asyncio.Task[Any]) -> None:
    """Log background task exceptions to avoid silent delivery failures."""
    if task.cancelled():
      return
    exc = task.exception()
    if exc is not None:
      logger.error("Background push dispatch task failed: %s", exc, exc_info=exc)


def _enrich(payload: NormalizedPayload, user_id: int) -> NormalizedPayload:
  enriched = payload.for_user(user_id)
  if "orderId" in enriched.data and not enriched.data.get("url"):
    enriched = replace(enriched, data={**enriched.data, "url": "/orders"})
  return enriched
