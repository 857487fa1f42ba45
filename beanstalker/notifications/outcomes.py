"""Reconcile vendor responses with the subscription store."""

from __future__ import annotations

import logging

from beanstalker.notifications.contracts import (
  DeliveryOutcome,
  DeliveryStatus,
  InvalidPushSubscriptionError,
  NotificationProviderError,
  PushAuthorizationError,
  PushNotification,
  PushPayloadRejectedError,
  SendReceipt,
  TransientPushProviderError,
)
from beanstalker.notifications.push_subscription_repo import PushSubscriptionRepository
from beanstalker.notifications.vendors import classify_endpoint
from beanstalker.utils.redaction import truncate_endpoint

logger = logging.getLogger(__name__)


class DeliveryOutcomeHandler:
  """Turns a send result into a :class:`DeliveryOutcome`, pruning dead subscriptions.

  Only permanently invalid subscriptions are deleted. Authorization problems,
  rejected payloads and transient failures keep the subscription and are not retried.
  """

  def __init__(self, *, push_subscription_repo: PushSubscriptionRepository) -> None:
    self._push_subscription_repo = push_subscription_repo

  async def resolve(self, notification: PushNotification, result: SendReceipt | BaseException) -> DeliveryOutcome:
    endpoint = notification.endpoint
    if isinstance(result, SendReceipt):
      if result.disabled:
        return DeliveryOutcome(endpoint=endpoint, vendor=result.vendor, status=DeliveryStatus.DISABLED, reason="push notifications are disabled")
      status = DeliveryStatus.DROPPED if result.dropped else DeliveryStatus.DELIVERED
      return DeliveryOutcome(endpoint=endpoint, vendor=result.vendor, status=status, status_code=int(result.status_code))

    vendor = getattr(result, "vendor", None) or classify_endpoint(endpoint)
    status_code = getattr(result, "status_code", None)

    if isinstance(result, InvalidPushSubscriptionError):
      deleted = await self._delete_subscription(endpoint)
      logger.info("Removed invalid push subscription endpoint=%s vendor=%s reason=%s deleted=%s", truncate_endpoint(endpoint), vendor.value, result.reason.value, deleted)
      return DeliveryOutcome(endpoint=endpoint, vendor=vendor, status=DeliveryStatus.SUBSCRIPTION_INVALID, status_code=status_code, reason=result.reason.value, subscription_deleted=deleted)

    if isinstance(result, PushAuthorizationError):
      logger.warning("Push authorization rejected vendor=%s status=%s; subscription kept", vendor.value, status_code)
      return DeliveryOutcome(endpoint=endpoint, vendor=vendor, status=DeliveryStatus.UNAUTHORIZED, status_code=status_code, reason=str(result))

    if isinstance(result, PushPayloadRejectedError):
      logger.warning("Push payload rejected vendor=%s status=%s; subscription kept", vendor.value, status_code)
      return DeliveryOutcome(endpoint=endpoint, vendor=vendor, status=DeliveryStatus.PAYLOAD_REJECTED, status_code=status_code, reason=str(result))

    if isinstance(result, TransientPushProviderError):
      logger.warning("Transient push failure vendor=%s status=%s; not retried", vendor.value, status_code)
      return DeliveryOutcome(endpoint=endpoint, vendor=vendor, status=DeliveryStatus.TRANSIENT, status_code=status_code, reason=str(result))

    if isinstance(result, NotificationProviderError):
      logger.error("Push notification delivery failed (provider error): %s", result)
    else:
      logger.error("Push notification delivery failed: %s", result, exc_info=result)

    return DeliveryOutcome(endpoint=endpoint, vendor=vendor, status=DeliveryStatus.FAILED, status_code=status_code, reason=str(result))

  async def _delete_subscription(self, endpoint: str) -> bool:
    try:
      await self._push_subscription_repo.delete_by_endpoint(endpoint=endpoint)
    except Exception as exc:  # noqa: BLE001
      logger.error("Failed deleting invalid push subscription endpoint=%s error=%s", truncate_endpoint(endpoint), exc, exc_info=True)
      return False
    return True
