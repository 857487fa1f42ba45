"""Push notification delivery implementations."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from http import HTTPStatus
from typing import Any

import requests
from pywebpush import WebPushException, webpush

from beanstalker.notifications.contracts import (
  InvalidPushSubscriptionError,
  InvalidSubscriptionReason,
  NotificationProviderError,
  PushAuthorizationError,
  PushNotification,
  PushPayloadRejectedError,
  PushSender,
  SendReceipt,
  TransientPushProviderError,
  Vendor,
)
from beanstalker.notifications.vendors import DEGRADABLE_STATUS_CODES, attempts_for, classify_endpoint

logger = logging.getLogger(__name__)

_WNS_DESCRIPTION_HEADER = "x-wns-error-description"
_WNS_STATUS_HEADERS = ("x-wns-status", "x-wns-notificationstatus")

# Lower-cased description fragments that mean the subscription is permanently unusable.
# Key and authentication failures are matched before the authorization check.
_FATAL_KEY_DESCRIPTIONS: tuple[tuple[str, InvalidSubscriptionReason], ...] = (
  ("public key", InvalidSubscriptionReason.VAPID_MISMATCH),
  ("vapid", InvalidSubscriptionReason.VAPID_MISMATCH),
  ("jwt authentication failed", InvalidSubscriptionReason.AUTHENTICATION_FAILED),
  ("authentication", InvalidSubscriptionReason.AUTHENTICATION_FAILED),
)
_FATAL_CHANNEL_DESCRIPTIONS: tuple[tuple[str, InvalidSubscriptionReason], ...] = (
  ("device unreachable", InvalidSubscriptionReason.DEVICE_UNREACHABLE),
  ("channel expired", InvalidSubscriptionReason.CHANNEL_EXPIRED),
)


@dataclass(frozen=True)
class VapidConfig:
  """Configuration required to sign Web Push requests."""

  public_key: str
  private_key: str
  sub: str


class WebPushSender(PushSender):
  """`pywebpush` backed sender that walks the vendor's attempt ladder once, without retries."""

  def __init__(self, *, vapid_config: VapidConfig, ttl_seconds: int = 3600, timeout_seconds: float = 10.0) -> None:
    self._vapid_config = vapid_config
    self._ttl_seconds = ttl_seconds
    self._timeout_seconds = timeout_seconds

  def send(self, notification: PushNotification) -> SendReceipt:
    """Deliver one payload to one subscription and classify any vendor rejection."""
    vendor = classify_endpoint(notification.endpoint)
    attempts = attempts_for(vendor)
    subscription_info = {"endpoint": notification.endpoint, "keys": {"p256dh": notification.p256dh, "auth": notification.auth}}

    for index, attempt in enumerate(attempts):
      try:
        # pywebpush mutates the claims dict, so every attempt gets a fresh one.
        response = webpush(
          subscription_info=subscription_info,
          data=attempt.render(notification.payload),
          vapid_private_key=self._vapid_config.private_key,
          vapid_claims={"sub": self._vapid_config.sub},
          ttl=self._ttl_seconds,
          headers=dict(attempt.headers),
          timeout=self._timeout_seconds,
        )
      except WebPushException as exc:
        status_code = _extract_status_code(exc)
        headers = _extract_headers(exc)

        if _is_dropped(headers):
          logger.info("Push accepted as dropped vendor=%s status=%s", vendor.value, status_code)
          return SendReceipt(vendor=vendor, status_code=HTTPStatus.ACCEPTED, shape=attempt.shape, attempts=index + 1, dropped=True)

        is_last = index == len(attempts) - 1
        if vendor is Vendor.WINDOWS and status_code in DEGRADABLE_STATUS_CODES and not is_last:
          if _blames_vapid_key(headers):
            raise InvalidPushSubscriptionError("Windows rejected the VAPID public key", reason=InvalidSubscriptionReason.VAPID_MISMATCH, status_code=status_code, headers=headers, vendor=vendor) from exc

          logger.info("Windows rejected %s payload status=%s; degrading to %s", attempt.shape.value, status_code, attempts[index + 1].shape.value)
          continue

        raise _classify_failure(vendor=vendor, status_code=status_code, headers=headers) from exc
      except requests.RequestException as exc:
        raise TransientPushProviderError(f"Push request failed before a response ({type(exc).__name__})", vendor=vendor) from exc

      return SendReceipt(vendor=vendor, status_code=_response_status(response), shape=attempt.shape, attempts=index + 1, dropped=_is_dropped(_response_headers(response)))

    # The final rung always returns or raises above.
    raise NotificationProviderError("Push attempt ladder exhausted", vendor=vendor)


class NullPushSender(PushSender):
  """No-op push sender used when push notifications are disabled or unconfigured."""

  def send(self, notification: PushNotification) -> SendReceipt:
    """Skip delivery while recording a debug log; the receipt is marked disabled, never delivered."""
    logger.debug("Push notifications disabled; skipping push endpoint_present=%s", bool(notification.endpoint))
    return SendReceipt(vendor=classify_endpoint(notification.endpoint), status_code=HTTPStatus.NO_CONTENT, disabled=True)


def _classify_failure(*, vendor: Vendor, status_code: int | None, headers: dict[str, str]) -> NotificationProviderError:
  """Map a final vendor rejection to the error the outcome handler acts on."""
  label = status_code if status_code is not None else "unknown"

  if status_code in {HTTPStatus.GONE, HTTPStatus.NOT_FOUND}:
    reason = InvalidSubscriptionReason.GONE if status_code == HTTPStatus.GONE else InvalidSubscriptionReason.NOT_FOUND
    return InvalidPushSubscriptionError(f"Push subscription is invalid (status={label})", reason=reason, status_code=status_code, headers=headers, vendor=vendor)

  if status_code in {HTTPStatus.UNAUTHORIZED, HTTPStatus.FORBIDDEN}:
    description = headers.get(_WNS_DESCRIPTION_HEADER, "").lower()
    fatal = _match_fatal(description, _FATAL_KEY_DESCRIPTIONS)
    if fatal is None and ("not authorized" in description or "authorization" in description):
      # A server-side configuration problem, not a dead channel.
      return PushAuthorizationError(f"Push service refused authorization (status={label})", status_code=status_code, headers=headers, vendor=vendor)

    fatal = fatal or _match_fatal(description, _FATAL_CHANNEL_DESCRIPTIONS)
    if fatal is not None:
      return InvalidPushSubscriptionError(f"Push subscription rejected: {fatal.value} (status={label})", reason=fatal, status_code=status_code, headers=headers, vendor=vendor)

    return PushAuthorizationError(f"Push service refused authorization (status={label})", status_code=status_code, headers=headers, vendor=vendor)

  if status_code == HTTPStatus.BAD_REQUEST:
    return PushPayloadRejectedError(f"Push payload rejected (status={label})", status_code=status_code, headers=headers, vendor=vendor)

  if status_code is None or status_code >= HTTPStatus.INTERNAL_SERVER_ERROR:
    return TransientPushProviderError(f"Transient push provider failure (status={label})", status_code=status_code, headers=headers, vendor=vendor)

  return NotificationProviderError(f"Push delivery failed (status={label})", status_code=status_code, headers=headers, vendor=vendor)


def _match_fatal(description: str, fragments: tuple[tuple[str, InvalidSubscriptionReason], ...]) -> InvalidSubscriptionReason | None:
  for fragment, reason in fragments:
    if fragment in description:
      return reason
  return None


def _blames_vapid_key(headers: dict[str, str]) -> bool:
  description = headers.get(_WNS_DESCRIPTION_HEADER, "").lower()
  return "public key" in description or "vapid" in description


def _is_dropped(headers: dict[str, str]) -> bool:
  return any(headers.get(name, "").strip().lower() == "dropped" for name in _WNS_STATUS_HEADERS)


def _extract_status_code(exc: WebPushException) -> int | None:
  """Extract an HTTP status code from a pywebpush exception when available."""
  response = getattr(exc, "response", None)
  if response is None:
    return None

  status = getattr(response, "status_code", None)
  if isinstance(status, int):
    return status

  return None


def _extract_headers(exc: WebPushException) -> dict[str, str]:
  return _response_headers(getattr(exc, "response", None))


def _response_headers(response: Any) -> dict[str, str]:
  raw = getattr(response, "headers", None) or {}
  return {str(name).lower(): str(value) for name, value in dict(raw).items()}


def _response_status(response: Any) -> int:
  status = getattr(response, "status_code", None)
  return status if isinstance(status, int) else HTTPStatus.CREATED
