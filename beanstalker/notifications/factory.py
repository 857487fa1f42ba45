"""Factory helpers for notification services."""

from __future__ import annotations

from functools import lru_cache

from beanstalker.config import Settings, get_settings
from beanstalker.notifications.contracts import PushSender
from beanstalker.notifications.push_sender import NullPushSender, VapidConfig, WebPushSender
from beanstalker.notifications.push_subscription_repo import PushSubscriptionRepository
from beanstalker.notifications.service import NotificationService
from beanstalker.storage.users_repo import UsersRepository


def build_vapid_config(settings: Settings) -> VapidConfig | None:
  """Return the VAPID material when push is enabled and fully configured."""
  if not settings.push_notifications_enabled:
    return None
  if not (settings.push_vapid_public_key and settings.push_vapid_private_key and settings.push_vapid_sub):
    return None
  return VapidConfig(public_key=settings.push_vapid_public_key, private_key=settings.push_vapid_private_key, sub=settings.push_vapid_sub)


def build_notification_service(settings: Settings) -> NotificationService:
  """Construct a notification service based on environment configuration."""
  vapid_config = build_vapid_config(settings)
  if vapid_config is not None:
    push_sender: PushSender = WebPushSender(vapid_config=vapid_config, ttl_seconds=settings.push_ttl_seconds, timeout_seconds=settings.push_timeout_seconds)
  else:
    push_sender = NullPushSender()

  return NotificationService(push_sender=push_sender, push_subscription_repo=PushSubscriptionRepository(), users_repo=UsersRepository(), push_enabled=vapid_config is not None)


@lru_cache(maxsize=1)
def get_notification_service() -> NotificationService:
  """FastAPI dependency returning the process-wide notification service."""
  return build_notification_service(get_settings())
