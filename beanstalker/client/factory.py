"""Factory helpers for the browser-side notification components."""

from __future__ import annotations

from collections.abc import Awaitable, Callable

import httpx

from beanstalker.client.fallback import InAppFallbackChannel, OrdersSource, SeenLog, Toast
from beanstalker.client.subscribe import PushManager, PushSubscriptionFlow
from beanstalker.config import Settings


def build_fallback_channel(
  settings: Settings,
  *,
  orders: OrdersSource,
  show_toast: Callable[[Toast], None],
  seen_log: SeenLog,
  user_id: int,
  ios: bool = False,
  play_sound: Callable[[], Awaitable[None]] | None = None,
) -> InAppFallbackChannel:
  """Construct the in-app fallback channel polling at the configured interval."""
  return InAppFallbackChannel(orders=orders, show_toast=show_toast, seen_log=seen_log, user_id=user_id, interval_seconds=settings.in_app_poll_interval_seconds, ios=ios, play_sound=play_sound)


def build_subscription_flow(settings: Settings, *, push_manager: PushManager, http: httpx.AsyncClient) -> PushSubscriptionFlow:
  return PushSubscriptionFlow(push_manager=push_manager, http=http, timeout_seconds=settings.subscribe_timeout_seconds)
