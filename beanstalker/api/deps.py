"""Shared FastAPI dependencies for repositories."""

from __future__ import annotations

from beanstalker.notifications.push_subscription_repo import PushSubscriptionRepository
from beanstalker.storage.orders_repo import OrdersRepository


def get_push_subscription_repo() -> PushSubscriptionRepository:
  return PushSubscriptionRepository()


def get_orders_repo() -> OrdersRepository:
  return OrdersRepository()
