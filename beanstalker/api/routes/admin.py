"""Staff routes: order status management and push diagnostics."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from beanstalker.api.deps import get_orders_repo, get_push_subscription_repo
from beanstalker.config import get_settings
from beanstalker.core.security import get_current_admin_user
from beanstalker.notifications.factory import get_notification_service
from beanstalker.notifications.push_subscription_repo import PushSubscriptionRepository
from beanstalker.notifications.service import NotificationService
from beanstalker.notifications.vendors import classify_endpoint
from beanstalker.schema.orders import OrderResponse, OrderStatusUpdateRequest
from beanstalker.schema.sql import OrderStatus
from beanstalker.storage.orders_repo import OrdersRepository
from beanstalker.storage.users_repo import UserRecord
from beanstalker.utils.redaction import truncate_endpoint

logger = logging.getLogger(__name__)

router = APIRouter()

_VALID_STATUSES = {item.value for item in OrderStatus}


@router.patch("/orders/{order_id}", response_model=OrderResponse)
async def update_order_status(
  order_id: int,
  payload: OrderStatusUpdateRequest,
  current_user: UserRecord = Depends(get_current_admin_user),  # noqa: B008
  orders: OrdersRepository = Depends(get_orders_repo),  # noqa: B008
  service: NotificationService = Depends(get_notification_service),  # noqa: B008
) -> OrderResponse:
  """Persist a status transition and notify the order's owner when it changed."""
  new_status = payload.status.strip().lower()
  if new_status not in _VALID_STATUSES:
    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid status. Expected one of: {', '.join(sorted(_VALID_STATUSES))}")

  change = await orders.update_status(order_id, new_status)
  if change is None:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")

  if change.changed:
    # Delivery runs in the background; a failed push never fails the update.
    service.dispatch_order_status_notification(user_id=change.order.user_id, order_id=change.order.id, status=change.order.status)
    logger.info("Order status notification scheduled order_id=%s status=%s admin_id=%s", order_id, new_status, current_user.id)

  return OrderResponse.from_record(change.order)


@router.post("/test-notification")
async def send_admin_test_notification(
  current_user: UserRecord = Depends(get_current_admin_user),  # noqa: B008
  repo: PushSubscriptionRepository = Depends(get_push_subscription_repo),  # noqa: B008
  service: NotificationService = Depends(get_notification_service),  # noqa: B008
) -> dict:
  subscriptions = await repo.list_for_user(user_id=current_user.id)
  if not subscriptions:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail={"message": "No push subscriptions found for this account", "hint": "Enable notifications in this browser, then try again."})

  dispatch = await service.send_test_notification(user_id=current_user.id, url="/admin", subscriptions=subscriptions)
  results = [
    {
      "endpoint": truncate_endpoint(outcome.endpoint),
      "vendor": outcome.vendor.value,
      "status": outcome.status.value,
      "statusCode": outcome.status_code,
      "reason": outcome.reason,
      "subscriptionDeleted": outcome.subscription_deleted,
    }
    for outcome in dispatch.outcomes
  ]
  return {"success": dispatch.delivered > 0, "testId": dispatch.test_id, "timestamp": dispatch.timestamp.isoformat(), "succeeded": dispatch.delivered, "failed": dispatch.failed, "results": results}


@router.get("/push-subscription-debug")
async def push_subscription_debug(current_user: UserRecord = Depends(get_current_admin_user), repo: PushSubscriptionRepository = Depends(get_push_subscription_repo)) -> dict:  # noqa: B008
  """Describe the caller's subscriptions and the public VAPID configuration."""
  settings = get_settings()
  subscriptions = await repo.list_for_user(user_id=current_user.id)
  return {
    "userId": current_user.id,
    "vapid": {"configured": bool(settings.push_notifications_enabled and settings.push_vapid_private_key), "publicKey": settings.push_vapid_public_key, "contact": settings.push_vapid_sub},
    "subscriptionCount": len(subscriptions),
    "subscriptions": [
      {"endpoint": truncate_endpoint(item.endpoint), "vendor": classify_endpoint(item.endpoint).value, "p256dhLength": len(item.p256dh), "authLength": len(item.auth), "userAgent": item.user_agent} for item in subscriptions
    ],
  }
