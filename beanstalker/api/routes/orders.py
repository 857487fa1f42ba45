"""Customer order routes; the in-app fallback channel polls ``GET /api/orders``."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status

from beanstalker.api.deps import get_orders_repo
from beanstalker.core.security import get_current_active_user
from beanstalker.notifications.factory import get_notification_service
from beanstalker.notifications.service import NotificationService
from beanstalker.schema.orders import OrderCreateRequest, OrderResponse
from beanstalker.storage.orders_repo import OrdersRepository
from beanstalker.storage.users_repo import UserRecord

router = APIRouter()


@router.get("", response_model=list[OrderResponse])
async def list_my_orders(current_user: UserRecord = Depends(get_current_active_user), orders: OrdersRepository = Depends(get_orders_repo)) -> list[OrderResponse]:  # noqa: B008
  records = await orders.list_for_user(current_user.id)
  return [OrderResponse.from_record(record) for record in records]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_my_order(order_id: int, current_user: UserRecord = Depends(get_current_active_user), orders: OrdersRepository = Depends(get_orders_repo)) -> OrderResponse:  # noqa: B008
  record = await orders.get(order_id)
  # Foreign orders look exactly like missing ones.
  if record is None or record.user_id != current_user.id:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
  return OrderResponse.from_record(record)


@router.post("", response_model=OrderResponse, status_code=status.HTTP_201_CREATED)
async def create_order(
  payload: OrderCreateRequest,
  current_user: UserRecord = Depends(get_current_active_user),  # noqa: B008
  orders: OrdersRepository = Depends(get_orders_repo),  # noqa: B008
  service: NotificationService = Depends(get_notification_service),  # noqa: B008
) -> OrderResponse:
  """Create an order and tell every admin about it in the background."""
  record = await orders.create(user_id=current_user.id, total=payload.total, items=payload.items)
  service.dispatch_new_order_to_admins(order_id=record.id, username=current_user.username, total=record.total)
  return OrderResponse.from_record(record)
