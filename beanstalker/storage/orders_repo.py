"""Postgres-backed order access used by the order routes and notifications."""

from __future__ import annotations

import datetime
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from beanstalker.core.database import get_session_factory
from beanstalker.schema.sql import Order, OrderStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderRecord:
  id: int
  user_id: int
  status: str
  total: Decimal
  items: list[dict[str, Any]]
  created_at: datetime.datetime
  updated_at: datetime.datetime | None


@dataclass(frozen=True)
class StatusChange:
  """Result of a status update; ``previous_status`` is what was stored before."""

  order: OrderRecord
  previous_status: str

  @property
  def changed(self) -> bool:
    return self.previous_status != self.order.status


def _to_record(row: Order) -> OrderRecord:
  return OrderRecord(id=row.id, user_id=row.user_id, status=row.status, total=row.total, items=list(row.items or []), created_at=row.created_at, updated_at=row.updated_at)


class OrdersRepository:
  """Persist orders in Postgres using SQLAlchemy."""

  def _require_session_factory(self):
    session_factory = get_session_factory()
    if session_factory is None:
      raise RuntimeError("Database connection is not configured (BEANSTALKER_PG_DSN is missing).")
    return session_factory

  async def list_for_user(self, user_id: int) -> list[OrderRecord]:
    """Return a user's orders, most recently touched first."""
    async with self._require_session_factory()() as session:
      stmt = select(Order).where(Order.user_id == user_id).order_by(Order.updated_at.desc().nulls_last(), Order.created_at.desc())
      rows = (await session.execute(stmt)).scalars().all()
      return [_to_record(row) for row in rows]

  async def get(self, order_id: int) -> OrderRecord | None:
    async with self._require_session_factory()() as session:
      row = await session.get(Order, order_id)
      return _to_record(row) if row else None

  async def create(self, *, user_id: int, total: Decimal, items: list[dict[str, Any]]) -> OrderRecord:
    async with self._require_session_factory()() as session:
      order = Order(user_id=user_id, total=total, items=items, status=OrderStatus.PROCESSING.value)
      session.add(order)
      await session.commit()
      await session.refresh(order)
      logger.info("Order created order_id=%s user_id=%s", order.id, user_id)
      return _to_record(order)

  async def update_status(self, order_id: int, status: str) -> StatusChange | None:
    """Set an order's status; returns ``None`` when the order does not exist."""
    async with self._require_session_factory()() as session:
      order = await session.get(Order, order_id, with_for_update=True)
      if order is None:
        return None

      previous_status = order.status
      if previous_status != status:
        order.status = status
        await session.commit()
        await session.refresh(order)
        logger.info("Order status updated order_id=%s from=%s to=%s", order_id, previous_status, status)
      return StatusChange(order=_to_record(order), previous_status=previous_status)
