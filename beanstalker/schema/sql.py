from __future__ import annotations

import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from beanstalker.core.database import Base
from beanstalker.schema.push_subscriptions import WebPushSubscription  # noqa: F401


class OrderStatus(str, Enum):
  PENDING = "pending"
  PROCESSING = "processing"
  COMPLETED = "completed"
  CANCELLED = "cancelled"


class User(Base):
  __tablename__ = "users"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  firebase_uid: Mapped[str] = mapped_column(String, unique=True, index=True, nullable=False)
  username: Mapped[str] = mapped_column(String, unique=True, nullable=False)
  email: Mapped[str | None] = mapped_column(String, nullable=True)
  full_name: Mapped[str | None] = mapped_column(String, nullable=True)
  is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
  is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class Order(Base):
  __tablename__ = "orders"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), index=True, nullable=False)
  # Stored as text so unknown statuses from external systems survive round trips.
  status: Mapped[str] = mapped_column(Text, nullable=False, default=OrderStatus.PROCESSING.value)
  total: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
  items: Mapped[list[dict[str, Any]]] = mapped_column(JSONB, nullable=False, default=list)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
  updated_at: Mapped[datetime.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True, onupdate=func.now())
