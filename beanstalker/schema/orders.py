"""API models for order payloads consumed by the PWA and the in-app fallback poller."""

from __future__ import annotations

import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from beanstalker.storage.orders_repo import OrderRecord


def _to_camel(string: str) -> str:
  """Convert snake_case to camelCase so responses match the frontend's field names."""
  parts = string.split("_")
  return parts[0] + "".join(part[:1].upper() + part[1:] for part in parts[1:])


class OrderResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True, alias_generator=_to_camel)

  id: int
  user_id: int
  status: str
  total: float
  items: list[dict[str, Any]] = Field(default_factory=list)
  created_at: datetime.datetime
  updated_at: datetime.datetime | None = None

  @classmethod
  def from_record(cls, record: OrderRecord) -> OrderResponse:
    return cls(id=record.id, user_id=record.user_id, status=record.status, total=float(record.total), items=record.items, created_at=record.created_at, updated_at=record.updated_at)


class OrderCreateRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  total: Decimal = Field(gt=0, max_digits=10, decimal_places=2)
  items: list[dict[str, Any]] = Field(default_factory=list, max_length=100)


class OrderStatusUpdateRequest(BaseModel):
  model_config = ConfigDict(extra="forbid")

  # Checked against OrderStatus in the route so unknown values return 400.
  status: str = Field(min_length=1, max_length=32)
