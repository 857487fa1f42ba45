"""In-app notification fallback for browsers without usable Web Push.

The channel polls the caller's orders and turns status changes into local toasts.
Duplicate suppression uses a single append-only log of ``(orderId, status,
updatedAt)`` entries: an order is announced when its status differs from the last
poll, or when its ``(orderId, updatedAt)`` pair has never been logged. The first
poll after enabling only records a baseline.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import httpx

from beanstalker.client.platform import toast_duration_ms
from beanstalker.notifications.payloads import describe_order_status

logger = logging.getLogger(__name__)


class FallbackPhase(str, Enum):
  UNINITIALIZED = "uninitialized"
  FIRST_LOAD = "first-load"
  POLLING = "polling"


@dataclass(frozen=True)
class OrderSnapshot:
  id: int
  status: str
  user_id: int | None
  created_at: str | None
  updated_at: str | None

  @property
  def update_key(self) -> str:
    return self.updated_at or self.created_at or ""

  @classmethod
  def from_api(cls, raw: dict[str, Any]) -> OrderSnapshot:
    user_id = raw.get("userId")
    return cls(id=int(raw["id"]), status=str(raw["status"]), user_id=int(user_id) if user_id is not None else None, created_at=raw.get("createdAt"), updated_at=raw.get("updatedAt"))


@dataclass(frozen=True)
class Toast:
  title: str
  description: str
  duration_ms: int
  variant: str = "default"


class OrdersSource(Protocol):
  async def fetch_orders(self) -> list[OrderSnapshot]: ...


class HttpOrdersSource:
  """Reads ``GET /api/orders`` with the caller's bearer token."""

  def __init__(self, client: httpx.AsyncClient, *, path: str = "/api/orders") -> None:
    self._client = client
    self._path = path

  async def fetch_orders(self) -> list[OrderSnapshot]:
    response = await self._client.get(self._path)
    response.raise_for_status()
    return [OrderSnapshot.from_api(item) for item in response.json()]


class SeenLog(Protocol):
  def contains(self, order_id: int, update_key: str) -> bool: ...

  def append(self, order_id: int, status: str, update_key: str) -> None: ...

  @property
  def last_seen_update(self) -> str | None: ...


class MemorySeenLog:
  def __init__(self) -> None:
    self._pairs: set[tuple[int, str]] = set()
    self.entries: list[tuple[int, str, str]] = []

  def contains(self, order_id: int, update_key: str) -> bool:
    return (order_id, update_key) in self._pairs

  def append(self, order_id: int, status: str, update_key: str) -> None:
    if (order_id, update_key) in self._pairs:
      return
    self._pairs.add((order_id, update_key))
    self.entries.append((order_id, status, update_key))

  @property
  def last_seen_update(self) -> str | None:
    return max((key for _, _, key in self.entries), default=None)


class JsonLinesSeenLog(MemorySeenLog):
  """Seen log persisted as JSON lines so suppression survives reloads."""

  def __init__(self, path: Path) -> None:
    super().__init__()
    self._path = path
    if path.is_file():
      for line in path.read_text(encoding="utf-8").splitlines():
        if not line.strip():
          continue
        try:
          record = json.loads(line)
          super().append(int(record["orderId"]), str(record["status"]), str(record["updatedAt"]))
        except (json.JSONDecodeError, KeyError, TypeError, ValueError):
          logger.warning("Skipping malformed seen-log line in %s", path)

  def append(self, order_id: int, status: str, update_key: str) -> None:
    if self.contains(order_id, update_key):
      return
    super().append(order_id, status, update_key)
    self._path.parent.mkdir(parents=True, exist_ok=True)
    with self._path.open("a", encoding="utf-8") as handle:
      handle.write(json.dumps({"orderId": order_id, "status": status, "updatedAt": update_key}) + "\n")


class InAppFallbackChannel:
  """Polls orders on a fixed interval and raises at most one toast per poll."""

  def __init__(
    self,
    *,
    orders: OrdersSource,
    show_toast: Callable[[Toast], None],
    seen_log: SeenLog,
    user_id: int,
    interval_seconds: float = 5.0,
    ios: bool = False,
    play_sound: Callable[[], Awaitable[None]] | None = None,
  ) -> None:
    self._orders = orders
    self._show_toast = show_toast
    self._seen_log = seen_log
    self._user_id = user_id
    self._interval_seconds = interval_seconds
    self._ios = ios
    self._play_sound = play_sound
    self._phase = FallbackPhase.UNINITIALIZED
    self._snapshot: dict[int, str] = {}
    self._task: asyncio.Task[None] | None = None
    self._retired: set[asyncio.Task[None]] = set()
    self._stop = asyncio.Event()
    self._generation = 0
    self.last_checked: datetime | None = None

  @property
  def phase(self) -> FallbackPhase:
    return self._phase

  @property
  def snapshot(self) -> dict[int, str]:
    return dict(self._snapshot)

  @property
  def enabled(self) -> bool:
    return self._phase is not FallbackPhase.UNINITIALIZED

  def enable(self, *, schedule: bool = True) -> None:
    """Arm the channel; the next poll captures a baseline without notifying.

    With ``schedule=False`` no timer is started and the caller drives :meth:`poll_once`.
    """
    if self.enabled:
      return
    # Polls started before this call belong to an earlier session and are discarded.
    self._generation += 1
    self._phase = FallbackPhase.FIRST_LOAD
    self._snapshot = {}
    self._stop = asyncio.Event()
    if self._task is not None and not self._task.done():
      self._retired.add(self._task)
      self._task.add_done_callback(self._retired.discard)
    self._task = None
    if schedule:
      self._task = asyncio.create_task(self._run(self._stop))

  def disable(self) -> None:
    """Stop scheduling polls; a poll already in flight is allowed to finish."""
    self._phase = FallbackPhase.UNINITIALIZED
    self._stop.set()

  async def aclose(self) -> None:
    self.disable()
    pending = [task for task in (self._task, *self._retired) if task is not None]
    self._task = None
    if pending:
      await asyncio.gather(*pending)

  async def poll_once(self) -> Toast | None:
    """Run one poll cycle; errors are logged and treated as an empty cycle."""
    generation = self._generation
    try:
      orders = await self._orders.fetch_orders()
    except Exception as exc:  # noqa: BLE001
      logger.warning("Order poll failed; skipping this cycle: %s", exc)
      return None
    finally:
      self.last_checked = datetime.now(UTC)

    if self._phase is FallbackPhase.UNINITIALIZED or generation != self._generation:
      logger.debug("Discarding poll result from a previous fallback session")
      return None

    mine = _newest_first(order for order in orders if order.user_id in (None, self._user_id))

    if self._phase is FallbackPhase.FIRST_LOAD:
      for order in mine:
        self._seen_log.append(order.id, order.status, order.update_key)
      self._snapshot = {order.id: order.status for order in mine}
      self._phase = FallbackPhase.POLLING
      logger.debug("Fallback baseline captured orders=%d", len(mine))
      return None

    toast = None
    for order in mine:
      if self._should_notify(order):
        toast = self._toast_for(order)
        self._show_toast(toast)
        await self._play_sound_best_effort()
        self._seen_log.append(order.id, order.status, order.update_key)
        break

    self._snapshot = {order.id: order.status for order in mine}
    return toast

  def _should_notify(self, order: OrderSnapshot) -> bool:
    previous = self._snapshot.get(order.id)
    status_changed = previous is not None and previous != order.status
    return status_changed or not self._seen_log.contains(order.id, order.update_key)

  def _toast_for(self, order: OrderSnapshot) -> Toast:
    return Toast(title=f"☕ Order #{order.id} Update", description=describe_order_status(order.id, order.status), duration_ms=toast_duration_ms(self._ios), variant="destructive" if self._ios else "default")

  async def _play_sound_best_effort(self) -> None:
    if self._play_sound is None or not self._ios:
      return
    try:
      await self._play_sound()
    except Exception as exc:  # noqa: BLE001
      logger.debug("Fallback notification sound failed: %s", exc)

  async def _run(self, stop: asyncio.Event) -> None:
    while not stop.is_set():
      await self.poll_once()
      try:
        await asyncio.wait_for(stop.wait(), timeout=self._interval_seconds)
      except TimeoutError:
        continue


def _newest_first(orders: Iterable[OrderSnapshot]) -> list[OrderSnapshot]:
  return sorted(orders, key=lambda order: order.update_key, reverse=True)


class FallbackPreference:
  """Remembers whether the user turned the in-app channel on; iOS always has it on."""

  def __init__(self, path: Path) -> None:
    self._path = path

  def load(self, *, ios: bool) -> bool:
    if ios:
      return True
    try:
      return bool(json.loads(self._path.read_text(encoding="utf-8")).get("enabled", False))
    except FileNotFoundError:
      return False
    except (json.JSONDecodeError, AttributeError, OSError) as exc:
      logger.warning("Ignoring unreadable fallback preference at %s: %s", self._path, exc)
      return False

  def save(self, enabled: bool) -> None:
    self._path.parent.mkdir(parents=True, exist_ok=True)
    self._path.write_text(json.dumps({"enabled": enabled}), encoding="utf-8")
