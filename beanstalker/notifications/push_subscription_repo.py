"""Repository helpers for Web Push subscription persistence."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from beanstalker.core.database import get_session_factory
from beanstalker.schema.push_subscriptions import WebPushSubscription


@dataclass(frozen=True)
class PushSubscriptionEntry:
  """A stored browser subscription as the dispatcher sees it."""

  user_id: int
  endpoint: str
  p256dh: str
  auth: str
  user_agent: str | None = None


class PushSubscriptionRepository:
  """Persist and manage push subscriptions in Postgres.

  Without a configured database every read returns nothing and every write is a no-op.
  """

  async def upsert(self, entry: PushSubscriptionEntry) -> None:
    """Insert or update a subscription row keyed by endpoint."""
    session_factory = get_session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await self._upsert_with_session(session=session, entry=entry)

  async def _upsert_with_session(self, *, session: AsyncSession, entry: PushSubscriptionEntry) -> None:
    # Re-subscribing the same browser replaces its keys and may move it to another account.
    stmt = insert(WebPushSubscription).values(user_id=entry.user_id, endpoint=entry.endpoint, p256dh=entry.p256dh, auth=entry.auth, user_agent=entry.user_agent)
    stmt = stmt.on_conflict_do_update(index_elements=["endpoint"], set_={"user_id": entry.user_id, "p256dh": entry.p256dh, "auth": entry.auth, "user_agent": entry.user_agent})
    await session.execute(stmt)
    await session.commit()

  async def list_for_user(self, *, user_id: int) -> list[PushSubscriptionEntry]:
    """List every subscription registered for a user."""
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      stmt = select(WebPushSubscription).where(WebPushSubscription.user_id == user_id).order_by(WebPushSubscription.id)
      rows = (await session.execute(stmt)).scalars().all()
      return [PushSubscriptionEntry(user_id=row.user_id, endpoint=row.endpoint, p256dh=row.p256dh, auth=row.auth, user_agent=row.user_agent) for row in rows]

  async def delete_for_user_endpoint(self, *, user_id: int, endpoint: str) -> None:
    """Delete a subscription owned by the given user."""
    session_factory = get_session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await session.execute(delete(WebPushSubscription).where(WebPushSubscription.user_id == user_id, WebPushSubscription.endpoint == endpoint))
      await session.commit()

  async def delete_by_endpoint(self, *, endpoint: str) -> None:
    """Delete a subscription regardless of owner; used when the vendor reports it dead."""
    session_factory = get_session_factory()
    if session_factory is None:
      return

    async with session_factory() as session:
      await session.execute(delete(WebPushSubscription).where(WebPushSubscription.endpoint == endpoint))
      await session.commit()
