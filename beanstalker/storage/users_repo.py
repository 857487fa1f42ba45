"""Read access to application users."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select

from beanstalker.core.database import get_session_factory
from beanstalker.schema.sql import User


@dataclass(frozen=True)
class UserRecord:
  id: int
  firebase_uid: str
  username: str
  email: str | None
  full_name: str | None
  is_admin: bool
  is_active: bool


def _to_record(row: User) -> UserRecord:
  return UserRecord(id=row.id, firebase_uid=row.firebase_uid, username=row.username, email=row.email, full_name=row.full_name, is_admin=bool(row.is_admin), is_active=bool(row.is_active))


class UsersRepository:
  """Look up users by Firebase uid or role."""

  async def get_by_firebase_uid(self, firebase_uid: str) -> UserRecord | None:
    session_factory = get_session_factory()
    if session_factory is None:
      return None

    async with session_factory() as session:
      row = (await session.execute(select(User).where(User.firebase_uid == firebase_uid))).scalar_one_or_none()
      return _to_record(row) if row else None

  async def list_admins(self) -> list[UserRecord]:
    """Return active admins; these receive "new order" broadcasts."""
    session_factory = get_session_factory()
    if session_factory is None:
      return []

    async with session_factory() as session:
      stmt = select(User).where(User.is_admin.is_(True), User.is_active.is_(True)).order_by(User.id)
      rows = (await session.execute(stmt)).scalars().all()
      return [_to_record(row) for row in rows]
