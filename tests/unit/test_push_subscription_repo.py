from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from sqlalchemy.dialects import postgresql

from beanstalker.notifications.push_subscription_repo import PushSubscriptionEntry, PushSubscriptionRepository

_ENDPOINT = "https://fcm.googleapis.com/fcm/send/abc"


class _Session:
  def __init__(self) -> None:
    self.execute = AsyncMock()
    self.commit = AsyncMock()

  async def __aenter__(self) -> _Session:
    return self

  async def __aexit__(self, *exc_info) -> None:
    return None


@pytest.fixture
def session(monkeypatch) -> _Session:
  fake = _Session()
  monkeypatch.setattr("beanstalker.notifications.push_subscription_repo.get_session_factory", lambda: lambda: fake)
  return fake


def _sql(session: _Session) -> str:
  statement = session.execute.await_args.args[0]
  return str(statement.compile(dialect=postgresql.dialect()))


@pytest.mark.anyio
async def test_repository_is_a_no_op_without_a_database():
  repo = PushSubscriptionRepository()

  assert await repo.list_for_user(user_id=7) == []
  await repo.upsert(PushSubscriptionEntry(user_id=7, endpoint=_ENDPOINT, p256dh="p", auth="a"))
  await repo.delete_by_endpoint(endpoint=_ENDPOINT)


@pytest.mark.anyio
async def test_upsert_replaces_keys_and_owner_on_endpoint_conflict(session):
  await PushSubscriptionRepository().upsert(PushSubscriptionEntry(user_id=7, endpoint=_ENDPOINT, p256dh="p", auth="a", user_agent="ua"))

  sql = _sql(session)
  assert "ON CONFLICT (endpoint) DO UPDATE" in sql
  assert "user_id = " in sql
  session.commit.assert_awaited_once()


@pytest.mark.anyio
async def test_delete_by_endpoint_ignores_owner(session):
  await PushSubscriptionRepository().delete_by_endpoint(endpoint=_ENDPOINT)

  sql = _sql(session)
  assert sql.startswith("DELETE FROM web_push_subscriptions")
  assert "user_id" not in sql


@pytest.mark.anyio
async def test_user_unsubscribe_is_scoped_to_owner(session):
  await PushSubscriptionRepository().delete_for_user_endpoint(user_id=7, endpoint=_ENDPOINT)

  sql = _sql(session)
  assert "web_push_subscriptions.user_id = " in sql
  assert "web_push_subscriptions.endpoint = " in sql
