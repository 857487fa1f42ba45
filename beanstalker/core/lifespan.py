import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from beanstalker.config import get_settings
from beanstalker.core.database import get_db_engine
from beanstalker.core.firebase import initialize_firebase
from beanstalker.core.logging import initialize_logging
from beanstalker.notifications.factory import get_notification_service


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
  """Initialize logging, Firebase and the notification service around the app's lifetime."""
  settings = get_settings()
  logger = logging.getLogger("beanstalker.core.lifespan")

  initialize_logging(settings)
  initialize_firebase()

  service = get_notification_service()
  if service.push_enabled:
    logger.info("Web push enabled ttl=%ss timeout=%ss", settings.push_ttl_seconds, settings.push_timeout_seconds)
  else:
    logger.warning("Web push disabled or VAPID keys missing; push notifications will be skipped.")

  if settings.pg_dsn is None:
    logger.warning("BEANSTALKER_PG_DSN is not set; subscriptions and orders are unavailable.")

  yield

  engine = get_db_engine()
  if engine is not None:
    await engine.dispose()
