"""Routes for Web Push subscription lifecycle management."""

from __future__ import annotations

import logging
import re
import urllib.parse

from fastapi import APIRouter, Depends, Header, HTTPException, Response, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

from beanstalker.api.deps import get_push_subscription_repo
from beanstalker.config import get_settings
from beanstalker.core.security import get_current_active_user
from beanstalker.notifications.factory import get_notification_service
from beanstalker.notifications.push_subscription_repo import PushSubscriptionEntry, PushSubscriptionRepository
from beanstalker.notifications.service import NotificationService
from beanstalker.storage.users_repo import UserRecord
from beanstalker.utils.redaction import truncate_endpoint

logger = logging.getLogger(__name__)

_ALLOWED_PUSH_HOSTS = {"fcm.googleapis.com", "updates.push.services.mozilla.com", "push.services.mozilla.com", "web.push.apple.com"}
# Windows and Apple hand out regional hosts (e.g. wns2-par02p.notify.windows.com).
_ALLOWED_PUSH_HOST_SUFFIXES = (".notify.windows.com", ".push.apple.com")
_BASE64_RE = re.compile(r"^[A-Za-z0-9_-]+={0,2}$")

router = APIRouter()


def _validate_endpoint(value: str) -> str:
  normalized = value.strip()
  parsed = urllib.parse.urlparse(normalized)

  if parsed.scheme.lower() != "https":
    raise PydanticCustomError("push_endpoint_https", "endpoint must use https.")

  host = (parsed.hostname or "").lower()
  if host not in _ALLOWED_PUSH_HOSTS and not host.endswith(_ALLOWED_PUSH_HOST_SUFFIXES):
    raise PydanticCustomError("push_endpoint_host", "endpoint host is not allowed.")

  return normalized


class PushSubscriptionKeys(BaseModel):
  """Browser-provided key material for Web Push encryption."""

  p256dh: str = Field(min_length=40, max_length=512)
  auth: str = Field(min_length=16, max_length=256)
  model_config = ConfigDict(extra="forbid")

  @field_validator("p256dh", "auth")
  @classmethod
  def validate_base64url(cls, value: str) -> str:
    normalized = value.strip()
    if not _BASE64_RE.fullmatch(normalized):
      raise PydanticCustomError("push_key_format", "push keys must be base64url encoded.")
    return normalized


class PushSubscribeRequest(BaseModel):
  """Standard browser ``PushSubscription.toJSON()`` payload."""

  endpoint: str = Field(min_length=1, max_length=2048)
  expiration_time: int | None = Field(default=None, alias="expirationTime")
  keys: PushSubscriptionKeys
  model_config = ConfigDict(extra="forbid", populate_by_name=True)

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_endpoint(value)


class PushUnsubscribeRequest(BaseModel):
  endpoint: str = Field(min_length=1, max_length=2048)
  model_config = ConfigDict(extra="forbid")

  @field_validator("endpoint")
  @classmethod
  def validate_endpoint(cls, value: str) -> str:
    return _validate_endpoint(value)


@router.get("/vapid-key")
async def get_vapid_public_key() -> dict[str, str]:
  """Expose the VAPID public key browsers need to subscribe."""
  public_key = get_settings().push_vapid_public_key
  if not public_key:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Push notifications are not configured")
  return {"publicKey": public_key}


@router.post("/subscribe", status_code=status.HTTP_204_NO_CONTENT)
async def subscribe_to_push(
  payload: PushSubscribeRequest,
  current_user: UserRecord = Depends(get_current_active_user),  # noqa: B008
  repo: PushSubscriptionRepository = Depends(get_push_subscription_repo),  # noqa: B008
  user_agent: str | None = Header(default=None),
) -> Response:
  """Upsert the authenticated user's browser push subscription."""
  normalized_user_agent = None
  if user_agent:
    # Clamp user agent size to limit storage abuse while keeping device context.
    normalized_user_agent = user_agent.strip()[:512] or None

  try:
    await repo.upsert(PushSubscriptionEntry(user_id=current_user.id, endpoint=payload.endpoint, p256dh=payload.keys.p256dh, auth=payload.keys.auth, user_agent=normalized_user_agent))
  except Exception as exc:  # noqa: BLE001
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to save push subscription") from exc

  logger.info("Push subscription saved user_id=%s endpoint=%s", current_user.id, truncate_endpoint(payload.endpoint))
  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.delete("/unsubscribe", status_code=status.HTTP_204_NO_CONTENT)
async def unsubscribe_from_push(
  payload: PushUnsubscribeRequest,
  current_user: UserRecord = Depends(get_current_active_user),  # noqa: B008
  repo: PushSubscriptionRepository = Depends(get_push_subscription_repo),  # noqa: B008
) -> Response:
  """Delete a push subscription owned by the authenticated user (idempotent)."""
  try:
    await repo.delete_for_user_endpoint(user_id=current_user.id, endpoint=payload.endpoint)
  except Exception as exc:  # noqa: BLE001
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete push subscription") from exc

  return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/test")
async def send_test_push(current_user: UserRecord = Depends(get_current_active_user), service: NotificationService = Depends(get_notification_service)) -> dict:  # noqa: B008
  """Send a test notification to every browser the caller has subscribed."""
  dispatch = await service.send_test_notification(user_id=current_user.id, url="/profile")
  details = {"timestamp": dispatch.timestamp.isoformat(), "testId": dispatch.test_id, "subscriptionCount": len(dispatch.outcomes), "delivered": dispatch.delivered, "failed": dispatch.failed}
  return {"success": True, "message": "Test notification sent", "details": details}
