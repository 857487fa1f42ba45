from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from starlette.concurrency import run_in_threadpool

from beanstalker.core.firebase import verify_id_token
from beanstalker.storage.users_repo import UserRecord, UsersRepository

security_scheme = HTTPBearer()


def get_users_repository() -> UsersRepository:
  return UsersRepository()


async def get_current_user(token: Annotated[HTTPAuthorizationCredentials, Depends(security_scheme)], users: UsersRepository = Depends(get_users_repository)) -> UserRecord:  # noqa: B008
  """Verify the Firebase ID token and resolve the matching user row."""
  decoded_claims = await run_in_threadpool(verify_id_token, token.credentials)
  if not decoded_claims:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authentication credentials", headers={"WWW-Authenticate": "Bearer"})

  firebase_uid = decoded_claims.get("uid")
  if not firebase_uid:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token claims")

  user = await users.get_by_firebase_uid(firebase_uid)
  if user is None:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")

  return user


async def get_current_active_user(current_user: UserRecord = Depends(get_current_user)) -> UserRecord:  # noqa: B008
  if not current_user.is_active:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user")

  return current_user


async def get_current_admin_user(current_user: UserRecord = Depends(get_current_active_user)) -> UserRecord:  # noqa: B008
  """Require the admin flag for staff routes."""
  if not current_user.is_admin:
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not enough permissions")

  return current_user
