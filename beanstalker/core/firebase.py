"""Firebase Admin bootstrap and ID token verification for the customer app."""

from __future__ import annotations

import logging
from typing import Any

import firebase_admin
from firebase_admin import auth, credentials

from beanstalker.config import get_settings

logger = logging.getLogger(__name__)


def initialize_firebase() -> bool:
  """Initialize the default Firebase app once; returns whether an app is available."""
  if firebase_admin._apps:
    return True

  settings = get_settings()
  if not settings.firebase_project_id:
    logger.warning("FIREBASE_PROJECT_ID is not set; bearer tokens cannot be verified.")
    return False

  options = {"projectId": settings.firebase_project_id}
  try:
    if settings.firebase_service_account_json_path:
      firebase_admin.initialize_app(credentials.Certificate(settings.firebase_service_account_json_path), options)
    else:
      firebase_admin.initialize_app(options=options)
  except (ValueError, OSError) as exc:
    logger.error("Firebase Admin SDK initialization failed project=%s error=%s", settings.firebase_project_id, exc)
    return False

  logger.info("Firebase Admin SDK initialized project=%s", settings.firebase_project_id)
  return True


def verify_id_token(id_token: str) -> dict[str, Any] | None:
  """Return the decoded claims, or ``None`` when the token cannot be trusted."""
  if not firebase_admin._apps and not initialize_firebase():
    return None

  try:
    return auth.verify_id_token(id_token)
  except auth.ExpiredIdTokenError:
    logger.info("Rejected expired Firebase ID token")
    return None
  except (auth.InvalidIdTokenError, auth.CertificateFetchError, ValueError) as exc:
    logger.warning("Rejected Firebase ID token: %s", exc)
    return None
