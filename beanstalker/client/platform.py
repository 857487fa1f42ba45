"""User-agent heuristics that decide between Web Push and the in-app fallback."""

from __future__ import annotations

import re

_IOS_RE = re.compile(r"iPad|iPhone|iPod")


def is_ios(user_agent: str, *, platform: str = "", max_touch_points: int = 0) -> bool:
  """True for iPhone/iPod/iPad, including iPadOS that reports itself as a Mac."""
  if _IOS_RE.search(user_agent):
    return True
  return platform == "MacIntel" and max_touch_points > 1


def is_safari(user_agent: str) -> bool:
  return "Safari" in user_agent and "Chrome" not in user_agent and "CriOS" not in user_agent and "FxiOS" not in user_agent


def should_use_in_app_notifications(user_agent: str, *, push_supported: bool, platform: str = "", max_touch_points: int = 0) -> bool:
  return is_ios(user_agent, platform=platform, max_touch_points=max_touch_points) or not push_supported


def toast_duration_ms(ios: bool) -> int:
  # iOS users tend to miss short toasts.
  return 10_000 if ios else 5_000
