"""Identifier utilities."""

from __future__ import annotations

import secrets
import string
import threading
import time

_stamp_lock = threading.Lock()
_last_stamp = 0


def unique_timestamp_ms() -> int:
  """Return the current epoch milliseconds, bumped so no two calls share a value."""
  global _last_stamp
  with _stamp_lock:
    stamp = time.time_ns() // 1_000_000
    if stamp <= _last_stamp:
      stamp = _last_stamp + 1
    _last_stamp = stamp
    return stamp


def generate_test_id(size: int = 8) -> str:
  """Return a short random id used to correlate test notifications."""
  alphabet = string.ascii_lowercase + string.digits
  return "".join(secrets.choice(alphabet) for _ in range(size))
