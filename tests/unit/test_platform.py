from __future__ import annotations

from beanstalker.client.platform import is_ios, is_safari, should_use_in_app_notifications, toast_duration_ms

_IPHONE = "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1"
_CHROME_WINDOWS = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"


def test_ios_detection_includes_ipados_desktop_mode():
  assert is_ios(_IPHONE)
  assert is_ios("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)", platform="MacIntel", max_touch_points=5)
  assert not is_ios("Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7)", platform="MacIntel", max_touch_points=0)


def test_safari_detection_excludes_chrome():
  assert is_safari(_IPHONE)
  assert not is_safari(_CHROME_WINDOWS)


def test_in_app_channel_for_ios_or_missing_push():
  assert should_use_in_app_notifications(_IPHONE, push_supported=True)
  assert should_use_in_app_notifications(_CHROME_WINDOWS, push_supported=False)
  assert not should_use_in_app_notifications(_CHROME_WINDOWS, push_supported=True)


def test_toast_duration():
  assert toast_duration_ms(True) == 10_000
  assert toast_duration_ms(False) == 5_000
