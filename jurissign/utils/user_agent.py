"""
User-agent parsing for the certificate's device evidence line.
"""
from typing import Optional

from jurissign.models import DeviceInfo

UNKNOWN = "unknown"


def _detect_device(ua: str) -> str:
    if "iPhone" in ua:
        return "iPhone"
    if "iPad" in ua:
        return "iPad"
    if "Android" in ua or "Mobile" in ua:
        return "Celular"
    return "Desktop"


def _detect_browser(ua: str) -> str:
    # Edge and Chrome both advertise "Chrome"; Chrome advertises "Safari".
    if "Edg" in ua:
        return "Microsoft Edge"
    if "Chrome" in ua:
        return "Google Chrome"
    if "Firefox" in ua:
        return "Mozilla Firefox"
    if "Safari" in ua:
        return "Safari"
    return UNKNOWN


def _detect_os(ua: str) -> str:
    if "Windows" in ua:
        return "Windows"
    # iOS user agents contain "like Mac OS X"
    if "iPhone" in ua or "iPad" in ua:
        return "iOS"
    if "Mac OS X" in ua:
        return "macOS"
    if "Android" in ua:
        return "Android"
    if "Linux" in ua:
        return "Linux"
    return UNKNOWN


def parse_user_agent(ua: Optional[str]) -> DeviceInfo:
    """Parse a raw user-agent string into {device, browser, os}."""
    if not ua or not ua.strip():
        return DeviceInfo()
    return DeviceInfo(
        device=_detect_device(ua),
        browser=_detect_browser(ua),
        os=_detect_os(ua),
    )


def truncate_user_agent(ua: Optional[str], limit: int = 500) -> Optional[str]:
    """User agents are stored truncated."""
    if not ua:
        return None
    return ua[:limit]
