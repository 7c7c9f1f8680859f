"""User agent classification."""

from dataclasses import dataclass
from typing import Dict


@dataclass(frozen=True)
class DeviceInfo:
    """Device snapshot taken once at session start."""

    user_agent: str = ""
    device_type: str = "desktop"  # mobile, tablet, desktop
    browser: str = "unknown"
    os: str = "unknown"

    @property
    def is_mobile(self) -> bool:
        return self.device_type == "mobile"

    def to_dict(self) -> Dict:
        return {
            "user_agent": self.user_agent,
            "device_type": self.device_type,
            "browser": self.browser,
            "os": self.os,
            "is_mobile": self.is_mobile,
        }


def parse_user_agent(user_agent: str) -> DeviceInfo:
    """Classify device type, browser and OS from a user agent string."""
    if not user_agent:
        return DeviceInfo()

    ua = user_agent

    # Tablets first; iPad and Android tablets also carry mobile markers
    if 'iPad' in ua or 'Tablet' in ua:
        device_type = 'tablet'
    elif 'Mobile' in ua or 'Android' in ua or 'iPhone' in ua:
        device_type = 'mobile'
    else:
        device_type = 'desktop'

    # Edge and Chrome both advertise Safari; check the most specific token first
    if 'Edg' in ua:
        browser = 'Edge'
    elif 'Firefox' in ua:
        browser = 'Firefox'
    elif 'Chrome' in ua or 'CriOS' in ua:
        browser = 'Chrome'
    elif 'Safari' in ua:
        browser = 'Safari'
    else:
        browser = 'unknown'

    if 'Windows' in ua:
        os = 'Windows'
    elif 'Android' in ua:
        os = 'Android'
    elif 'iPhone' in ua or 'iPad' in ua or 'iOS' in ua:
        os = 'iOS'
    elif 'Mac' in ua:
        os = 'macOS'
    elif 'Linux' in ua:
        os = 'Linux'
    else:
        os = 'unknown'

    return DeviceInfo(user_agent=user_agent, device_type=device_type, browser=browser, os=os)
