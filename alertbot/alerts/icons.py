"""
icons.py — Emoji and image lookup for alert events.

Two static tables:

    EVENT_ICONS      event keyword → emoji   (first substring match wins,
                                              so specific phrases precede
                                              generic words like "warning")
    ICON_IMAGE_URLS  emoji → illustration URL attached by the image stage
                     of the publisher

Images are referenced only; nothing is generated or hosted here.
"""

from __future__ import annotations

from typing import Dict, Optional

DEFAULT_ICON = "⚠️"

# First match wins: specific phrases precede the generic kinds at the end.
EVENT_ICONS: Dict[str, str] = {
    "tornado": "🌪️",
    "thunderstorm": "⛈️",
    "flash flood": "🌊",
    "coastal flood": "🌊",
    "flood": "🌊",
    "winter storm": "❄️",
    "blizzard": "❄️",
    "snow": "🌨️",
    "ice": "🧊",
    "freeze": "🥶",
    "frost": "🥶",
    "hurricane": "🌀",
    "tropical storm": "🌀",
    "typhoon": "🌀",
    "cyclone": "🌀",
    "tsunami": "🌊",
    "wind": "💨",
    "dust": "🌫️",
    "sandstorm": "🌫️",
    "heatwave": "🔥",
    "heat": "🔥",
    "drought": "☀️",
    "wildfire": "🔥",
    "fire weather": "🔥",
    "red flag": "🚩",
    "avalanche": "🏔️",
    "volcano": "🌋",
    "earthquake": "📳",
    "air quality": "😷",
    "pollution": "😷",
    "fog": "🌫️",
    "marine": "🌊",
    "small craft": "⛵",
    "rip current": "🌊",
    "lightning": "⚡",
    "hail": "🌨️",
    "severe weather": "⚠️",
    # Generic alert kinds
    "warning": "⚠️",
    "watch": "👀",
    "advisory": "ℹ️",
    "statement": "📢",
}

SEVERITY_ICONS: Dict[str, str] = {
    "extreme": "🚨",
    "severe": "⚠️",
    "moderate": "⚠️",
    "minor": "ℹ️",
    "unknown": "❓",
}

_IMAGE_QUERY = "?q=80&w=500&auto=format&fit=crop"
_UNSPLASH = "https://images.unsplash.com/"

DEFAULT_IMAGE_URL = f"{_UNSPLASH}photo-1563089145-599997674d42{_IMAGE_QUERY}"

ICON_IMAGE_URLS: Dict[str, str] = {
    "⚡": f"{_UNSPLASH}photo-1605727216801-e27ce1d0cc28{_IMAGE_QUERY}",
    "⛈️": f"{_UNSPLASH}photo-1605727216801-e27ce1d0cc28{_IMAGE_QUERY}",
    "🌪️": f"{_UNSPLASH}photo-1527482797697-8795b05a13fe{_IMAGE_QUERY}",
    "💨": f"{_UNSPLASH}photo-1527482797697-8795b05a13fe{_IMAGE_QUERY}",
    "🌀": f"{_UNSPLASH}photo-1527482797697-8795b05a13fe{_IMAGE_QUERY}",
    "🌊": f"{_UNSPLASH}photo-1494564605686-2e931f77a8e2{_IMAGE_QUERY}",
    "🔥": f"{_UNSPLASH}photo-1518173946687-a4c8892bbd9f{_IMAGE_QUERY}",
    "❄️": f"{_UNSPLASH}photo-1457269449834-928af64c684d{_IMAGE_QUERY}",
    "🌨️": f"{_UNSPLASH}photo-1457269449834-928af64c684d{_IMAGE_QUERY}",
    "🌧️": f"{_UNSPLASH}photo-1534274988757-a28bf1a57c17{_IMAGE_QUERY}",
    "☁️": f"{_UNSPLASH}photo-1534088568595-a066f410bcda{_IMAGE_QUERY}",
    "☀️": f"{_UNSPLASH}photo-1506588345361-5e12b7380de7{_IMAGE_QUERY}",
    "🌡️": f"{_UNSPLASH}photo-1583075850023-9478af4432f0{_IMAGE_QUERY}",
    "💧": f"{_UNSPLASH}photo-1559592413-7cec4d0cae2b{_IMAGE_QUERY}",
    "🌫️": f"{_UNSPLASH}photo-1485236715568-ddc5ee6ca227{_IMAGE_QUERY}",
    "🧊": f"{_UNSPLASH}photo-1551899892-56314e56db58{_IMAGE_QUERY}",
    "🥶": f"{_UNSPLASH}photo-1551899892-56314e56db58{_IMAGE_QUERY}",
    "⚠️": DEFAULT_IMAGE_URL,
}


def get_icon_for_alert(event: Optional[str], severity: Optional[str] = None) -> str:
    """
    Pick an emoji for an alert.

    Lookup order: event keyword (case-insensitive substring), then the
    severity icon, then the generic warning sign.

    Examples
    --------
    >>> get_icon_for_alert("Flash Flood Warning", "Severe")
    '🌊'
    >>> get_icon_for_alert("Civil Emergency Message", "Extreme")
    '🚨'
    """
    if event:
        lowered = event.lower()
        for keyword, icon in EVENT_ICONS.items():
            if keyword in lowered:
                return icon

    if severity:
        icon = SEVERITY_ICONS.get(severity.lower())
        if icon:
            return icon

    return DEFAULT_ICON


def get_icon_image_url(icon: Optional[str]) -> str:
    """Illustration URL for an emoji; unknown emojis get the warning image."""
    return ICON_IMAGE_URLS.get(icon or "", DEFAULT_IMAGE_URL)
