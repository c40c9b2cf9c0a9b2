from datetime import datetime
from typing import Optional

from innovation_hub.models import as_utc, utcnow

STATUS_BADGE_CLASSES = {
    "draft": "bg-gray-100 text-gray-800",
    "active": "bg-green-100 text-green-800",
    "judging": "bg-yellow-100 text-yellow-800",
    "completed": "bg-blue-100 text-blue-800",
    "cancelled": "bg-red-100 text-red-800",
}
DEFAULT_BADGE_CLASS = "bg-gray-100 text-gray-800"

CATEGORY_ICONS = {
    "technology": "🚀",
    "sustainability": "🌱",
    "safety": "🛡️",
    "innovation": "💡",
}
DEFAULT_CATEGORY_ICON = "🏗️"


def status_badge_class(status) -> str:
    return STATUS_BADGE_CLASSES.get(str(status or ""), DEFAULT_BADGE_CLASS)


def days_remaining(deadline: Optional[datetime], now: Optional[datetime] = None) -> Optional[str]:
    """Human label for the time left before ``deadline``.

    Returns ``None`` when there is no deadline. Whole days are counted, so a
    deadline later today reads "Due today".
    """
    if deadline is None:
        return None
    deadline = as_utc(deadline)
    now = as_utc(now) or utcnow()
    if deadline < now:
        return "Expired"
    days = (deadline - now).days
    if days == 0:
        return "Due today"
    if days == 1:
        return "1 day left"
    return f"{days} days left"


def category_icon(category: Optional[str]) -> str:
    return CATEGORY_ICONS.get(category or "", DEFAULT_CATEGORY_ICON)


def pluralize(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"
