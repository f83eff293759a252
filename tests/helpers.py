from datetime import datetime
from zoneinfo import ZoneInfo

from sportslot.core.security import create_access_token
from sportslot.models.user import User

BKK = ZoneInfo("Asia/Bangkok")
DAY = "2026-03-10"
NEXT_DAY = "2026-03-11"


def at(hour: int, minute: int = 0, day: str = DAY) -> datetime:
    """Aware datetime in the reference zone."""
    y, m, d = (int(p) for p in day.split("-"))
    return datetime(y, m, d, hour, minute, tzinfo=BKK)


def auth(user: User) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(user.id, role=user.role)}"}
