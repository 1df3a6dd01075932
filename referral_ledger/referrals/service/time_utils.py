from __future__ import annotations

from datetime import datetime


def stamp_after(now_utc: datetime, *earlier: datetime | None) -> datetime:
    """Returns a timestamp that is never before any already-recorded funnel timestamp."""
    present = [value for value in earlier if value is not None]
    if not present:
        return now_utc
    return max(now_utc, *present)
