"""
Calendar day bucketing.

Entries are timestamped at arbitrary times of day but compensation belongs
to one operational day, so days are always taken in a single reference zone
rather than from UTC boundaries.
"""

from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from functools import lru_cache
from typing import Dict, Iterable, List, Tuple
from zoneinfo import ZoneInfo

from staffpay.core.config import settings
from staffpay.models.entry import LedgerEntry


@lru_cache(maxsize=None)
def get_zone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or settings.REFERENCE_TIMEZONE)


def calendar_day(instant: datetime, tz: tzinfo | None = None) -> date:
    """Local calendar day of an instant. Naive datetimes are UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(tz or get_zone()).date()


def bucket_by_day(
    entries: Iterable[LedgerEntry], tz: tzinfo | None = None
) -> Dict[date, List[LedgerEntry]]:
    """Group entries by local calendar day, keeping input order inside a day."""
    tz = tz or get_zone()
    buckets: Dict[date, List[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        buckets[calendar_day(entry.date, tz)].append(entry)
    return dict(buckets)


def bucket_by_collaborator_day(
    entries: Iterable[LedgerEntry], tz: tzinfo | None = None
) -> Dict[Tuple[str, date], List[LedgerEntry]]:
    tz = tz or get_zone()
    buckets: Dict[Tuple[str, date], List[LedgerEntry]] = defaultdict(list)
    for entry in entries:
        buckets[(entry.collaborator_id, calendar_day(entry.date, tz))].append(entry)
    return dict(buckets)


def start_of_day(day: date, tz: tzinfo | None = None) -> datetime:
    """First instant of a local day, in UTC."""
    local = datetime.combine(day, time.min, tzinfo=tz or get_zone())
    return local.astimezone(timezone.utc)


def day_bounds(
    start_day: date | None, end_day: date | None, tz: tzinfo | None = None
) -> Tuple[datetime | None, datetime | None]:
    """UTC instants covering [start_day, end_day], end exclusive."""
    tz = tz or get_zone()
    start = start_of_day(start_day, tz) if start_day else None
    end = start_of_day(end_day + timedelta(days=1), tz) if end_day else None
    return start, end

