from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterator, Optional
from zoneinfo import ZoneInfo

PRESET_DAYS = {"7d": 7, "30d": 30, "90d": 90}
DEFAULT_RANGE = "30d"
MAX_RANGE_DAYS = 366
# Local days whose UTC conversion stays inside the datetime range.
EARLIEST_DATE = date(1900, 1, 1)
LATEST_DATE = date(9999, 12, 30)


@dataclass(frozen=True)
class Period:
    slug: str
    start: date
    end: date

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


def resolve_period(
    range_slug: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
    max_days: int = MAX_RANGE_DAYS,
) -> Period:
    today = today or date.today()
    if start or end:
        if not start or not end:
            raise ValueError("Custom range requires start and end dates")
        start_date = date.fromisoformat(start)
        end_date = date.fromisoformat(end)
        if start_date > end_date:
            raise ValueError("Start date must be before end date")
        if start_date < EARLIEST_DATE or end_date > LATEST_DATE:
            raise ValueError(
                f"Dates must fall between {EARLIEST_DATE} and {LATEST_DATE}"
            )
        period = Period("custom", start_date, end_date)
        if period.days > max_days:
            raise ValueError(f"Custom range cannot exceed {max_days} days")
        return period

    slug = range_slug or DEFAULT_RANGE
    if slug not in PRESET_DAYS:
        raise ValueError(f"Unknown range: {slug}")
    return Period(slug, today - timedelta(days=PRESET_DAYS[slug]), today)


def iter_days(start: date, end: date) -> Iterator[date]:
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def local_date(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar day of a naive-UTC timestamp in the reference timezone."""
    return moment.replace(tzinfo=timezone.utc).astimezone(tz).date()


def utc_bounds(period: Period, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """Naive-UTC ``[start, end]`` covering every local day of the period."""
    start_local = datetime.combine(period.start, time.min, tzinfo=tz)
    end_local = datetime.combine(period.end, time.max, tzinfo=tz)
    return (
        start_local.astimezone(timezone.utc).replace(tzinfo=None),
        end_local.astimezone(timezone.utc).replace(tzinfo=None),
    )


def month_key(day: date) -> str:
    return f"{day.year:04d}-{day.month:02d}"
