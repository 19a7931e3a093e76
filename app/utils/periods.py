"""
Calendar helpers for payout periods

Timestamps are stored as naive UTC. Month boundaries are computed in the
configured reporting timezone and converted to naive UTC, so a period covers
exactly one local calendar month.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from zoneinfo import ZoneInfo

from config import settings


def utcnow() -> datetime:
    """Current time as naive UTC"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def reporting_zone() -> ZoneInfo:
    return ZoneInfo(settings.REPORTING_TIMEZONE)


@dataclass(frozen=True)
class PeriodWindow:
    """Inclusive [start, end] window in naive UTC"""
    start: datetime
    end: datetime

    def contains(self, moment: Optional[datetime]) -> bool:
        return moment is not None and self.start <= moment <= self.end


def _to_naive_utc(local: datetime) -> datetime:
    return local.astimezone(timezone.utc).replace(tzinfo=None)


def month_window(year: int, month: int) -> PeriodWindow:
    """First and last instant of a local calendar month"""
    zone = reporting_zone()
    start_local = datetime(year, month, 1, tzinfo=zone)
    if month == 12:
        next_local = datetime(year + 1, 1, 1, tzinfo=zone)
    else:
        next_local = datetime(year, month + 1, 1, tzinfo=zone)

    start = _to_naive_utc(start_local)
    end = _to_naive_utc(next_local) - timedelta(microseconds=1)
    return PeriodWindow(start=start, end=end)


def local_year_month(moment: Optional[datetime] = None) -> Tuple[int, int]:
    """(year, month) of a naive UTC moment in the reporting timezone"""
    moment = moment or utcnow()
    local = moment.replace(tzinfo=timezone.utc).astimezone(reporting_zone())
    return local.year, local.month


def previous_month(moment: Optional[datetime] = None) -> Tuple[int, int]:
    year, month = local_year_month(moment)
    if month == 1:
        return year - 1, 12
    return year, month - 1


def current_month_window(moment: Optional[datetime] = None) -> PeriodWindow:
    return month_window(*local_year_month(moment))
