"""Daily traffic statistics for the corridor.

Today is summarised from a full aggregation cycle, realtime included. Earlier
days are rebuilt from the timetable for that date plus freight, so they carry
scheduled and estimated movements only.
"""

import logging
from collections import Counter
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from corridor_mcp.data.config import get_config
from corridor_mcp.models.analytics import AnalyticsResponse, DayStat, HourBucket
from corridor_mcp.models.movements import (
    ConfidenceLevel,
    Direction,
    Movement,
    MovementFilters,
    MovementsResponse,
    MovementStatus,
    ServiceType,
    TimeWindow,
    TypeFilter,
)
from corridor_mcp.services.corridor_service import apply_filters, get_aggregator, mark_completed_movements
from corridor_mcp.services.freight_service import FreightResult, get_freight_for_window
from corridor_mcp.services.reconciliation import DELAY_THRESHOLD_MINUTES
from corridor_mcp.services.schedule_service import ScheduleSource, get_schedule_source

logger = logging.getLogger(__name__)

DEFAULT_DAYS = 7
MAX_DAYS = 14

REALTIME_LEVELS = (ConfidenceLevel.CONFIRMED_UPDATED, ConfidenceLevel.CONFIRMED_LIVE)

MovementsFetcher = Callable[[MovementFilters], Awaitable[MovementsResponse]]
FreightFetcher = Callable[[datetime, datetime], Awaitable[FreightResult]]


def is_delayed(movement: Movement) -> bool:
    if movement.status == MovementStatus.DELAYED:
        return True
    return movement.delay_minutes is not None and movement.delay_minutes > DELAY_THRESHOLD_MINUTES


def average_delay(movements: list[Movement]) -> float:
    """Mean of the positive delays in minutes, to one decimal; 0 when none."""
    delays = [m.delay_minutes for m in movements if m.delay_minutes is not None and m.delay_minutes > 0]
    if not delays:
        return 0
    return round(sum(delays) / len(delays), 1)


def day_label(day: date) -> str:
    return f"{day:%a} {day.day} {day:%b}"


def build_hourly_breakdown(movements: list[Movement], tz: ZoneInfo) -> list[HourBucket]:
    """24 buckets keyed by the local hour of each movement's scheduled time."""
    by_hour: dict[int, list[Movement]] = {hour: [] for hour in range(24)}
    for movement in movements:
        by_hour[movement.scheduled_time.astimezone(tz).hour].append(movement)

    buckets = []
    for hour, in_hour in by_hour.items():
        newcastle = [m for m in in_hour if m.direction == Direction.TOWARDS_NEWCASTLE]
        sydney = [m for m in in_hour if m.direction == Direction.TOWARDS_SYDNEY]
        buckets.append(
            HourBucket(
                hour=hour,
                total=len(in_hour),
                delayed=sum(is_delayed(m) for m in in_hour),
                avg_delay=average_delay(in_hour),
                towards_newcastle=len(newcastle),
                towards_sydney=len(sydney),
                delayed_newcastle=sum(is_delayed(m) for m in newcastle),
                delayed_sydney=sum(is_delayed(m) for m in sydney),
            )
        )
    return buckets


def compute_day_stat(movements: list[Movement], day: date, tz: ZoneInfo) -> DayStat:
    """Summarise one local day of movements."""
    hourly = build_hourly_breakdown(movements, tz)
    stat = DayStat(date=day, label=day_label(day), hourly_breakdown=hourly)
    if not movements:
        return stat

    # earliest hour wins a tie
    peak = max(hourly, key=lambda bucket: (bucket.total, -bucket.hour))
    types = Counter(m.service_type for m in movements)
    directions = Counter(m.direction for m in movements)
    cancelled = sum(m.status == MovementStatus.CANCELLED for m in movements)
    delayed = sum(is_delayed(m) for m in movements)

    return stat.model_copy(
        update={
            "total": len(movements),
            "passenger": types[ServiceType.PASSENGER],
            "freight": types[ServiceType.FREIGHT],
            "towards_newcastle": directions[Direction.TOWARDS_NEWCASTLE],
            "towards_sydney": directions[Direction.TOWARDS_SYDNEY],
            "on_time": sum(m.status != MovementStatus.CANCELLED and not is_delayed(m) for m in movements),
            "delayed": delayed,
            "cancelled": cancelled,
            "avg_delay_minutes": average_delay(movements),
            "peak_hour": peak.hour,
            "peak_hour_count": peak.total,
            "stopping_at_cardiff": sum(bool(m.cardiff_call and m.cardiff_call.stops_here) for m in movements),
            "stopping_at_kotara": sum(bool(m.kotara_call and m.kotara_call.stops_here) for m in movements),
            "passing_through": sum(m.passes_through for m in movements),
            "live_tracked": sum(m.confidence.level in REALTIME_LEVELS for m in movements),
            "unique_operators": list(dict.fromkeys(m.operator for m in movements)),
        }
    )


class CorridorAnalytics:
    """Builds day statistics for today and the days before it.

    Sources are injectable the same way as for the aggregator.
    """

    def __init__(
        self,
        movements: MovementsFetcher,
        schedule: ScheduleSource,
        tz: ZoneInfo,
        freight: FreightFetcher | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        self._movements = movements
        self._schedule = schedule
        self._tz = tz
        self._freight = freight or get_freight_for_window
        self._clock = clock or (lambda: datetime.now(UTC))

    async def _past_day(self, day: date, filters: MovementFilters, now: datetime) -> list[Movement]:
        start = datetime.combine(day, time.min, tzinfo=self._tz)
        end = datetime.combine(day, time.max, tzinfo=self._tz)

        movements = await self._schedule.get_scheduled_movements(start, end)
        if filters.type != TypeFilter.PASSENGER:
            freight = await self._freight(start, end)
            movements = [*movements, *freight.movements]
        return apply_filters(mark_completed_movements(movements, now), filters)

    async def get_analytics(
        self, filters: MovementFilters | None = None, days: int = DEFAULT_DAYS
    ) -> AnalyticsResponse:
        """Statistics for today and the days - 1 local days before it.

        The time window of filters is ignored; each day is always whole.
        """
        filters = (filters or MovementFilters()).model_copy(update={"time_window": TimeWindow.TODAY})
        now = self._clock()
        today = now.astimezone(self._tz).date()

        response = await self._movements(filters)
        today_stat = compute_day_stat(response.movements, today, self._tz)

        stats = [today_stat]
        for offset in range(1, days):
            day = today - timedelta(days=offset)
            try:
                movements = await self._past_day(day, filters, now)
            except Exception as e:
                logger.warning(f"Analytics for {day} unavailable: {e}")
                movements = []
            stats.append(compute_day_stat(movements, day, self._tz))

        return AnalyticsResponse(today=today_stat, days=stats, generated_at=now)


# Module-level state (lazy-initialized)
_analytics: CorridorAnalytics | None = None


def get_analytics() -> CorridorAnalytics:
    """Get or create the process-wide analytics service."""
    global _analytics
    if _analytics is None:
        _analytics = CorridorAnalytics(get_aggregator().get_movements, get_schedule_source(), get_config().tz)
    return _analytics


def reset_service() -> None:
    """Drop the analytics service. Useful for testing."""
    global _analytics
    _analytics = None
