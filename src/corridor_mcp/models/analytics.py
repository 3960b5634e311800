"""Pydantic models for daily corridor traffic statistics."""

from datetime import date, datetime

from pydantic import BaseModel, Field


class HourBucket(BaseModel):
    """Movements scheduled in one local hour of a day."""

    hour: int = Field(ge=0, le=23)
    total: int = 0
    delayed: int = 0
    avg_delay: float = Field(default=0, description="Mean of positive delays, minutes, 1 decimal")
    towards_newcastle: int = 0
    towards_sydney: int = 0
    delayed_newcastle: int = 0
    delayed_sydney: int = 0


class DayStat(BaseModel):
    """Summary of one local day of corridor movements."""

    date: date
    label: str = Field(description='Short day label, e.g. "Mon 2 Jun"')
    total: int = 0
    passenger: int = 0
    freight: int = 0
    towards_newcastle: int = 0
    towards_sydney: int = 0
    on_time: int = 0
    delayed: int = 0
    cancelled: int = 0
    avg_delay_minutes: float = 0
    peak_hour: int = 0
    peak_hour_count: int = 0
    stopping_at_cardiff: int = 0
    stopping_at_kotara: int = 0
    passing_through: int = 0
    live_tracked: int = Field(default=0, description="Movements confirmed by a realtime feed")
    unique_operators: list[str] = []
    hourly_breakdown: list[HourBucket]


class AnalyticsResponse(BaseModel):
    today: DayStat
    days: list[DayStat] = Field(description="Today first, then each earlier day")
    generated_at: datetime
