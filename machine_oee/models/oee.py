"""
Machine OEE - Analysis Models

This module defines the Pydantic models used by the OEE analysis service:
the records read from the store (events, production samples, shifts,
parameters), the analysis request and the analysis result.
"""

from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from machine_oee.config import settings
from machine_oee.utils.timezone import ensure_utc


class EventType(str, Enum):
    """Event types found in the machine event log."""
    ALARM = "Alarm"
    WARNING = "Warning"
    STATUS = "Status"
    COUNT = "Count"
    SPEED = "Speed"
    MANUAL_SCRAP = "ManualScrap"


# Base models
class BaseOEEModel(BaseModel):
    """Base model for OEE entities."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


# Store records
class EventRecord(BaseOEEModel):
    """One entry of the append-only machine event log."""
    timestamp: datetime = Field(..., description="Event instant (UTC)")
    origin_id: str = Field(..., description="Machine that emitted the event")
    event_type: str = Field(..., description="Alarm, Warning, Status, Count, Speed, ManualScrap...")
    code: str = Field(..., description="Event code, e.g. alarmeON")
    value: Optional[str] = Field(None, description="Event value; the cause label for alarms")
    info: Optional[str] = Field(None, description="Free text")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)


class ProductionSample(BaseOEEModel):
    """A reading of the machine's cumulative production counter."""
    timestamp: datetime = Field(..., description="Sample instant (UTC)")
    origin_id: str
    cumulative_count: int = Field(..., description="Counter value; may drop on device restart")

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v):
        return ensure_utc(v)


class PlannedStoppage(BaseOEEModel):
    """Scheduled, non-chargeable stop inside a shift (e.g. lunch)."""
    id: Optional[int] = None
    description: str = Field(..., min_length=1, max_length=100)
    duration_minutes: int = Field(..., ge=0)


class ShiftDefinition(BaseOEEModel):
    """
    A recurring daily shift.

    ``end_time <= start_time`` means the shift ends on the next day.
    """
    id: int
    machine_id: str
    name: str
    start_time: time
    end_time: time
    planned_stoppages: List[PlannedStoppage] = Field(default_factory=list)

    @property
    def crosses_midnight(self) -> bool:
        return self.end_time <= self.start_time

    @property
    def scheduled_duration(self) -> timedelta:
        """Length of one occurrence; equal start and end mean a full day."""
        start = datetime.combine(date.min, self.start_time)
        end = datetime.combine(date.min, self.end_time)
        if self.crosses_midnight:
            end += timedelta(days=1)
        return end - start

    @property
    def planned_stoppage_duration(self) -> timedelta:
        return sum(
            (timedelta(minutes=stop.duration_minutes) for stop in self.planned_stoppages),
            timedelta(0),
        )


class ShiftCreate(BaseOEEModel):
    """A new shift for a machine."""
    name: str = Field(..., min_length=1, max_length=100)
    start_time: time
    end_time: time


class PlannedStoppageCreate(BaseOEEModel):
    """A new planned stoppage inside a shift."""
    description: str = Field(..., min_length=1, max_length=100)
    duration_minutes: int = Field(..., gt=0)


class OeeParameters(BaseOEEModel):
    """Per-machine OEE configuration."""
    machine_id: str
    ideal_rate_per_hour: int = Field(default=0, ge=0, description="Ideal production rate (units/hour)")
    manual_scrap_enabled: bool = Field(default=False)
    refresh_interval_minutes: int = Field(default=10, gt=0)

    @classmethod
    def defaults(cls, machine_id: str) -> "OeeParameters":
        """Parameters used for a machine that has never been configured."""
        return cls(
            machine_id=machine_id,
            ideal_rate_per_hour=settings.DEFAULT_IDEAL_RATE_PER_HOUR,
            manual_scrap_enabled=False,
            refresh_interval_minutes=settings.DEFAULT_REFRESH_INTERVAL_MINUTES,
        )


class OeeParametersUpdate(BaseOEEModel):
    """Partial update of a machine's OEE parameters."""
    ideal_rate_per_hour: Optional[int] = Field(None, gt=0, description="Must be greater than 0")
    manual_scrap_enabled: Optional[bool] = None
    refresh_interval_minutes: Optional[int] = Field(None, gt=0, description="Must be greater than 0")


# Analysis models
class AnalysisRequest(BaseOEEModel):
    """What to analyze: one machine, an inclusive local date range, optionally one shift."""
    machine_id: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date
    shift_id: Optional[int] = Field(None, ge=0, description="0 or None analyzes every shift")

    @model_validator(mode="after")
    def validate_date_range(self):
        if self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        if (self.end_date - self.start_date).days + 1 > settings.MAX_ANALYSIS_DAYS:
            raise ValueError(f"date range must not exceed {settings.MAX_ANALYSIS_DAYS} days")
        return self


class LossCause(BaseOEEModel):
    """An unplanned-downtime cause ranked by total stopped time."""
    label: str
    total_duration: timedelta
    frequency: int = Field(..., ge=0)


class AnalysisResult(BaseOEEModel):
    """OEE KPIs and supporting figures for one analysis request."""
    machine_id: str
    start_date: date
    end_date: date
    shift_id: Optional[int] = None
    generated_at: datetime

    # KPIs (percent, 0..100)
    availability: float = Field(0.0, ge=0, le=100)
    performance: float = Field(0.0, ge=0, le=100)
    quality: float = Field(0.0, ge=0, le=100)
    oee: float = Field(0.0, ge=0, le=100)

    # Time analysis
    nominal_scheduled_time: timedelta = timedelta(0)
    planned_stoppage_time: timedelta = timedelta(0)
    loading_time: timedelta = timedelta(0)
    elapsed_operating_time: timedelta = timedelta(0)
    net_operating_time: timedelta = timedelta(0)
    unplanned_downtime: timedelta = timedelta(0)
    waiting_time: timedelta = timedelta(0)

    # Production analysis
    total_produced: int = 0
    ideal_produced: int = 0
    scrap_count: int = 0

    # Configuration used
    ideal_rate_per_hour: int = 0
    manual_scrap_enabled: bool = False
    refresh_interval_minutes: int = 10

    top_losses: List[LossCause] = Field(default_factory=list)

    @classmethod
    def empty(cls, request: AnalysisRequest, generated_at: datetime) -> "AnalysisResult":
        """All-zero result: nothing to compute for this request."""
        return cls(
            machine_id=request.machine_id,
            start_date=request.start_date,
            end_date=request.end_date,
            shift_id=request.shift_id,
            generated_at=generated_at,
        )
