"""
Machine OEE - Window Accountant

Walks every day x shift of an analysis range and produces the scheduled
windows it covers. Each window carries two views that must not be mixed:

- the nominal window (shift clipped to the requested range), used for
  display totals such as scheduled time and planned stoppage time;
- the elapsed window (nominal window clipped at "now"), used for every KPI.

All arithmetic is done on UTC instants so DST transitions yield real
durations.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Iterator, Optional
from zoneinfo import ZoneInfo

from machine_oee.models.oee import ShiftDefinition
from machine_oee.utils.timezone import local_day_range_utc, local_to_utc

ZERO = timedelta(0)


@dataclass(frozen=True)
class ShiftWindow:
    """One shift occurrence on one day, clipped to the analysis range."""
    shift: ShiftDefinition
    day: date
    nominal_start: datetime
    nominal_end: datetime
    planned_stoppage: timedelta
    elapsed_end: Optional[datetime]
    elapsed_planned_stoppage: timedelta

    @property
    def gross_duration(self) -> timedelta:
        return self.nominal_end - self.nominal_start

    @property
    def has_elapsed(self) -> bool:
        return self.elapsed_end is not None

    @property
    def elapsed_duration(self) -> timedelta:
        if self.elapsed_end is None:
            return ZERO
        return self.elapsed_end - self.nominal_start


@dataclass
class WindowTotals:
    """Accumulated nominal (display) and elapsed (KPI) time."""
    gross_nominal: timedelta = ZERO
    planned_stoppage_nominal: timedelta = ZERO
    gross_elapsed: timedelta = ZERO
    planned_stoppage_elapsed: timedelta = ZERO

    def add(self, window: ShiftWindow) -> None:
        self.gross_nominal += window.gross_duration
        self.planned_stoppage_nominal += window.planned_stoppage
        self.gross_elapsed += window.elapsed_duration
        self.planned_stoppage_elapsed += window.elapsed_planned_stoppage

    @property
    def loading_time(self) -> timedelta:
        return max(ZERO, self.gross_nominal - self.planned_stoppage_nominal)

    @property
    def planned_operating_time(self) -> timedelta:
        return max(ZERO, self.gross_elapsed - self.planned_stoppage_elapsed)


def iter_shift_windows(
    shifts: Iterable[ShiftDefinition],
    start_date: date,
    end_date: date,
    now: datetime,
    tz: ZoneInfo = None
) -> Iterator[ShiftWindow]:
    """Yield the non-empty nominal windows of every shift on every day of the range."""
    shifts = list(shifts)
    range_start, range_end = local_day_range_utc(start_date, end_date, tz)

    day = start_date
    while day <= end_date:
        for shift in shifts:
            local_start = datetime.combine(day, shift.start_time)
            local_end = datetime.combine(day, shift.end_time)
            if shift.crosses_midnight:
                local_end += timedelta(days=1)

            nominal_start = max(local_to_utc(local_start, tz), range_start)
            nominal_end = min(local_to_utc(local_end, tz), range_end)
            if nominal_start >= nominal_end:
                continue

            # Misconfigured stoppages never exceed the window itself.
            planned_stoppage = min(shift.planned_stoppage_duration, nominal_end - nominal_start)

            elapsed_end = min(nominal_end, now)
            if nominal_start >= elapsed_end:
                elapsed_end = None
                elapsed_planned_stoppage = ZERO
            else:
                elapsed_planned_stoppage = min(planned_stoppage, elapsed_end - nominal_start)

            yield ShiftWindow(
                shift=shift,
                day=day,
                nominal_start=nominal_start,
                nominal_end=nominal_end,
                planned_stoppage=planned_stoppage,
                elapsed_end=elapsed_end,
                elapsed_planned_stoppage=elapsed_planned_stoppage,
            )
        day += timedelta(days=1)
