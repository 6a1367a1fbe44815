"""
Machine OEE - Analysis Service

Computes the OEE analysis of one machine over an inclusive range of local
days. Every store read happens up front, concurrently, into an
``AnalysisSnapshot``; the computation itself is a pure function of
(request, snapshot, now).
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional
from zoneinfo import ZoneInfo

import structlog

from machine_oee.config import settings
from machine_oee.models.oee import (
    AnalysisRequest, AnalysisResult, EventRecord, EventType, OeeParameters,
    ProductionSample, ShiftDefinition
)
from machine_oee.services.event_timeline import build_event_timeline
from machine_oee.services.loss_aggregator import LossAccumulator
from machine_oee.services.oee_calculator import OEECalculator, OEEInputs
from machine_oee.services.oee_repository import OeeRepository
from machine_oee.services.production_differencer import ProductionCounter, manual_scrap_total
from machine_oee.services.shift_resolver import resolve_shifts
from machine_oee.services.state_reconstructor import alarm_codes, reconstruct_window, warning_codes
from machine_oee.services.window_accountant import WindowTotals, iter_shift_windows
from machine_oee.utils.exceptions import DataAccessError
from machine_oee.utils.metrics import application_metrics
from machine_oee.utils.timezone import ensure_utc, local_day_range_utc, utc_now

logger = structlog.get_logger()

ZERO = timedelta(0)


@dataclass
class AnalysisSnapshot:
    """Everything read from the store for one analysis."""
    events: List[EventRecord] = field(default_factory=list)
    preceding_events: List[EventRecord] = field(default_factory=list)
    samples: List[ProductionSample] = field(default_factory=list)
    preceding_sample: Optional[ProductionSample] = None
    shifts: List[ShiftDefinition] = field(default_factory=list)
    parameters: Optional[OeeParameters] = None


def _with_parameters(result: AnalysisResult, parameters: OeeParameters) -> AnalysisResult:
    return result.model_copy(update={
        "ideal_rate_per_hour": parameters.ideal_rate_per_hour,
        "manual_scrap_enabled": parameters.manual_scrap_enabled,
        "refresh_interval_minutes": parameters.refresh_interval_minutes,
    })


def compute_analysis_from_snapshot(
    request: AnalysisRequest,
    snapshot: AnalysisSnapshot,
    now: datetime,
    tz: ZoneInfo = None
) -> AnalysisResult:
    """
    Compute the analysis of ``request`` from already loaded data.

    Nominal windows feed the display totals; elapsed windows (clipped at
    ``now``) feed every KPI. Deterministic for a given (request, snapshot, now).
    """
    now = ensure_utc(now)
    parameters = snapshot.parameters or OeeParameters.defaults(request.machine_id)

    shifts = resolve_shifts(request.machine_id, snapshot.shifts, request.shift_id)
    if not shifts:
        return _with_parameters(AnalysisResult.empty(request, now), parameters)

    timeline = build_event_timeline(snapshot.events, snapshot.preceding_events)
    counter = ProductionCounter(snapshot.samples, snapshot.preceding_sample)
    range_start, range_end = local_day_range_utc(request.start_date, request.end_date, tz)

    totals = WindowTotals()
    losses = LossAccumulator()
    unplanned_downtime = ZERO
    waiting_time = ZERO
    total_produced = 0

    for window in iter_shift_windows(shifts, request.start_date, request.end_date, now, tz):
        totals.add(window)
        if not window.has_elapsed:
            continue

        signals = reconstruct_window(timeline, window.nominal_start, window.elapsed_end, losses)
        unplanned_downtime += signals.unplanned_downtime
        waiting_time += signals.waiting_time
        total_produced += counter.produced_between(window.nominal_start, window.elapsed_end)

    scrap_count = manual_scrap_total(
        timeline.of_type(EventType.MANUAL_SCRAP.value), range_start, range_end
    )

    figures = OEECalculator.calculate(OEEInputs(
        planned_operating_time=totals.planned_operating_time,
        unplanned_downtime=unplanned_downtime,
        total_produced=total_produced,
        scrap_count=scrap_count,
        ideal_rate_per_hour=parameters.ideal_rate_per_hour,
    ))

    return AnalysisResult(
        machine_id=request.machine_id,
        start_date=request.start_date,
        end_date=request.end_date,
        shift_id=request.shift_id,
        generated_at=now,
        availability=figures.availability,
        performance=figures.performance,
        quality=figures.quality,
        oee=figures.oee,
        nominal_scheduled_time=totals.gross_nominal,
        planned_stoppage_time=totals.planned_stoppage_nominal,
        loading_time=totals.loading_time,
        elapsed_operating_time=totals.planned_operating_time,
        net_operating_time=figures.net_operating_time,
        unplanned_downtime=unplanned_downtime,
        waiting_time=waiting_time,
        total_produced=total_produced,
        ideal_produced=figures.ideal_produced,
        scrap_count=scrap_count,
        ideal_rate_per_hour=parameters.ideal_rate_per_hour,
        manual_scrap_enabled=parameters.manual_scrap_enabled,
        refresh_interval_minutes=parameters.refresh_interval_minutes,
        top_losses=losses.top(settings.TOP_LOSSES_LIMIT),
    )


class OEEAnalysisService:
    """Loads the inputs of an analysis and computes it."""

    def __init__(self, repository: OeeRepository = None):
        self.repository = repository or OeeRepository()

    async def load_snapshot(
        self,
        request: AnalysisRequest,
        range_start: datetime,
        range_end: datetime
    ) -> AnalysisSnapshot:
        """Run the independent store reads concurrently. Any failure propagates."""
        machine_id = request.machine_id
        alarm, warning = alarm_codes(), warning_codes()
        (
            events,
            last_alarm,
            last_warning,
            samples,
            preceding_sample,
            shifts,
            parameters,
        ) = await asyncio.gather(
            self.repository.load_events(machine_id, range_start, range_end),
            self.repository.load_last_event_before(machine_id, EventType.ALARM.value, range_start, *alarm.switching),
            self.repository.load_last_event_before(machine_id, EventType.WARNING.value, range_start, *warning.switching),
            self.repository.load_production_samples(machine_id, range_start, range_end),
            self.repository.load_last_sample_at_or_before(machine_id, range_start),
            self.repository.load_shifts(machine_id, request.shift_id),
            self.repository.load_oee_parameters(machine_id),
        )

        return AnalysisSnapshot(
            events=events,
            preceding_events=[event for event in (last_alarm, last_warning) if event is not None],
            samples=samples,
            preceding_sample=preceding_sample,
            shifts=shifts,
            parameters=parameters,
        )

    async def compute_analysis(self, request: AnalysisRequest, now: datetime = None) -> AnalysisResult:
        """
        Compute the OEE analysis for ``request`` as of ``now`` (default: current UTC time).

        A range starting after ``now`` yields the all-zero result; only the
        machine's parameters are read for it. ``DataAccessError`` is never
        turned into a zeroed result.
        """
        now = ensure_utc(now) if now is not None else utc_now()
        started = time.perf_counter()

        range_start, range_end = local_day_range_utc(request.start_date, request.end_date)
        try:
            if range_start > now:
                parameters = await self.repository.load_oee_parameters(request.machine_id)
                logger.info(
                    "Analysis range starts in the future",
                    machine_id=request.machine_id,
                    start_date=request.start_date.isoformat()
                )
                application_metrics.record_analysis("empty", time.perf_counter() - started)
                return _with_parameters(
                    AnalysisResult.empty(request, now),
                    parameters or OeeParameters.defaults(request.machine_id)
                )

            snapshot = await self.load_snapshot(request, range_start, range_end)
        except DataAccessError as e:
            logger.error(
                "OEE analysis aborted, data store unavailable",
                machine_id=request.machine_id,
                error=e.message
            )
            application_metrics.record_analysis("data_access_error", time.perf_counter() - started)
            raise

        result = compute_analysis_from_snapshot(request, snapshot, now)
        duration = time.perf_counter() - started

        application_metrics.record_analysis("success", duration)
        application_metrics.record_oee(request.machine_id, result.oee)

        logger.info(
            "OEE analysis computed",
            machine_id=request.machine_id,
            start_date=request.start_date.isoformat(),
            end_date=request.end_date.isoformat(),
            shift_id=request.shift_id,
            events=len(snapshot.events),
            samples=len(snapshot.samples),
            availability=result.availability,
            performance=result.performance,
            quality=result.quality,
            oee=result.oee,
            duration_seconds=round(duration, 4)
        )
        return result
