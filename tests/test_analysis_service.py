# tests/test_analysis_service.py
"""End-to-end analysis over the in-memory repository with a fixed "now"."""

from datetime import date, datetime, timedelta, timezone

import pytest

from machine_oee.models.oee import AnalysisRequest, EventType, OeeParameters
from machine_oee.services.analysis_service import (
    AnalysisSnapshot, OEEAnalysisService, compute_analysis_from_snapshot
)
from machine_oee.utils.exceptions import DataAccessError
from tests.factories import (
    MACHINE, FakeOeeRepository, alarm_off, alarm_on, event, local, sample, scrap, shift,
    warning_off, warning_on
)

pytestmark = pytest.mark.asyncio

DAY = date(2024, 3, 4)
NOW = datetime(2024, 3, 20, 12, 0, tzinfo=timezone.utc)
DAY_SHIFT = shift(1, (8, 0), (16, 0))


def _parameters(rate=50, scrap_enabled=False):
    return OeeParameters(machine_id=MACHINE, ideal_rate_per_hour=rate, manual_scrap_enabled=scrap_enabled)


def _request(start=DAY, end=DAY, shift_id=None):
    return AnalysisRequest(machine_id=MACHINE, start_date=start, end_date=end, shift_id=shift_id)


async def _analyze(repository, now=NOW, **request):
    return await OEEAnalysisService(repository).compute_analysis(_request(**request), now=now)


async def test_ideal_shift_reaches_full_oee():
    repository = FakeOeeRepository(
        samples=[sample(local(2024, 3, 4, 8), 0), sample(local(2024, 3, 4, 16), 400)],
        shifts=[DAY_SHIFT],
        parameters=_parameters(rate=50),
    )

    result = await _analyze(repository)

    assert result.nominal_scheduled_time == timedelta(hours=8)
    assert result.elapsed_operating_time == timedelta(hours=8)
    assert result.total_produced == 400
    assert result.ideal_produced == 400
    assert (result.availability, result.performance, result.quality, result.oee) == (100.0, 100.0, 100.0, 100.0)
    assert result.top_losses == []


async def test_single_alarm_reduces_availability():
    repository = FakeOeeRepository(
        events=[alarm_on(local(2024, 3, 4, 10), "Jam"), alarm_off(local(2024, 3, 4, 10, 30))],
        samples=[sample(local(2024, 3, 4, 8), 0), sample(local(2024, 3, 4, 16), 300)],
        shifts=[DAY_SHIFT],
        parameters=_parameters(rate=50),
    )

    result = await _analyze(repository)

    assert result.unplanned_downtime == timedelta(minutes=30)
    assert result.net_operating_time == timedelta(hours=7, minutes=30)
    assert result.availability == pytest.approx(93.75)
    assert result.ideal_produced == 375
    assert result.performance == pytest.approx(80.0)
    assert result.oee == pytest.approx(75.0)
    (loss,) = result.top_losses
    assert (loss.label, loss.total_duration, loss.frequency) == ("Jam", timedelta(minutes=30), 1)


async def test_planned_stoppage_is_not_charged_as_downtime():
    repository = FakeOeeRepository(shifts=[shift(1, (8, 0), (16, 0), [45, 15])], parameters=_parameters())

    result = await _analyze(repository)

    assert result.nominal_scheduled_time == timedelta(hours=8)
    assert result.planned_stoppage_time == timedelta(hours=1)
    assert result.loading_time == timedelta(hours=7)
    assert result.elapsed_operating_time == timedelta(hours=7)
    assert result.availability == 100.0


async def test_overlapping_alarm_and_warning():
    repository = FakeOeeRepository(
        events=[
            alarm_on(local(2024, 3, 4, 10), "Jam"),
            warning_on(local(2024, 3, 4, 10, 30)),
            alarm_off(local(2024, 3, 4, 11)),
            warning_off(local(2024, 3, 4, 11, 30)),
        ],
        shifts=[DAY_SHIFT],
    )

    result = await _analyze(repository)

    assert result.unplanned_downtime == timedelta(hours=1)
    assert result.waiting_time == timedelta(hours=1)
    assert result.availability == pytest.approx(87.5)


async def test_counter_reset_falls_back_to_new_reading():
    repository = FakeOeeRepository(
        samples=[sample(local(2024, 3, 4, 8), 1000), sample(local(2024, 3, 4, 16), 50)],
        shifts=[DAY_SHIFT],
        parameters=_parameters(rate=50),
    )

    result = await _analyze(repository)

    assert result.total_produced == 50


async def test_state_inherited_from_previous_day_without_shifts():
    repository = FakeOeeRepository(events=[alarm_on(local(2024, 3, 3, 20), "Overheat")])

    result = await _analyze(repository)

    full_day = timedelta(hours=24) - timedelta(microseconds=1)
    assert result.nominal_scheduled_time == full_day
    assert result.unplanned_downtime == full_day
    assert result.availability == 0.0
    (loss,) = result.top_losses
    assert loss.label == "Overheat"
    assert loss.frequency == 0


async def test_in_progress_shift_uses_elapsed_time_for_kpis():
    repository = FakeOeeRepository(
        events=[alarm_on(local(2024, 3, 4, 10), "Jam"), alarm_off(local(2024, 3, 4, 10, 30))],
        shifts=[DAY_SHIFT],
    )

    result = await _analyze(repository, now=local(2024, 3, 4, 12))

    assert result.nominal_scheduled_time == timedelta(hours=8)
    assert result.elapsed_operating_time == timedelta(hours=4)
    assert result.availability == pytest.approx(87.5)
    assert result.generated_at == local(2024, 3, 4, 12)


async def test_overnight_shift_spans_midnight():
    repository = FakeOeeRepository(
        events=[alarm_on(local(2024, 3, 5, 2), "Jam"), alarm_off(local(2024, 3, 5, 3))],
        shifts=[shift(3, (22, 0), (6, 0))],
    )

    result = await _analyze(repository, start=DAY, end=DAY + timedelta(days=1))

    assert result.nominal_scheduled_time == timedelta(hours=10) - timedelta(microseconds=1)
    assert result.unplanned_downtime == timedelta(hours=1)


async def test_manual_scrap_reduces_quality():
    repository = FakeOeeRepository(
        events=[scrap(local(2024, 3, 4, 9), 5), scrap(local(2024, 3, 4, 14), "n/a"), scrap(local(2024, 3, 4, 15), 3)],
        samples=[sample(local(2024, 3, 4, 8), 0), sample(local(2024, 3, 4, 16), 400)],
        shifts=[DAY_SHIFT],
        parameters=_parameters(rate=50, scrap_enabled=True),
    )

    result = await _analyze(repository)

    assert result.scrap_count == 8
    assert result.quality == pytest.approx(98.0)
    assert result.manual_scrap_enabled is True


async def test_shift_filter_keeps_only_requested_shift():
    repository = FakeOeeRepository(
        events=[alarm_on(local(2024, 3, 4, 10), "Jam"), alarm_off(local(2024, 3, 4, 11))],
        shifts=[shift(1, (6, 0), (14, 0)), shift(2, (14, 0), (22, 0))],
    )

    result = await _analyze(repository, shift_id=2)

    assert result.nominal_scheduled_time == timedelta(hours=8)
    assert result.unplanned_downtime == timedelta(0)
    assert result.shift_id == 2


async def test_unknown_shift_returns_all_zero_result():
    repository = FakeOeeRepository(shifts=[DAY_SHIFT], parameters=_parameters(rate=50))

    result = await _analyze(repository, shift_id=99)

    assert (result.availability, result.performance, result.quality, result.oee) == (0.0, 0.0, 0.0, 0.0)
    assert result.nominal_scheduled_time == timedelta(0)
    assert result.ideal_rate_per_hour == 50


async def test_no_data_gives_deterministic_zero_analysis():
    result = await _analyze(FakeOeeRepository())

    assert result.availability == 100.0
    assert result.performance == 0.0
    assert result.quality == 100.0
    assert result.oee == 0.0
    assert result.total_produced == 0
    assert result.ideal_rate_per_hour == 0
    assert result.refresh_interval_minutes == 10


async def test_future_range_reads_only_parameters():
    repository = FakeOeeRepository(shifts=[DAY_SHIFT], parameters=_parameters(rate=50, scrap_enabled=True))

    result = await _analyze(repository, start=date(2024, 4, 1), end=date(2024, 4, 2))

    assert result.oee == 0.0
    assert result.nominal_scheduled_time == timedelta(0)
    assert result.ideal_rate_per_hour == 50
    assert result.manual_scrap_enabled is True
    assert repository.calls == ["load_oee_parameters"]


async def test_future_range_failure_propagates():
    repository = FakeOeeRepository(fail_on="load_oee_parameters")

    with pytest.raises(DataAccessError):
        await _analyze(repository, start=date(2024, 4, 1), end=date(2024, 4, 2))


@pytest.mark.parametrize("shifts", [
    [DAY_SHIFT],
    [shift(1, (8, 0), (10, 0)), shift(2, (10, 0), (16, 0))],
])
async def test_acknowledge_does_not_end_stop_across_shift_boundaries(shifts):
    repository = FakeOeeRepository(
        events=[
            alarm_on(local(2024, 3, 4, 9), "Jam"),
            event(local(2024, 3, 4, 9, 30), EventType.ALARM.value, "alarmeACK"),
            alarm_off(local(2024, 3, 4, 11)),
        ],
        shifts=shifts,
    )

    result = await _analyze(repository)

    assert result.unplanned_downtime == timedelta(hours=2)
    assert result.top_losses[0].total_duration == timedelta(hours=2)


async def test_acknowledge_on_previous_day_keeps_stop_running():
    repository = FakeOeeRepository(events=[
        alarm_on(local(2024, 3, 3, 20), "Overheat"),
        event(local(2024, 3, 3, 21), EventType.ALARM.value, "alarmeACK"),
    ])

    result = await _analyze(repository)

    assert result.unplanned_downtime == timedelta(hours=24) - timedelta(microseconds=1)
    assert result.availability == 0.0


async def test_virtual_day_in_progress_separates_nominal_and_elapsed():
    result = await _analyze(FakeOeeRepository(), now=local(2024, 3, 4, 12))

    assert result.nominal_scheduled_time == timedelta(hours=24) - timedelta(microseconds=1)
    assert result.elapsed_operating_time == timedelta(hours=12)
    assert result.nominal_scheduled_time != result.elapsed_operating_time
    assert result.availability == 100.0


async def test_completed_windows_are_idempotent():
    repository = FakeOeeRepository(
        events=[alarm_on(local(2024, 3, 4, 10), "Jam"), alarm_off(local(2024, 3, 4, 10, 30))],
        samples=[sample(local(2024, 3, 4, 8), 0), sample(local(2024, 3, 4, 16), 300)],
        shifts=[DAY_SHIFT],
        parameters=_parameters(rate=50),
    )

    first = await _analyze(repository)
    second = await _analyze(repository)

    assert first == second


@pytest.mark.parametrize("operation", ["load_events", "load_shifts", "load_oee_parameters"])
async def test_data_access_failure_propagates(operation):
    repository = FakeOeeRepository(shifts=[DAY_SHIFT], fail_on=operation)

    with pytest.raises(DataAccessError) as excinfo:
        await _analyze(repository)

    assert excinfo.value.details["operation"] == operation
    assert excinfo.value.status_code == 503


async def test_snapshot_computation_is_pure():
    snapshot = AnalysisSnapshot(
        events=[alarm_on(local(2024, 3, 4, 9), "Jam"), alarm_off(local(2024, 3, 4, 9, 20))],
        shifts=[DAY_SHIFT],
        parameters=_parameters(rate=60),
    )

    first = compute_analysis_from_snapshot(_request(), snapshot, NOW)
    second = compute_analysis_from_snapshot(_request(), snapshot, NOW)

    assert first == second
    assert first.unplanned_downtime == timedelta(minutes=20)
    assert first.ideal_produced == 460
