# tests/test_shift_configuration.py
"""Shift and planned stoppage maintenance rules over the in-memory repository."""

from datetime import time, timedelta

import pytest

from machine_oee.models.oee import PlannedStoppageCreate, ShiftCreate
from machine_oee.services.shift_configuration import ShiftConfigurationService
from machine_oee.utils.exceptions import BusinessLogicError, DataAccessError, NotFoundError
from tests.factories import FakeOeeRepository, shift

pytestmark = pytest.mark.asyncio


def _stoppage(minutes, description="Break"):
    return PlannedStoppageCreate(description=description, duration_minutes=minutes)


async def test_created_shift_is_listed_for_its_machine_only():
    repository = FakeOeeRepository(shifts=[shift(1, (6, 0), (14, 0), machine_id="M2")])
    service = ShiftConfigurationService(repository)

    created = await service.create_shift("M1", ShiftCreate(name="Morning", start_time=time(6), end_time=time(14)))

    assert created.id == 2
    assert [s.id for s in await service.list_shifts("M1")] == [2]


async def test_shift_of_another_machine_cannot_be_deleted():
    repository = FakeOeeRepository(shifts=[shift(1, (6, 0), (14, 0), machine_id="M2")])

    with pytest.raises(NotFoundError) as excinfo:
        await ShiftConfigurationService(repository).delete_shift("M1", 1)

    assert excinfo.value.status_code == 404
    assert [s.id for s in repository.shifts] == [1]


async def test_stoppage_within_shift_duration_is_added():
    repository = FakeOeeRepository(shifts=[shift(1, (8, 0), (16, 0), stoppage_minutes=[60])])

    created = await ShiftConfigurationService(repository).add_planned_stoppage("M1", 1, _stoppage(420))

    assert created.id is not None
    assert repository.shifts[0].planned_stoppage_duration == timedelta(hours=8)


async def test_stoppages_may_not_exceed_shift_duration():
    repository = FakeOeeRepository(shifts=[shift(1, (8, 0), (16, 0), stoppage_minutes=[60])])

    with pytest.raises(BusinessLogicError) as excinfo:
        await ShiftConfigurationService(repository).add_planned_stoppage("M1", 1, _stoppage(421))

    assert excinfo.value.status_code == 400
    assert excinfo.value.details == {"shift_minutes": 480, "occupied_minutes": 60, "requested_minutes": 421}
    assert "insert_planned_stoppage" not in repository.calls


@pytest.mark.parametrize("minutes, accepted", [(80, True), (81, False)])
async def test_overnight_shift_capacity_runs_to_next_day(minutes, accepted):
    repository = FakeOeeRepository(shifts=[shift(3, (22, 0), (6, 0), stoppage_minutes=[400])])
    service = ShiftConfigurationService(repository)

    if accepted:
        await service.add_planned_stoppage("M1", 3, _stoppage(minutes))
        assert repository.shifts[0].planned_stoppage_duration == timedelta(hours=8)
    else:
        with pytest.raises(BusinessLogicError):
            await service.add_planned_stoppage("M1", 3, _stoppage(minutes))


async def test_shift_with_equal_start_and_end_holds_a_full_day():
    repository = FakeOeeRepository(shifts=[shift(1, (6, 0), (6, 0))])

    await ShiftConfigurationService(repository).add_planned_stoppage("M1", 1, _stoppage(24 * 60))

    assert repository.shifts[0].planned_stoppage_duration == timedelta(hours=24)


async def test_stoppage_for_unknown_shift_is_not_found():
    with pytest.raises(NotFoundError):
        await ShiftConfigurationService(FakeOeeRepository()).add_planned_stoppage("M1", 7, _stoppage(10))


async def test_stoppage_is_deleted_only_through_its_machine():
    repository = FakeOeeRepository(shifts=[shift(1, (8, 0), (16, 0))])
    service = ShiftConfigurationService(repository)
    created = await service.add_planned_stoppage("M1", 1, _stoppage(30))

    with pytest.raises(NotFoundError):
        await service.delete_planned_stoppage("M2", 1, created.id)

    await service.delete_planned_stoppage("M1", 1, created.id)
    assert repository.shifts[0].planned_stoppages == []


async def test_store_failure_propagates():
    repository = FakeOeeRepository(shifts=[shift(1, (8, 0), (16, 0))], fail_on="load_shifts")

    with pytest.raises(DataAccessError):
        await ShiftConfigurationService(repository).add_planned_stoppage("M1", 1, _stoppage(30))
