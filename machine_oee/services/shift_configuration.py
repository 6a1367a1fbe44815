"""
Machine OEE - Shift Configuration Service

This module contains the rules for maintaining a machine's shifts and their
planned stoppages. Every operation is scoped to one machine: a shift or
stoppage of another machine is reported as not found.
"""

from typing import List

import structlog

from machine_oee.models.oee import PlannedStoppage, PlannedStoppageCreate, ShiftCreate, ShiftDefinition
from machine_oee.services.oee_repository import OeeRepository
from machine_oee.utils.exceptions import BusinessLogicError, NotFoundError

logger = structlog.get_logger()


class ShiftConfigurationService:
    """Service for shift and planned stoppage maintenance."""

    def __init__(self, repository: OeeRepository = None):
        self.repository = repository or OeeRepository()

    async def list_shifts(self, machine_id: str) -> List[ShiftDefinition]:
        return await self.repository.load_shifts(machine_id)

    async def create_shift(self, machine_id: str, shift: ShiftCreate) -> ShiftDefinition:
        created = await self.repository.insert_shift(machine_id, shift)

        logger.info(
            "Shift created",
            machine_id=machine_id,
            shift_id=created.id,
            start_time=created.start_time.isoformat(),
            end_time=created.end_time.isoformat()
        )
        return created

    async def delete_shift(self, machine_id: str, shift_id: int) -> None:
        """Delete a shift and its planned stoppages."""
        if not await self.repository.delete_shift(machine_id, shift_id):
            raise NotFoundError("Shift", str(shift_id))

        logger.info("Shift deleted", machine_id=machine_id, shift_id=shift_id)

    async def add_planned_stoppage(
        self,
        machine_id: str,
        shift_id: int,
        stoppage: PlannedStoppageCreate
    ) -> PlannedStoppage:
        """
        Add a planned stoppage to a shift.

        The stoppages of a shift may not add up to more than the shift
        itself; for an overnight shift that is the time until its end on the
        next day.
        """
        shifts = await self.repository.load_shifts(machine_id, shift_id)
        if not shifts:
            raise NotFoundError("Shift", str(shift_id))
        shift = shifts[0]

        shift_minutes = int(shift.scheduled_duration.total_seconds() // 60)
        occupied_minutes = sum(stop.duration_minutes for stop in shift.planned_stoppages)
        if occupied_minutes + stoppage.duration_minutes > shift_minutes:
            raise BusinessLogicError(
                f"Shift has {shift_minutes} min and already holds {occupied_minutes} min of planned "
                f"stoppages; adding {stoppage.duration_minutes} min would exceed it",
                {
                    "shift_minutes": shift_minutes,
                    "occupied_minutes": occupied_minutes,
                    "requested_minutes": stoppage.duration_minutes
                }
            )

        created = await self.repository.insert_planned_stoppage(shift_id, stoppage)

        logger.info(
            "Planned stoppage added",
            machine_id=machine_id,
            shift_id=shift_id,
            stoppage_id=created.id,
            duration_minutes=created.duration_minutes
        )
        return created

    async def delete_planned_stoppage(self, machine_id: str, shift_id: int, stoppage_id: int) -> None:
        if not await self.repository.delete_planned_stoppage(machine_id, shift_id, stoppage_id):
            raise NotFoundError("Planned stoppage", str(stoppage_id))

        logger.info("Planned stoppage deleted", machine_id=machine_id, shift_id=shift_id, stoppage_id=stoppage_id)
