"""
Machine OEE - Shift Resolver

Decides which shift definitions drive an analysis. Machines without any
configured shift run on a virtual 24h shift so the accounting loop never
needs a special case for them.
"""

from datetime import time
from typing import List, Optional

import structlog

from machine_oee.models.oee import ShiftDefinition

logger = structlog.get_logger()

VIRTUAL_SHIFT_ID = 0
VIRTUAL_SHIFT_NAME = "Default shift (24h)"


def virtual_shift(machine_id: str) -> ShiftDefinition:
    """Continuous, unscheduled operation: 00:00:00 to the last microsecond of the day."""
    return ShiftDefinition(
        id=VIRTUAL_SHIFT_ID,
        machine_id=machine_id,
        name=VIRTUAL_SHIFT_NAME,
        start_time=time.min,
        end_time=time.max,
        planned_stoppages=[],
    )


def resolve_shifts(
    machine_id: str,
    configured: List[ShiftDefinition],
    shift_id: Optional[int] = None
) -> List[ShiftDefinition]:
    """
    Shifts to iterate for an analysis.

    With ``shift_id`` > 0 only that shift is kept; an unknown id yields an
    empty list (the caller answers with an all-zero result). Without a filter
    and without configuration, the virtual shift is returned.
    """
    if shift_id is not None and shift_id > 0:
        selected = [shift for shift in configured if shift.id == shift_id]
        if not selected:
            logger.info("Requested shift not configured", machine_id=machine_id, shift_id=shift_id)
        return selected

    if not configured:
        logger.debug("No shifts configured, using virtual shift", machine_id=machine_id)
        return [virtual_shift(machine_id)]

    return list(configured)
