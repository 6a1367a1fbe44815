"""
Machine OEE - OEE Data Repository

Read access to the machine event log, production counter samples, shift
configuration and OEE parameters, plus the create-on-first-write update of
OEE parameters and the maintenance of shifts and their planned stoppages.
All instants crossing this boundary are UTC.
"""

from datetime import datetime, time, timedelta
from typing import Any, Dict, List, Optional

import structlog

from machine_oee.database import execute_query
from machine_oee.models.oee import (
    EventRecord, OeeParameters, OeeParametersUpdate, PlannedStoppage,
    PlannedStoppageCreate, ProductionSample, ShiftCreate, ShiftDefinition
)
from machine_oee.utils.exceptions import DATA_ACCESS_FAILURES, handle_database_exception
from machine_oee.utils.metrics import application_metrics

logger = structlog.get_logger()


EVENTS_QUERY = """
SELECT timestamp, origin_id, event_type, code, value, info
FROM machine_events
WHERE origin_id = :machine_id
AND timestamp >= :utc_from
AND timestamp <= :utc_to
ORDER BY timestamp, id
"""

LAST_EVENT_BEFORE_QUERY = """
SELECT timestamp, origin_id, event_type, code, value, info
FROM machine_events
WHERE origin_id = :machine_id
AND event_type = :event_type
AND code IN (:on_code, :off_code)
AND timestamp < :utc_instant
ORDER BY timestamp DESC, id DESC
LIMIT 1
"""

SAMPLES_QUERY = """
SELECT timestamp, origin_id, value
FROM production_samples
WHERE origin_id = :machine_id
AND timestamp >= :utc_from
AND timestamp <= :utc_to
ORDER BY timestamp, id
"""

LAST_SAMPLE_AT_OR_BEFORE_QUERY = """
SELECT timestamp, origin_id, value
FROM production_samples
WHERE origin_id = :machine_id
AND timestamp <= :utc_instant
ORDER BY timestamp DESC, id DESC
LIMIT 1
"""

SHIFTS_QUERY = """
SELECT s.id, s.machine_id, s.name, s.start_time, s.end_time,
       p.id AS stoppage_id, p.description AS stoppage_description,
       p.duration_minutes AS stoppage_duration_minutes
FROM shifts s
LEFT JOIN planned_stoppages p ON p.shift_id = s.id
WHERE s.machine_id = :machine_id
{shift_filter}
ORDER BY s.start_time, s.id, p.id
"""

PARAMETERS_QUERY = """
SELECT machine_id, ideal_rate_per_hour, manual_scrap_enabled, refresh_interval_minutes
FROM oee_parameters
WHERE machine_id = :machine_id
"""

UPSERT_PARAMETERS_QUERY = """
INSERT INTO oee_parameters
(machine_id, ideal_rate_per_hour, manual_scrap_enabled, refresh_interval_minutes)
VALUES (:machine_id, :ideal_rate_per_hour, :manual_scrap_enabled, :refresh_interval_minutes)
ON CONFLICT (machine_id) DO UPDATE SET
    ideal_rate_per_hour = EXCLUDED.ideal_rate_per_hour,
    manual_scrap_enabled = EXCLUDED.manual_scrap_enabled,
    refresh_interval_minutes = EXCLUDED.refresh_interval_minutes
RETURNING machine_id, ideal_rate_per_hour, manual_scrap_enabled, refresh_interval_minutes
"""

INSERT_SHIFT_QUERY = """
INSERT INTO shifts (machine_id, name, start_time, end_time)
VALUES (:machine_id, :name, :start_time, :end_time)
RETURNING id, machine_id, name, start_time, end_time
"""

# Stoppages go with their shift; both deletes run in one statement.
DELETE_SHIFT_QUERY = """
WITH removed_stoppages AS (
    DELETE FROM planned_stoppages
    WHERE shift_id IN (SELECT id FROM shifts WHERE id = :shift_id AND machine_id = :machine_id)
)
DELETE FROM shifts
WHERE id = :shift_id
AND machine_id = :machine_id
RETURNING id
"""

INSERT_STOPPAGE_QUERY = """
INSERT INTO planned_stoppages (shift_id, description, duration_minutes)
VALUES (:shift_id, :description, :duration_minutes)
RETURNING id, description, duration_minutes
"""

DELETE_STOPPAGE_QUERY = """
DELETE FROM planned_stoppages p
USING shifts s
WHERE p.id = :stoppage_id
AND p.shift_id = :shift_id
AND s.id = p.shift_id
AND s.machine_id = :machine_id
RETURNING p.id
"""


def _to_time(value: Any) -> time:
    """Shift times may be stored as TIME or as an INTERVAL since midnight."""
    if isinstance(value, timedelta):
        return (datetime.min + value).time()
    return value


class OeeRepository:
    """SQL-backed repository for the OEE analysis inputs."""

    async def _fetch(self, operation: str, query: str, params: Dict[str, Any]) -> list:
        try:
            return await execute_query(query, params)
        except DATA_ACCESS_FAILURES as e:
            logger.error("OEE data load failed", operation=operation, error=str(e))
            raise handle_database_exception(operation, e)

    async def load_events(self, machine_id: str, utc_from: datetime, utc_to: datetime) -> List[EventRecord]:
        """Events of a machine in [utc_from, utc_to], oldest first."""
        rows = await self._fetch("load_events", EVENTS_QUERY, {
            "machine_id": machine_id,
            "utc_from": utc_from,
            "utc_to": utc_to
        })
        return [EventRecord.model_validate(dict(row)) for row in rows]

    async def load_last_event_before(
        self,
        machine_id: str,
        event_type: str,
        utc_instant: datetime,
        on_code: str,
        off_code: str
    ) -> Optional[EventRecord]:
        """Latest ON or OFF event of ``event_type`` strictly before ``utc_instant``."""
        rows = await self._fetch("load_last_event_before", LAST_EVENT_BEFORE_QUERY, {
            "machine_id": machine_id,
            "event_type": event_type,
            "utc_instant": utc_instant,
            "on_code": on_code,
            "off_code": off_code
        })
        if not rows:
            return None
        return EventRecord.model_validate(dict(rows[0]))

    async def load_production_samples(
        self,
        machine_id: str,
        utc_from: datetime,
        utc_to: datetime
    ) -> List[ProductionSample]:
        """Counter samples in [utc_from, utc_to], oldest first; malformed values are skipped."""
        rows = await self._fetch("load_production_samples", SAMPLES_QUERY, {
            "machine_id": machine_id,
            "utc_from": utc_from,
            "utc_to": utc_to
        })
        return self._parse_samples(rows)

    async def load_last_sample_at_or_before(
        self,
        machine_id: str,
        utc_instant: datetime
    ) -> Optional[ProductionSample]:
        rows = await self._fetch("load_last_sample_at_or_before", LAST_SAMPLE_AT_OR_BEFORE_QUERY, {
            "machine_id": machine_id,
            "utc_instant": utc_instant
        })
        samples = self._parse_samples(rows)
        return samples[0] if samples else None

    async def load_shifts(self, machine_id: str, shift_id: Optional[int] = None) -> List[ShiftDefinition]:
        """Configured shifts of a machine with their planned stoppages."""
        params: Dict[str, Any] = {"machine_id": machine_id}
        shift_filter = ""
        if shift_id is not None and shift_id > 0:
            shift_filter = "AND s.id = :shift_id"
            params["shift_id"] = shift_id

        rows = await self._fetch("load_shifts", SHIFTS_QUERY.format(shift_filter=shift_filter), params)

        shifts: Dict[int, ShiftDefinition] = {}
        for row in rows:
            shift = shifts.get(row["id"])
            if shift is None:
                shift = ShiftDefinition(
                    id=row["id"],
                    machine_id=row["machine_id"],
                    name=row["name"],
                    start_time=_to_time(row["start_time"]),
                    end_time=_to_time(row["end_time"]),
                )
                shifts[row["id"]] = shift
            if row["stoppage_id"] is not None:
                shift.planned_stoppages.append(PlannedStoppage(
                    id=row["stoppage_id"],
                    description=row["stoppage_description"],
                    duration_minutes=row["stoppage_duration_minutes"],
                ))
        return list(shifts.values())

    async def load_oee_parameters(self, machine_id: str) -> Optional[OeeParameters]:
        rows = await self._fetch("load_oee_parameters", PARAMETERS_QUERY, {"machine_id": machine_id})
        if not rows:
            return None
        return OeeParameters.model_validate(dict(rows[0]))

    async def save_oee_parameters(self, machine_id: str, changes: OeeParametersUpdate) -> OeeParameters:
        """Apply ``changes`` to a machine's parameters, creating the row on first write."""
        current = await self.load_oee_parameters(machine_id) or OeeParameters.defaults(machine_id)
        updated = current.model_copy(update=changes.model_dump(exclude_none=True))

        rows = await self._fetch("save_oee_parameters", UPSERT_PARAMETERS_QUERY, updated.model_dump())

        logger.info(
            "OEE parameters saved",
            machine_id=machine_id,
            ideal_rate_per_hour=updated.ideal_rate_per_hour,
            manual_scrap_enabled=updated.manual_scrap_enabled,
            refresh_interval_minutes=updated.refresh_interval_minutes
        )
        return OeeParameters.model_validate(dict(rows[0])) if rows else updated

    async def insert_shift(self, machine_id: str, shift: ShiftCreate) -> ShiftDefinition:
        rows = await self._fetch("insert_shift", INSERT_SHIFT_QUERY, {
            "machine_id": machine_id,
            "name": shift.name,
            "start_time": shift.start_time,
            "end_time": shift.end_time
        })
        row = rows[0]
        return ShiftDefinition(
            id=row["id"],
            machine_id=row["machine_id"],
            name=row["name"],
            start_time=_to_time(row["start_time"]),
            end_time=_to_time(row["end_time"]),
        )

    async def delete_shift(self, machine_id: str, shift_id: int) -> bool:
        """Delete a shift of ``machine_id`` with its stoppages; False when there is no such shift."""
        rows = await self._fetch("delete_shift", DELETE_SHIFT_QUERY, {
            "machine_id": machine_id,
            "shift_id": shift_id
        })
        return bool(rows)

    async def insert_planned_stoppage(self, shift_id: int, stoppage: PlannedStoppageCreate) -> PlannedStoppage:
        rows = await self._fetch("insert_planned_stoppage", INSERT_STOPPAGE_QUERY, {
            "shift_id": shift_id,
            "description": stoppage.description,
            "duration_minutes": stoppage.duration_minutes
        })
        return PlannedStoppage.model_validate(dict(rows[0]))

    async def delete_planned_stoppage(self, machine_id: str, shift_id: int, stoppage_id: int) -> bool:
        rows = await self._fetch("delete_planned_stoppage", DELETE_STOPPAGE_QUERY, {
            "machine_id": machine_id,
            "shift_id": shift_id,
            "stoppage_id": stoppage_id
        })
        return bool(rows)

    @staticmethod
    def _parse_samples(rows: list) -> List[ProductionSample]:
        samples = []
        malformed = 0
        for row in rows:
            try:
                count = int(str(row["value"]).strip())
            except (TypeError, ValueError):
                malformed += 1
                logger.warning(
                    "Skipping production sample with malformed counter",
                    origin_id=row["origin_id"],
                    timestamp=str(row["timestamp"]),
                    value=row["value"]
                )
                continue
            samples.append(ProductionSample(
                timestamp=row["timestamp"],
                origin_id=row["origin_id"],
                cumulative_count=count
            ))
        application_metrics.record_malformed("production_sample", malformed)
        return samples
