"""
Machine OEE - Production Differencer

Turns the machine's cumulative production counter into produced units per
window, and totals manual scrap over the analysis range.
"""

from bisect import bisect_right
from datetime import datetime
from typing import Iterable, List, Optional

import structlog

from machine_oee.models.oee import ProductionSample
from machine_oee.services.event_timeline import TypeTimeline
from machine_oee.utils.metrics import application_metrics

logger = structlog.get_logger()


def counter_delta(before: int, after: int) -> int:
    """
    Units produced between two counter readings.

    A reading lower than the previous one means the device restarted and its
    counter reset; the new reading is then the count produced since reset.
    """
    if after >= before:
        return after - before
    return after


class ProductionCounter:
    """Nearest-at-or-before lookups over a machine's counter samples."""

    def __init__(self, samples: Iterable[ProductionSample], preceding: Optional[ProductionSample] = None):
        self.samples: List[ProductionSample] = sorted(samples, key=lambda s: s.timestamp)
        self.timestamps: List[datetime] = [s.timestamp for s in self.samples]
        self.preceding = preceding

    def count_at(self, instant: datetime) -> int:
        """Latest counter value at or before ``instant``; 0 when there is none."""
        idx = bisect_right(self.timestamps, instant)
        if idx > 0:
            return self.samples[idx - 1].cumulative_count
        if self.preceding is not None and self.preceding.timestamp <= instant:
            return self.preceding.cumulative_count
        return 0

    def produced_between(self, start: datetime, end: datetime) -> int:
        return counter_delta(self.count_at(start), self.count_at(end))


def manual_scrap_total(timeline: TypeTimeline, start: datetime, end: datetime) -> int:
    """Sum of manual scrap quantities recorded in [start, end]; unparseable entries are skipped."""
    total = 0
    malformed = 0
    for event in timeline.between(start, end):
        try:
            total += int(str(event.value).strip())
        except (TypeError, ValueError):
            malformed += 1
            logger.warning(
                "Skipping manual scrap event with malformed quantity",
                origin_id=event.origin_id,
                timestamp=event.timestamp.isoformat(),
                value=event.value
            )
    application_metrics.record_malformed("manual_scrap", malformed)
    return total
