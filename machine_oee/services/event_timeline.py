"""
Machine OEE - Event Timeline

Time-ordered, per-type view over the events loaded for an analysis. Each
type also remembers the latest event preceding the loaded range so the state
carried into the first window can be recovered without loading history.
"""

from bisect import bisect_left, bisect_right
from collections import defaultdict
from datetime import datetime
from typing import Container, Dict, Iterable, List, Optional

from machine_oee.models.oee import EventRecord


class TypeTimeline:
    """Events of a single type, oldest first; co-incident events keep load order."""

    def __init__(self, events: Iterable[EventRecord], preceding: Optional[EventRecord] = None):
        self.events: List[EventRecord] = sorted(events, key=lambda e: e.timestamp)
        self.timestamps: List[datetime] = [e.timestamp for e in self.events]
        self.preceding = preceding

    def last_before(self, instant: datetime, codes: Optional[Container[str]] = None) -> Optional[EventRecord]:
        """
        Latest event strictly before ``instant``.

        With ``codes``, only events carrying one of them are considered.
        """
        for idx in range(bisect_left(self.timestamps, instant) - 1, -1, -1):
            event = self.events[idx]
            if codes is None or event.code in codes:
                return event

        preceding = self.preceding
        if preceding is not None and preceding.timestamp < instant and (codes is None or preceding.code in codes):
            return preceding
        return None

    def between(self, start: datetime, end: datetime) -> List[EventRecord]:
        """Events with start <= timestamp <= end."""
        lo = bisect_left(self.timestamps, start)
        hi = bisect_right(self.timestamps, end)
        return self.events[lo:hi]


class EventTimeline:
    """Per-type timelines for one machine."""

    def __init__(self, by_type: Dict[str, TypeTimeline]):
        self._by_type = by_type

    def of_type(self, event_type: str) -> TypeTimeline:
        timeline = self._by_type.get(event_type)
        return timeline if timeline is not None else TypeTimeline([])


def build_event_timeline(
    events: Iterable[EventRecord],
    preceding: Optional[Iterable[EventRecord]] = None
) -> EventTimeline:
    """Group events by type. ``preceding`` holds at most one prior event per type."""
    grouped: Dict[str, List[EventRecord]] = defaultdict(list)
    for event in events:
        grouped[event.event_type].append(event)

    before: Dict[str, EventRecord] = {}
    for event in preceding or ():
        if event is None:
            continue
        current = before.get(event.event_type)
        if current is None or event.timestamp >= current.timestamp:
            before[event.event_type] = event

    return EventTimeline({
        event_type: TypeTimeline(grouped.get(event_type, []), before.get(event_type))
        for event_type in set(grouped) | set(before)
    })
