"""
Machine OEE - State Reconstructor

Rebuilds the ON/OFF state of the alarm and warning signals from the sparse
event log and measures how long each was ON inside an elapsed window.

The sweep walks the distinct boundary instants of a window (its start, its
end and every in-window event of the signal). Events sitting on the start of
a segment are applied before the segment is charged, so the charge always
follows the current state rather than counting raw events.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple

from machine_oee.config import settings
from machine_oee.models.oee import EventRecord, EventType
from machine_oee.services.event_timeline import EventTimeline, TypeTimeline
from machine_oee.services.loss_aggregator import LossAccumulator

ZERO = timedelta(0)


@dataclass(frozen=True)
class SignalCodes:
    """Event codes switching a signal ON and OFF."""
    on_code: str
    off_code: str

    @property
    def switching(self) -> Tuple[str, str]:
        return self.on_code, self.off_code


def alarm_codes() -> SignalCodes:
    return SignalCodes(settings.ALARM_ON_CODE, settings.ALARM_OFF_CODE)


def warning_codes() -> SignalCodes:
    return SignalCodes(settings.WARNING_ON_CODE, settings.WARNING_OFF_CODE)


@dataclass
class WindowSignals:
    """ON time of each signal inside one window. The two may overlap."""
    unplanned_downtime: timedelta = ZERO
    waiting_time: timedelta = ZERO


def _cause_label(event: EventRecord) -> str:
    label = (event.value or "").strip()
    return label or settings.UNKNOWN_CAUSE_LABEL


def sweep_signal(
    timeline: TypeTimeline,
    codes: SignalCodes,
    start: datetime,
    end: datetime,
    losses: Optional[LossAccumulator] = None
) -> timedelta:
    """
    ON duration of one signal in [start, end].

    The state entering the window comes from the latest ON or OFF event
    strictly before ``start`` (none means OFF). An ON event that starts a new stop (the signal
    was OFF, or the cause changes) counts one occurrence of its cause when
    ``losses`` is given; state inherited from before the window never does.
    """
    previous = timeline.last_before(start, codes.switching)
    state_on = previous is not None and previous.code == codes.on_code
    cause = _cause_label(previous) if state_on else None

    in_window = timeline.between(start, end)
    events_at: Dict[datetime, List[EventRecord]] = defaultdict(list)
    for event in in_window:
        events_at[event.timestamp].append(event)

    points = sorted({start, end, *events_at})
    on_time = ZERO

    for t1, t2 in zip(points, points[1:]):
        for event in events_at.get(t1, ()):
            if event.code == codes.on_code:
                label = _cause_label(event)
                if losses is not None and (not state_on or label != cause):
                    losses.add_occurrence(label)
                state_on = True
                cause = label
            elif event.code == codes.off_code:
                state_on = False
                cause = None

        if state_on:
            segment = t2 - t1
            on_time += segment
            if losses is not None:
                losses.add_duration(cause, segment)

    return on_time


def reconstruct_window(
    timeline: EventTimeline,
    start: datetime,
    end: datetime,
    losses: LossAccumulator
) -> WindowSignals:
    """Alarm ON time (unplanned downtime, attributed to causes) and warning ON time."""
    return WindowSignals(
        unplanned_downtime=sweep_signal(
            timeline.of_type(EventType.ALARM.value), alarm_codes(), start, end, losses
        ),
        waiting_time=sweep_signal(
            timeline.of_type(EventType.WARNING.value), warning_codes(), start, end
        ),
    )
