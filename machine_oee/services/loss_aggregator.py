"""
Machine OEE - Loss Aggregator

Collects unplanned-downtime per cause and ranks the causes by stopped time.
"""

from datetime import timedelta
from typing import Dict, List

from machine_oee.models.oee import LossCause


class LossAccumulator:
    """Total stopped time and number of stops per alarm cause."""

    def __init__(self):
        self._durations: Dict[str, timedelta] = {}
        self._frequencies: Dict[str, int] = {}

    def add_duration(self, label: str, duration: timedelta) -> None:
        self._durations[label] = self._durations.get(label, timedelta(0)) + duration
        self._frequencies.setdefault(label, 0)

    def add_occurrence(self, label: str) -> None:
        self._frequencies[label] = self._frequencies.get(label, 0) + 1
        self._durations.setdefault(label, timedelta(0))

    def top(self, limit: int = 5) -> List[LossCause]:
        """Causes by descending total duration; ties keep first-seen order."""
        ranked = sorted(self._durations.items(), key=lambda item: item[1], reverse=True)
        return [
            LossCause(label=label, total_duration=duration, frequency=self._frequencies[label])
            for label, duration in ranked[:limit]
        ]
