"""
Machine OEE - OEE Calculator Service

This module turns accumulated times and counts into the OEE KPIs.
OEE is calculated as Availability × Performance × Quality.
"""

from dataclasses import dataclass
from datetime import timedelta

import structlog

logger = structlog.get_logger()

ZERO = timedelta(0)


@dataclass(frozen=True)
class OEEInputs:
    """Figures accumulated over every elapsed window of an analysis."""
    planned_operating_time: timedelta
    unplanned_downtime: timedelta
    total_produced: int
    scrap_count: int
    ideal_rate_per_hour: int


@dataclass(frozen=True)
class OEEFigures:
    """KPIs in percent (0..100) plus the derived operating time and ideal count."""
    availability: float
    performance: float
    quality: float
    oee: float
    net_operating_time: timedelta
    ideal_produced: int


class OEECalculator:
    """OEE calculation service."""

    @staticmethod
    def calculate(inputs: OEEInputs) -> OEEFigures:
        """
        Calculate OEE from accumulated figures.

        OEE = Availability × Performance × Quality

        Where:
        - Availability = (Net Operating Time / Planned Operating Time) × 100
        - Performance = (Total Produced / Ideal Produced) × 100
        - Quality = ((Total Produced - Scrap) / Total Produced) × 100
        """
        planned = max(ZERO, inputs.planned_operating_time)
        net_operating_time = max(ZERO, planned - inputs.unplanned_downtime)

        availability = OEECalculator.calculate_availability(net_operating_time, planned)
        ideal_produced = OEECalculator.calculate_ideal_produced(inputs.ideal_rate_per_hour, net_operating_time)
        performance = OEECalculator.calculate_performance(inputs.total_produced, ideal_produced)
        quality = OEECalculator.calculate_quality(inputs.total_produced, inputs.scrap_count)
        oee = OEECalculator.calculate_oee(availability, performance, quality)

        clamp = OEECalculator.clamp_percentage
        figures = OEEFigures(
            availability=clamp(availability),
            performance=clamp(performance),
            quality=clamp(quality),
            oee=clamp(oee),
            net_operating_time=net_operating_time,
            ideal_produced=ideal_produced,
        )

        logger.debug(
            "OEE calculated",
            availability=figures.availability,
            performance=figures.performance,
            quality=figures.quality,
            oee=figures.oee
        )
        return figures

    @staticmethod
    def calculate_availability(net_operating_time: timedelta, planned_operating_time: timedelta) -> float:
        """Calculate availability component of OEE."""
        if planned_operating_time <= ZERO:
            return 0.0
        return net_operating_time / planned_operating_time * 100

    @staticmethod
    def calculate_ideal_produced(ideal_rate_per_hour: int, net_operating_time: timedelta) -> int:
        """Units the machine would make running at its ideal rate for the net operating time."""
        if ideal_rate_per_hour <= 0:
            return 0
        return round(ideal_rate_per_hour * net_operating_time.total_seconds() / 3600)

    @staticmethod
    def calculate_performance(total_produced: int, ideal_produced: int) -> float:
        """Calculate performance component of OEE."""
        if ideal_produced > 0:
            return total_produced / ideal_produced * 100
        if total_produced > 0:
            return 100.0
        return 0.0

    @staticmethod
    def calculate_quality(total_produced: int, scrap_count: int) -> float:
        """Calculate quality component of OEE. No production means no quality loss."""
        if total_produced <= 0:
            return 100.0
        return (total_produced - scrap_count) / total_produced * 100

    @staticmethod
    def calculate_oee(availability: float, performance: float, quality: float) -> float:
        return (availability / 100) * (performance / 100) * (quality / 100) * 100

    @staticmethod
    def clamp_percentage(value: float) -> float:
        return min(100.0, max(0.0, float(value)))
