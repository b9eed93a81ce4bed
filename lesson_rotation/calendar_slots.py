"""Calendar slot generation: weekdays, days off and the alternating period sets."""

import datetime as dt
import logging
from typing import Dict, Iterable, List, Optional

from .models import DEFAULT_PERIOD_SETS, Slot

logger = logging.getLogger(__name__)


def cycle_label(day_cycle: int) -> int:
    """Odd cycle days are Day 1, even ones Day 2."""
    return 1 if day_cycle % 2 else 2


def periods_for_cycle(day_cycle: int, period_sets: Optional[Dict[int, List[int]]] = None) -> List[int]:
    period_sets = period_sets or DEFAULT_PERIOD_SETS
    return list(period_sets[cycle_label(day_cycle)])


def week_identifier(day: dt.date) -> dt.date:
    """Monday of the week containing ``day``."""
    return day - dt.timedelta(days=day.weekday())


def is_weekday(day: dt.date) -> bool:
    return day.weekday() < 5


def iter_school_days(
    start_date: dt.date,
    day_cycle: int,
    weeks: int,
    days_off: Iterable[dt.date] = (),
):
    """Yield (date, day_cycle) for every teaching day in the horizon.

    Weekends and days off are skipped without advancing the cycle.
    """
    if weeks <= 0:
        raise ValueError(f"weeks must be positive, got {weeks}")
    if day_cycle < 1:
        raise ValueError(f"day_cycle must be >= 1, got {day_cycle}")

    skip = set(days_off)
    current_cycle = day_cycle
    for offset in range(weeks * 7):
        day = start_date + dt.timedelta(days=offset)
        if not is_weekday(day) or day in skip:
            continue
        yield day, current_cycle
        current_cycle += 1


def generate_slots(
    start_date: dt.date,
    day_cycle: int,
    weeks: int,
    days_off: Iterable[dt.date] = (),
    period_sets: Optional[Dict[int, List[int]]] = None,
) -> List[Slot]:
    """Every assignable (date, period) slot in ascending (date, period) order."""
    slots = []
    days = 0
    for day, cycle in iter_school_days(start_date, day_cycle, weeks, days_off):
        for period in periods_for_cycle(cycle, period_sets):
            slots.append(Slot(date=day, period=period, dayCycle=cycle))
        days += 1

    logger.debug(
        "Generated %d slots over %d teaching days (%s + %d weeks)",
        len(slots), days, start_date.isoformat(), weeks,
    )
    return slots
