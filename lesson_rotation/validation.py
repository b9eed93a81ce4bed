"""Post-solve checks of a schedule against the rotation rules."""

import datetime as dt
from collections import Counter
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .calendar_slots import is_weekday, week_identifier
from .history import PeriodMemory, is_make_up, parse_period
from .models import DayEntry, Slot, Violation, period_label


def find_violations(
    days: Sequence[DayEntry],
    threshold: int,
    seed: Optional[PeriodMemory] = None,
    days_off: Iterable[dt.date] = (),
    slots: Optional[Sequence[Slot]] = None,
    enforce_adjacency: bool = True,
) -> List[Violation]:
    """Every rule the schedule breaks, in schedule order.

    ``seed`` is the history memory the schedule continued from; its dates are
    only used as the starting point of the spacing check. Passing ``slots``
    also checks that every slot is filled exactly once.
    """
    violations: List[Violation] = []
    skip = set(days_off)
    last_seen: Dict[str, Dict[int, dt.date]] = {
        group: dict(periods) for group, periods in (seed or {}).items()
    }
    week_seen: Dict[Tuple[dt.date, str], dt.date] = {}

    for day in days:
        if not is_weekday(day.date):
            violations.append(Violation(kind="weekend", date=day.date, detail=f"{day.date:%A} is not a school day"))
        if day.date in skip:
            violations.append(Violation(kind="day_off", date=day.date, detail="date is a day off"))

        make_ups = 0
        previous_make_up = False
        for lesson in day.lessons:
            if is_make_up(lesson.group):
                make_ups += 1
                if make_ups == 2:
                    violations.append(Violation(
                        kind="make_up_count", date=day.date, period=lesson.period, group=lesson.group,
                        detail="more than one make-up on this day",
                    ))
                if enforce_adjacency and previous_make_up:
                    violations.append(Violation(
                        kind="make_up_adjacent", date=day.date, period=lesson.period, group=lesson.group,
                        detail="make-up directly after another make-up",
                    ))
                previous_make_up = True
                continue
            previous_make_up = False

            week_key = (week_identifier(day.date), lesson.group)
            if week_key in week_seen:
                violations.append(Violation(
                    kind="weekly", date=day.date, period=lesson.period, group=lesson.group,
                    detail=f"already taught on {week_seen[week_key]} this week",
                ))
            else:
                week_seen[week_key] = day.date

            period = parse_period(lesson.period)
            if period is None:
                continue
            periods = last_seen.setdefault(lesson.group, {})
            last = periods.get(period)
            if last is not None and (day.date - last).days < threshold:
                violations.append(Violation(
                    kind="spacing", date=day.date, period=lesson.period, group=lesson.group,
                    detail=f"only {(day.date - last).days} days after {last} (needs {threshold})",
                ))
            periods[period] = day.date

    if slots is not None:
        violations.extend(_completeness(days, slots))
    return violations


def _completeness(days: Sequence[DayEntry], slots: Sequence[Slot]) -> List[Violation]:
    expected = Counter((slot.date, slot.period) for slot in slots)
    actual = Counter(
        (day.date, parse_period(lesson.period)) for day in days for lesson in day.lessons
    )
    violations = []
    for (date, period), count in sorted((expected - actual).items()):
        violations.append(Violation(kind="missing_slot", date=date, period=period_label(period),
                                    detail=f"{count} slot(s) left empty"))
    for (date, period), count in sorted((actual - expected).items(), key=lambda item: (item[0][0], item[0][1] or 0)):
        violations.append(Violation(kind="extra_slot", date=date, period=period_label(period) if period else None,
                                    detail=f"{count} assignment(s) without a matching slot"))
    return violations
