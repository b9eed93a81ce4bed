"""
History ingestion.

Turns the tail of a previous schedule into the "last taught" memory the solver
starts from, and works out which 22 groups make up the roster.
"""

import datetime as dt
import logging
import re
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from .calendar_slots import iter_school_days, periods_for_cycle
from .models import (
    MAKE_UP_LABEL,
    ROSTER_SIZE,
    CompactHistory,
    HistoryRecord,
    default_roster,
)

logger = logging.getLogger(__name__)

# group name -> period -> most recent date
PeriodMemory = Dict[str, Dict[int, dt.date]]

History = Union[CompactHistory, Sequence[HistoryRecord], None]

# "3", "Pd 3", "pd3"
PERIOD_PATTERN = re.compile(r"\s*(?:Pd\s*)?(\d+)\s*", re.IGNORECASE)


class RosterMismatch(ValueError):
    """The roster does not hold exactly the required number of distinct groups."""

    def __init__(self, found: int, expected: int = ROSTER_SIZE, source: str = "history"):
        self.found = found
        self.expected = expected
        self.source = source
        super().__init__(
            f"Found {found} unique groups in {source}. "
            f"The schedule requires exactly {expected} unique non-{MAKE_UP_LABEL} groups."
        )


def is_make_up(group: Optional[str]) -> bool:
    return bool(group) and group.strip().upper() == MAKE_UP_LABEL


def parse_period(value) -> Optional[int]:
    """3, "3" and "Pd 3" all mean period 3. Anything else is None."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str):
        match = PERIOD_PATTERN.fullmatch(value)
        if match:
            period = int(match.group(1))
            return period if period > 0 else None
    return None


def parse_date(value) -> Optional[dt.date]:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return dt.date.fromisoformat(text)
        except ValueError:
            pass
        try:
            return dt.datetime.fromisoformat(text).date()
        except ValueError:
            return None
    return None


def _distinct_groups(names: Iterable[Optional[str]]) -> List[str]:
    # First-seen order, make-ups and blanks dropped
    seen = {}
    for name in names:
        if not name or not name.strip() or is_make_up(name):
            continue
        seen.setdefault(name.strip(), None)
    return list(seen)


def check_roster(names: Iterable[Optional[str]], source: str = "roster") -> List[str]:
    roster = _distinct_groups(names)
    if len(roster) != ROSTER_SIZE:
        raise RosterMismatch(len(roster), source=source)
    return roster


def infer_roster(records: Iterable[HistoryRecord]) -> List[str]:
    """Distinct non-make-up groups of a flat history, in first-seen order."""
    return check_roster((record.group for record in records), source="history")


def expand_compact_history(
    history: CompactHistory,
    period_sets: Optional[Dict[int, List[int]]] = None,
) -> List[HistoryRecord]:
    """Attribute the roster, in order, to the slots following its start date.

    Uses the same weekday / period-set walk as the slot generator (no days
    off) and stops as soon as every group has been placed once.
    """
    groups = list(history.groups)
    records: List[HistoryRecord] = []
    if not groups:
        return records

    # A week always holds at least five slots, so this horizon can't run short
    horizon = len(groups) + 1
    remaining = iter(groups)
    for day, cycle in iter_school_days(history.startDate, history.startCycle, horizon):
        for period in periods_for_cycle(cycle, period_sets):
            group = next(remaining, None)
            if group is None:
                return records
            records.append(HistoryRecord(date=day, period=period, group=group))
    return records


def seed_period_memory(records: Iterable[HistoryRecord], roster: Sequence[str]) -> PeriodMemory:
    """Most recent date per group and period.

    Make-ups and groups outside the roster are ignored; malformed records are
    skipped and logged.
    """
    memory: PeriodMemory = {group: {} for group in roster}
    used = skipped = 0

    for index, record in enumerate(records):
        if is_make_up(record.group):
            continue
        group = (record.group or "").strip()
        if group not in memory:
            logger.debug("Ignoring history record %d: group %r is not on the roster", index, record.group)
            continue

        lesson_date = parse_date(record.date)
        period = parse_period(record.period)
        if lesson_date is None or period is None:
            skipped += 1
            logger.warning(
                "Skipping history record %d (%r, %r, %r): unparseable date or period",
                index, record.date, record.period, record.group,
            )
            continue

        previous = memory[group].get(period)
        if previous is None or lesson_date > previous:
            memory[group][period] = lesson_date
        used += 1

    logger.info("📜 History seeded from %d records (%d skipped)", used, skipped)
    return memory


def ingest_history(
    history: History = None,
    roster: Optional[Sequence[str]] = None,
    period_sets: Optional[Dict[int, List[int]]] = None,
) -> Tuple[List[str], PeriodMemory]:
    """Resolve the roster and seed memory for one run.

    Roster precedence: explicit roster, then the compact history's groups,
    then the groups found in a flat history, then the default letters.
    A roster that does not hold exactly 22 distinct groups raises
    RosterMismatch; there is no silent fallback.
    """
    if isinstance(history, CompactHistory):
        records = expand_compact_history(history, period_sets)
        if roster is None:
            roster = check_roster(history.groups, source="history")
    else:
        records = list(history or [])
        if roster is None and records:
            roster = infer_roster(records)

    if roster is None:
        roster = default_roster()
    else:
        roster = check_roster(roster)

    return roster, seed_period_memory(records, roster)
