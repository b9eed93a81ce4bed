"""
LESSON ROTATION SOLVER

Fills every class-period slot with one of the 22 roster groups or a make-up
(MU) while keeping:
- the same group out of the same period for at least the spacing threshold
- every group to at most one lesson per week
- make-ups to at most one per day, never back to back

Two strategies share one search state:
- BacktrackingSolver: exhaustive depth-first search, strict pass (28 days)
  then relaxed pass (21 days)
- RotatingPoolSolver: single forward pass over rotating pools of groups with
  a three-tier fallback, never backtracks
"""

import datetime as dt
import logging
import sys
from contextlib import contextmanager
from typing import Callable, Dict, List, NamedTuple, Optional, Sequence, Set

from .calendar_slots import cycle_label, week_identifier
from .models import (
    MAKE_UP_LABEL,
    POOL_SIZES,
    DayEntry,
    MercyPolicy,
    Slot,
    SolverSettings,
    period_label,
)

logger = logging.getLogger(__name__)

MAKE_UP = -1
EPOCH = dt.date(1970, 1, 1)

# group index -> period -> date last taught
IndexMemory = Dict[int, Dict[int, dt.date]]

StageCallback = Optional[Callable[[str], None]]


class SearchBudgetExceeded(RuntimeError):
    """A backtracking pass went past its step budget."""


# ==================== SEARCH STATE ====================

class _Day:
    __slots__ = ("date", "day_cycle", "lessons")

    def __init__(self, date: dt.date, day_cycle: int):
        self.date = date
        self.day_cycle = day_cycle
        self.lessons: List[tuple] = []  # (period, group index)


class _Undo(NamedTuple):
    slot: Slot
    group: int
    previous_date: Optional[dt.date]
    added_to_week: bool
    added_make_up_day: bool


class Trial:
    """One tentative assignment.

    Applied on enter and rolled back on exit unless commit() was called, so an
    early return or an exception inside the block always leaves the state as
    it was before the trial.
    """

    def __init__(self, state: "SearchState", slot: Slot, group: int):
        self.state = state
        self.slot = slot
        self.group = group
        self.committed = False
        self._undo: Optional[_Undo] = None

    def __enter__(self) -> "Trial":
        self._undo = self.state._apply(self.slot, self.group)
        return self

    def commit(self) -> None:
        self.committed = True

    def __exit__(self, exc_type, exc, tb) -> bool:
        if not self.committed:
            self.state._rollback(self._undo)
        return False


class SearchState:
    """All mutable state of one solve attempt.

    Never shared between attempts: every pass starts from from_seed(), which
    copies the history seed.
    """

    def __init__(self, period_memory: IndexMemory, enforce_adjacency: bool = True):
        self.enforce_adjacency = enforce_adjacency
        self.period_memory = period_memory
        self.weekly_usage: Dict[dt.date, Set[int]] = {}
        self.make_up_days: Set[dt.date] = set()
        self.days: List[_Day] = []
        self._day_index: Dict[dt.date, _Day] = {}

    @classmethod
    def from_seed(cls, seed: IndexMemory, roster_size: int, enforce_adjacency: bool = True) -> "SearchState":
        memory = {group: dict(seed.get(group, {})) for group in range(roster_size)}
        return cls(memory, enforce_adjacency)

    # ---------- queries ----------

    def last_used(self, group: int, period: int) -> Optional[dt.date]:
        return self.period_memory[group].get(period)

    def days_since(self, group: int, period: int, on: dt.date) -> Optional[int]:
        """Days between the last lesson of group in period and ``on``; None if never."""
        last = self.period_memory[group].get(period)
        return None if last is None else (on - last).days

    def groups_in_week(self, week: dt.date) -> Set[int]:
        return self.weekly_usage.get(week, set())

    def lessons_in_week(self, week: dt.date) -> int:
        return len(self.weekly_usage.get(week, ()))

    def make_up_allowed(self, slot: Slot) -> bool:
        if slot.date in self.make_up_days:
            return False
        if self.enforce_adjacency:
            day = self._day_index.get(slot.date)
            if day is not None and day.lessons and day.lessons[-1][1] == MAKE_UP:
                return False
        return True

    def meets_spacing(self, slot: Slot, group: int, threshold: int) -> bool:
        last = self.period_memory[group].get(slot.period)
        return last is None or (slot.date - last).days >= threshold

    def is_valid(self, slot: Slot, group: int, threshold: int) -> bool:
        if group == MAKE_UP:
            return self.make_up_allowed(slot)
        if group in self.weekly_usage.get(week_identifier(slot.date), ()):
            return False
        return self.meets_spacing(slot, group, threshold)

    # ---------- mutation ----------

    def trial(self, slot: Slot, group: int) -> Trial:
        return Trial(self, slot, group)

    def assign(self, slot: Slot, group: int) -> None:
        """Apply for good (forward-only strategies)."""
        self._apply(slot, group)

    def _apply(self, slot: Slot, group: int) -> _Undo:
        day = self._day_index.get(slot.date)
        if day is None:
            day = _Day(slot.date, slot.dayCycle)
            self._day_index[slot.date] = day
            self.days.append(day)
            self.days.sort(key=lambda d: d.date)
        day.lessons.append((slot.period, group))

        if group == MAKE_UP:
            added_day = slot.date not in self.make_up_days
            self.make_up_days.add(slot.date)
            return _Undo(slot, group, None, False, added_day)

        week_groups = self.weekly_usage.setdefault(week_identifier(slot.date), set())
        added_to_week = group not in week_groups
        week_groups.add(group)

        memory = self.period_memory[group]
        previous = memory.get(slot.period)
        memory[slot.period] = slot.date
        return _Undo(slot, group, previous, added_to_week, False)

    def _rollback(self, undo: _Undo) -> None:
        slot, group = undo.slot, undo.group

        day = self._day_index[slot.date]
        day.lessons.pop()
        if not day.lessons:
            del self._day_index[slot.date]
            self.days.remove(day)

        if group == MAKE_UP:
            if undo.added_make_up_day:
                self.make_up_days.discard(slot.date)
            return

        if undo.added_to_week:
            week = week_identifier(slot.date)
            week_groups = self.weekly_usage[week]
            week_groups.discard(group)
            if not week_groups:
                del self.weekly_usage[week]

        if undo.previous_date is None:
            del self.period_memory[group][slot.period]
        else:
            self.period_memory[group][slot.period] = undo.previous_date

    # ---------- output ----------

    def snapshot(self) -> tuple:
        """Comparable deep copy of everything the search mutates."""
        return (
            {group: dict(periods) for group, periods in self.period_memory.items()},
            {week: set(groups) for week, groups in self.weekly_usage.items()},
            set(self.make_up_days),
            [(day.date, day.day_cycle, list(day.lessons)) for day in self.days],
        )

    def to_day_entries(self, roster: Sequence[str]) -> List[DayEntry]:
        entries = []
        for day in self.days:
            entry = DayEntry(date=day.date, dayCycle=cycle_label(day.day_cycle))
            for period, group in day.lessons:
                entry.add_lesson(period, MAKE_UP_LABEL if group == MAKE_UP else roster[group])
            entries.append(entry)
        return entries


class SolveOutcome(NamedTuple):
    state: Optional[SearchState]  # None when no schedule was found
    threshold: Optional[int]
    relaxed: bool


@contextmanager
def _recursion_headroom(depth: int):
    # One interpreter frame per slot during the depth-first search
    previous = sys.getrecursionlimit()
    needed = depth + 500
    if needed > previous:
        sys.setrecursionlimit(needed)
    try:
        yield
    finally:
        sys.setrecursionlimit(previous)


# ==================== STRATEGY A: BACKTRACKING ====================

class BacktrackingSolver:
    """Depth-first search over slots, least recently used group first.

    The first complete assignment found is returned; it is not optimised any
    further.
    """

    def __init__(self, roster: Sequence[str], settings: SolverSettings):
        self.roster = list(roster)
        self.settings = settings
        self.steps = 0
        self.stats = {"steps": 0, "backtracks": 0, "passes": 0}

    def _candidates(self, state: SearchState, slot: Slot) -> List[int]:
        # Stable sort keeps roster order among equally stale groups
        groups = sorted(
            range(len(self.roster)),
            key=lambda group: state.period_memory[group].get(slot.period, EPOCH),
        )
        groups.append(MAKE_UP)
        return groups

    def _search(self, slots: Sequence[Slot], index: int, state: SearchState, threshold: int) -> bool:
        if index >= len(slots):
            return True

        slot = slots[index]
        for group in self._candidates(state, slot):
            if not state.is_valid(slot, group, threshold):
                continue

            self.steps += 1
            if self.settings.maxSteps is not None and self.steps > self.settings.maxSteps:
                raise SearchBudgetExceeded(
                    f"{self.settings.maxSteps} steps used at slot {index}/{len(slots)}"
                )

            with state.trial(slot, group) as trial:
                if self._search(slots, index + 1, state, threshold):
                    trial.commit()
                    return True
            self.stats["backtracks"] += 1

        return False

    def run_pass(self, slots: Sequence[Slot], seed: IndexMemory, threshold: int) -> Optional[SearchState]:
        """One full search at a fixed threshold from a freshly seeded state."""
        state = SearchState.from_seed(seed, len(self.roster), self.settings.enforceMakeUpAdjacency)
        self.steps = 0
        self.stats["passes"] += 1
        try:
            with _recursion_headroom(len(slots)):
                found = self._search(slots, 0, state, threshold)
        except SearchBudgetExceeded as exc:
            logger.warning("⏱️  Search budget exhausted at %d-day spacing: %s", threshold, exc)
            found = False
        finally:
            self.stats["steps"] += self.steps

        logger.debug("Pass at %d days: found=%s after %d steps", threshold, found, self.steps)
        return state if found else None

    def solve(self, slots: Sequence[Slot], seed: IndexMemory, stage_callback: StageCallback = None) -> SolveOutcome:
        strict = self.settings.strictThreshold
        relaxed = self.settings.relaxedThreshold

        logger.info("🔍 PASS 1: looking for a schedule with %d-day spacing...", strict)
        if stage_callback:
            stage_callback(f"PASS 1: strict {strict}-day spacing")

        state = self.run_pass(slots, seed, strict)
        if state is not None:
            return SolveOutcome(state, strict, False)

        if not self.settings.allowRelaxation or relaxed >= strict:
            logger.info("No %d-day solution and relaxation is off", strict)
            return SolveOutcome(None, None, False)

        logger.info("🔍 PASS 2: no %d-day solution, retrying with %d-day spacing...", strict, relaxed)
        if stage_callback:
            stage_callback(f"PASS 2: relaxed {relaxed}-day spacing")

        state = self.run_pass(slots, seed, relaxed)
        if state is not None:
            return SolveOutcome(state, relaxed, True)
        return SolveOutcome(None, None, True)


# ==================== STRATEGY B: ROTATING POOLS ====================

def partition_pools(roster_size: int, sizes: Sequence[int] = POOL_SIZES) -> List[List[int]]:
    """Split roster indices into consecutive fixed-size pools."""
    if sum(sizes) != roster_size:
        raise ValueError(f"Pool sizes {tuple(sizes)} do not cover a roster of {roster_size}")
    pools, start = [], 0
    for size in sizes:
        pools.append(list(range(start, start + size)))
        start += size
    return pools


def rotate_pools(pools: Sequence[Sequence[int]]) -> List[List[int]]:
    """Shift pool order by one and every pool's members by one."""
    shifted = list(pools[1:]) + list(pools[:1])
    return [list(pool[1:]) + list(pool[:1]) for pool in shifted]


class RotatingPoolSolver:
    """Greedy single pass with amortised fairness from rotating pools.

    Per slot: make-up once the weekly quota is met, otherwise
    Tier 1 (active pool, strict spacing), Tier 2 (whole roster, strict
    spacing), Tier 3 (longest-unused eligible group, guarded by mercyPolicy).
    """

    def __init__(self, roster: Sequence[str], settings: SolverSettings):
        self.roster = list(roster)
        self.settings = settings
        self.pools = partition_pools(len(self.roster))
        self.active_pool = [group for pool in self.pools for group in pool]
        self.stats = {"steps": 0, "backtracks": 0, "passes": 0, "mercyPicks": 0, "poolRefreshes": 0}

    def _refresh_pool(self) -> None:
        self.pools = rotate_pools(self.pools)
        self.active_pool = [group for pool in self.pools for group in pool]
        self.stats["poolRefreshes"] += 1

    def _gap(self, state: SearchState, group: int, slot: Slot) -> float:
        days = state.days_since(group, slot.period, slot.date)
        return float("inf") if days is None else days

    def pick(self, state: SearchState, slot: Slot) -> Optional[int]:
        """Group index or MAKE_UP for the slot; None when nothing can fill it."""
        strict = self.settings.strictThreshold
        used = state.groups_in_week(week_identifier(slot.date))
        make_up_ok = state.make_up_allowed(slot)

        if len(used) >= self.settings.weeklyQuota:
            if make_up_ok:
                return MAKE_UP
            logger.warning("Weekly quota met on %s but a make-up already sits on that day", slot.date)

        eligible = [group for group in range(len(self.roster)) if group not in used]
        if not eligible:
            if make_up_ok:
                return MAKE_UP
            logger.error(
                "Every group is used in the week of %s and %s already holds a make-up; %s cannot be filled",
                week_identifier(slot.date), slot.date, period_label(slot.period),
            )
            return None

        # Tier 1: active pool
        for group in self.active_pool:
            if group not in used and state.meets_spacing(slot, group, strict):
                return group

        # Tier 2: whole roster
        for group in eligible:
            if state.meets_spacing(slot, group, strict):
                return group

        # Tier 3: mercy, max() keeps roster order on ties
        mercy = max(eligible, key=lambda group: self._gap(state, group, slot))
        if self.settings.mercyPolicy == MercyPolicy.STRICT and make_up_ok:
            return MAKE_UP

        if self.settings.mercyPolicy == MercyPolicy.STRICT:
            logger.warning(
                "Make-up already placed on %s; committing %s to %s under %d-day spacing",
                slot.date, self.roster[mercy], period_label(slot.period), strict,
            )
        self.stats["mercyPicks"] += 1
        return mercy

    def solve(self, slots: Sequence[Slot], seed: IndexMemory, stage_callback: StageCallback = None) -> SolveOutcome:
        logger.info("🔄 Rotating pool pass over %d slots (%s mercy policy)...", len(slots), self.settings.mercyPolicy.value)
        if stage_callback:
            stage_callback("ROTATING POOL: single forward pass")

        state = SearchState.from_seed(seed, len(self.roster), self.settings.enforceMakeUpAdjacency)
        self.stats["passes"] += 1

        for slot in slots:
            group = self.pick(state, slot)
            if group is None:
                return SolveOutcome(None, None, False)
            state.assign(slot, group)
            self.stats["steps"] += 1

            if group != MAKE_UP and group in self.active_pool:
                self.active_pool.remove(group)
                if not self.active_pool:
                    self._refresh_pool()

        return SolveOutcome(state, self.settings.strictThreshold, False)
