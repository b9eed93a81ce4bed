"""
Schedule assembly: turns a ScheduleRequest into a ScheduleResult.

Resolves the roster and history seed, generates the slots, runs the selected
solver strategy and reports the outcome.
"""

import logging
import time
from typing import List, Optional

from .calendar_slots import generate_slots
from .history import PeriodMemory, ingest_history
from .models import ScheduleRequest, ScheduleResult, Slot, SolverStrategy
from .solver import BacktrackingSolver, IndexMemory, RotatingPoolSolver, StageCallback
from .validation import find_violations

logger = logging.getLogger(__name__)


class ScheduleBuilder:
    """One schedule run.

    Roster and seed are resolved at construction, so a bad roster fails with
    RosterMismatch before any search starts.
    """

    def __init__(self, request: ScheduleRequest):
        self.request = request
        self.settings = request.settings
        self.roster, self._seed_by_name = ingest_history(
            request.history, request.roster, self.settings.periodSets
        )
        index = {name: i for i, name in enumerate(self.roster)}
        self._seed: IndexMemory = {
            index[name]: dict(periods) for name, periods in self._seed_by_name.items()
        }

    @property
    def period_assignments(self) -> PeriodMemory:
        """History seed by group name (a copy)."""
        return {group: dict(periods) for group, periods in self._seed_by_name.items()}

    def generate_slots(self) -> List[Slot]:
        return generate_slots(
            self.request.startDate,
            self.request.dayCycle,
            self.request.weeks,
            self.request.daysOff,
            self.settings.periodSets,
        )

    def _make_solver(self):
        if self.settings.strategy == SolverStrategy.ROTATING_POOL:
            return RotatingPoolSolver(self.roster, self.settings)
        return BacktrackingSolver(self.roster, self.settings)

    def build_schedule(self, stage_callback: StageCallback = None) -> ScheduleResult:
        start_time = time.time()
        strategy = self.settings.strategy
        slots = self.generate_slots()
        stats = {"slotsGenerated": len(slots), "rosterSize": len(self.roster)}

        logger.info(
            "🚀 Building %d-week schedule from %s (Day %d start, %d slots, %s)",
            self.request.weeks, self.request.startDate.isoformat(), self.request.dayCycle,
            len(slots), strategy.value,
        )

        if not slots:
            logger.info("No teaching days in the horizon")
            return ScheduleResult(
                success=False,
                status="empty",
                strategy=strategy,
                roster=self.roster,
                solvingTime=time.time() - start_time,
                stats=stats,
                message="No schedule generated for the selected dates. Check days off.",
            )

        solver = self._make_solver()
        outcome = solver.solve(slots, self._seed, stage_callback)
        stats.update(solver.stats)
        solving_time = time.time() - start_time

        if outcome.state is None:
            if strategy == SolverStrategy.ROTATING_POOL:
                message = "❌ Rotating pool pass left a slot it could not fill"
            else:
                message = "❌ No feasible schedule at either spacing threshold"
            logger.info("%s (%.2fs)", message, solving_time)
            return ScheduleResult(
                success=False,
                status="failed",
                strategy=strategy,
                roster=self.roster,
                solvingTime=solving_time,
                stats=stats,
                message=message,
            )

        days = outcome.state.to_day_entries(self.roster)
        stats["makeUps"] = sum(1 for day in days for lesson in day.lessons if lesson.isMakeUp)

        violations = find_violations(
            days,
            outcome.threshold,
            seed=self._seed_by_name,
            days_off=self.request.daysOff,
            slots=slots,
            enforce_adjacency=self.settings.enforceMakeUpAdjacency,
        )
        for violation in violations:
            logger.warning("Rule broken: %s %s %s %s", violation.kind, violation.date, violation.period, violation.detail)

        status = "relaxed" if outcome.relaxed else "success"
        message = (
            f"✅ Scheduled {len(slots)} periods over {len(days)} days with "
            f"{outcome.threshold}-day spacing ({stats['makeUps']} make-ups) in {solving_time:.2f}s"
        )
        if stats.get("mercyPicks"):
            message += f"; {stats['mercyPicks']} mercy pick(s)"
        logger.info(message)

        return ScheduleResult(
            success=True,
            status=status,
            strategy=strategy,
            threshold=outcome.threshold,
            roster=self.roster,
            days=days,
            conflicts=len(violations),
            solvingTime=solving_time,
            stats=stats,
            message=message,
        )


def build_schedule(
    request: Optional[ScheduleRequest] = None,
    stage_callback: StageCallback = None,
    **fields,
) -> ScheduleResult:
    """Shortcut: ``build_schedule(startDate="2025-09-01", dayCycle=1, weeks=16)``."""
    if request is None:
        request = ScheduleRequest.model_validate(fields)
    return ScheduleBuilder(request).build_schedule(stage_callback)
