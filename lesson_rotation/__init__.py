"""Lesson rotation scheduler: spreads 22 recurring lesson groups over class periods."""

from .calendar_slots import generate_slots, week_identifier
from .history import RosterMismatch, ingest_history
from .models import (
    MAKE_UP_LABEL,
    CompactHistory,
    DayEntry,
    HistoryRecord,
    LessonAssignment,
    MercyPolicy,
    ScheduleRequest,
    ScheduleResult,
    Slot,
    SolverSettings,
    SolverStrategy,
    Violation,
)
from .scheduler import ScheduleBuilder, build_schedule
from .validation import find_violations

__all__ = [
    "MAKE_UP_LABEL",
    "CompactHistory",
    "DayEntry",
    "HistoryRecord",
    "LessonAssignment",
    "MercyPolicy",
    "RosterMismatch",
    "ScheduleBuilder",
    "ScheduleRequest",
    "ScheduleResult",
    "Slot",
    "SolverSettings",
    "SolverStrategy",
    "Violation",
    "build_schedule",
    "find_violations",
    "generate_slots",
    "ingest_history",
    "week_identifier",
]
