"""
Data models for the lesson rotation scheduler.

Requests, history records, schedule output and diagnostics are all pydantic
models. Public field names are camelCase so the models serialise straight into
the shape the presentation layer consumes.
"""

import datetime as dt
from enum import Enum
from typing import Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

# ==================== CONSTANTS ====================

MAKE_UP_LABEL = "MU"
ROSTER_SIZE = 22

STRICT_THRESHOLD_DAYS = 28
RELAXED_THRESHOLD_DAYS = 21
WEEKLY_LESSON_QUOTA = 22

# Cycle label -> periods taught that day (odd days: 4 periods, even days: 5)
DEFAULT_PERIOD_SETS: Dict[int, List[int]] = {
    1: [1, 4, 7, 8],
    2: [1, 2, 3, 7, 8],
}

# Rotating pool partition of the 22-group roster
POOL_SIZES = (5, 5, 4, 4, 4)


def default_roster() -> List[str]:
    """Letters A..V"""
    return [chr(ord("A") + i) for i in range(ROSTER_SIZE)]


def period_label(period: int) -> str:
    return f"Pd {period}"


class SolverStrategy(str, Enum):
    BACKTRACKING = "backtracking"
    ROTATING_POOL = "rotating_pool"


class MercyPolicy(str, Enum):
    """What the rotating pool does with a last-resort pick under the strict threshold."""

    STRICT = "strict"  # fall back to a make-up instead
    ACCEPT = "accept"  # commit the pick anyway


# ==================== DATA MODELS ====================

class Slot(BaseModel):
    """One (date, period) position that must receive exactly one assignment."""

    model_config = {"frozen": True}

    date: dt.date
    period: int
    dayCycle: int  # running cycle counter, parity picks the period set


class HistoryRecord(BaseModel):
    """A previously scheduled lesson.

    Values are kept loose: a record with an unparseable date or period is
    skipped by the history ingester instead of failing the whole request.
    """

    date: Union[dt.date, str, None] = None
    period: Union[int, str, None] = None
    group: Optional[str] = None


class CompactHistory(BaseModel):
    """Roster in the order it was taught, starting at startDate / startCycle."""

    model_config = {"populate_by_name": True}

    groups: List[str]
    startDate: dt.date
    startCycle: int = Field(default=1, ge=1)


class SolverSettings(BaseModel):
    model_config = {"populate_by_name": True}

    strategy: SolverStrategy = SolverStrategy.BACKTRACKING
    strictThreshold: int = Field(default=STRICT_THRESHOLD_DAYS, ge=1)
    relaxedThreshold: int = Field(default=RELAXED_THRESHOLD_DAYS, ge=1)
    allowRelaxation: bool = True  # Second backtracking pass at relaxedThreshold
    weeklyQuota: int = Field(default=WEEKLY_LESSON_QUOTA, ge=0)
    mercyPolicy: MercyPolicy = MercyPolicy.STRICT
    enforceMakeUpAdjacency: bool = True
    maxSteps: Optional[int] = Field(default=None, ge=1)  # Per backtracking pass
    periodSets: Dict[int, List[int]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_PERIOD_SETS.items()}
    )

    @field_validator("periodSets")
    @classmethod
    def _check_period_sets(cls, value: Dict[int, List[int]]) -> Dict[int, List[int]]:
        if set(value) != {1, 2}:
            raise ValueError("periodSets needs exactly the cycle labels 1 and 2")
        for label, periods in value.items():
            if not periods:
                raise ValueError(f"periodSets[{label}] is empty")
            if len(set(periods)) != len(periods):
                raise ValueError(f"periodSets[{label}] repeats a period")
        # A week runs three days of one cycle label and two of the other
        longest, shortest = sorted((len(periods) for periods in value.values()), reverse=True)
        weekly_slots = 3 * longest + 2 * shortest
        if weekly_slots > ROSTER_SIZE + 5:
            raise ValueError(
                f"periodSets give up to {weekly_slots} lessons a week; "
                f"{ROSTER_SIZE} groups plus one make-up a day cover at most {ROSTER_SIZE + 5}"
            )
        return {label: sorted(periods) for label, periods in value.items()}

    @model_validator(mode="after")
    def _check_thresholds(self):
        if self.relaxedThreshold > self.strictThreshold:
            raise ValueError("relaxedThreshold cannot exceed strictThreshold")
        return self


class ScheduleRequest(BaseModel):
    """Everything the presentation layer hands over for one schedule run."""

    model_config = {"populate_by_name": True}

    startDate: dt.date
    dayCycle: int = 1
    weeks: int = Field(gt=0)
    daysOff: List[dt.date] = Field(default_factory=list)
    history: Union[CompactHistory, List[HistoryRecord], None] = None
    roster: Optional[List[str]] = None
    settings: SolverSettings = Field(default_factory=SolverSettings)

    @field_validator("dayCycle")
    @classmethod
    def _check_day_cycle(cls, value: int) -> int:
        if value not in (1, 2):
            raise ValueError("dayCycle must be 1 or 2")
        return value

    @field_validator("daysOff", mode="before")
    @classmethod
    def _drop_blank_days_off(cls, value):
        # Blank date inputs from the form arrive as empty strings / None
        if isinstance(value, (list, tuple)):
            return [d for d in value if d not in (None, "")]
        return value


# ==================== OUTPUT MODELS ====================

class LessonAssignment(BaseModel):
    period: str
    group: str

    @property
    def isMakeUp(self) -> bool:
        return self.group == MAKE_UP_LABEL


class DayEntry(BaseModel):
    date: dt.date
    dayCycle: int  # 1 or 2
    lessons: List[LessonAssignment] = Field(default_factory=list)

    def add_lesson(self, period: int, group: str) -> None:
        self.lessons.append(LessonAssignment(period=period_label(period), group=group))


class Violation(BaseModel):
    """A broken scheduling rule found by the validator."""

    kind: str
    date: dt.date
    period: Optional[str] = None
    group: Optional[str] = None
    detail: str = ""


class ScheduleResult(BaseModel):
    success: bool
    status: str  # 'success', 'relaxed', 'failed' or 'empty'
    strategy: SolverStrategy
    threshold: Optional[int] = None  # Spacing threshold the returned schedule satisfies
    roster: List[str] = Field(default_factory=list)
    days: List[DayEntry] = Field(default_factory=list)
    conflicts: int = 0
    solvingTime: float = 0.0
    stats: Dict[str, int] = Field(default_factory=dict)
    message: str = ""
