import datetime as dt

import pytest

from lesson_rotation.models import CompactHistory, ScheduleRequest, SolverSettings

MONDAY = dt.date(2025, 9, 1)

INSTRUMENT_GROUPS = [
    "Flutes", "Clarinets", "Oboes", "Bassoons",                     # Day 1 (4)
    "Saxes", "Trumpets", "Horns", "Trombones", "Euphoniums",         # Day 2 (5)
    "Tubas", "Violins1", "Violins2", "Violas",                       # Day 3 (4)
    "Cellos", "Basses", "Percussion1", "Percussion2", "Piano",       # Day 4 (5)
    "Guitars", "Ukuleles", "Recorders", "Vocals",                    # Day 5 (4)
]


@pytest.fixture
def monday():
    return MONDAY


@pytest.fixture
def instrument_groups():
    return list(INSTRUMENT_GROUPS)


@pytest.fixture
def compact_history(instrument_groups):
    return CompactHistory(groups=instrument_groups, startDate=MONDAY, startCycle=1)


@pytest.fixture
def make_request():
    def _make(**fields):
        settings = fields.pop("settings", None)
        fields.setdefault("startDate", MONDAY)
        fields.setdefault("dayCycle", 1)
        fields.setdefault("weeks", 4)
        if isinstance(settings, dict):
            settings = SolverSettings(**settings)
        if settings is not None:
            fields["settings"] = settings
        return ScheduleRequest(**fields)

    return _make
