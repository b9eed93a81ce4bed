import datetime as dt

from lesson_rotation.calendar_slots import generate_slots
from lesson_rotation.models import DayEntry
from lesson_rotation.validation import find_violations


def _day(date, cycle, *lessons):
    entry = DayEntry(date=date, dayCycle=cycle)
    for period, group in lessons:
        entry.add_lesson(period, group)
    return entry


def _kinds(violations):
    return [v.kind for v in violations]


def test_clean_schedule(monday):
    days = [
        _day(monday, 1, (1, "A"), (4, "B"), (7, "MU"), (8, "C")),
        _day(monday + dt.timedelta(days=1), 2, (1, "D"), (2, "E"), (3, "F"), (7, "G"), (8, "MU")),
    ]
    assert find_violations(days, 28) == []


def test_weekend_and_day_off(monday):
    saturday = monday + dt.timedelta(days=5)
    days = [_day(monday, 1, (1, "A")), _day(saturday, 2, (1, "B"))]

    violations = find_violations(days, 28, days_off=[monday])
    assert _kinds(violations) == ["day_off", "weekend"]
    assert violations[1].date == saturday


def test_make_up_rules(monday):
    days = [_day(monday, 1, (1, "MU"), (4, "MU"), (7, "A"), (8, "MU"))]

    assert _kinds(find_violations(days, 28)) == ["make_up_count", "make_up_adjacent"]
    assert _kinds(find_violations(days, 28, enforce_adjacency=False)) == ["make_up_count"]


def test_group_twice_in_one_week(monday):
    friday = monday + dt.timedelta(days=4)
    days = [_day(monday, 1, (1, "A")), _day(friday, 1, (4, "A"))]

    violations = find_violations(days, 28)
    assert _kinds(violations) == ["weekly"]
    assert violations[0].group == "A"
    assert violations[0].period == "Pd 4"


def test_spacing_within_schedule(monday):
    days = [
        _day(monday, 1, (1, "A")),
        _day(monday + dt.timedelta(days=21), 2, (1, "A")),
        _day(monday + dt.timedelta(days=49), 2, (1, "A")),
    ]
    assert _kinds(find_violations(days, 28)) == ["spacing"]
    assert find_violations(days, 21) == []


def test_spacing_continues_from_seed(monday):
    days = [_day(monday, 1, (1, "A"), (4, "B"))]
    seed = {"A": {1: monday - dt.timedelta(days=14)}, "B": {1: monday - dt.timedelta(days=3)}}

    violations = find_violations(days, 28, seed=seed)
    assert [(v.kind, v.group) for v in violations] == [("spacing", "A")]
    # the seed itself is left alone
    assert seed["A"] == {1: monday - dt.timedelta(days=14)}


def test_completeness_against_slots(monday):
    slots = generate_slots(monday, 1, 1)[:4]
    days = [_day(monday, 1, (1, "A"), (4, "B"), (8, "C"), (2, "D"))]

    violations = find_violations(days, 28, slots=slots)
    assert [(v.kind, v.period) for v in violations] == [
        ("missing_slot", "Pd 7"),
        ("extra_slot", "Pd 2"),
    ]
