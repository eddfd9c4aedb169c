from datetime import time
from types import SimpleNamespace

import pytest
from rest_framework.test import APIClient

from clinic.timeutils import format_hhmm
from scheduling.availability import build_plan, get_availability, get_bookable_slots, subtract, union
from scheduling.models import Appointment, ScheduleException, WeeklyAvailabilityRule

from .conftest import MONDAY


def starts(slots):
    return [format_hhmm(s.start) for s in slots]


def exception(kind, start=None, end=None, breaks=()):
    return SimpleNamespace(kind=kind, start_time=start, end_time=end, breaks=list(breaks))


# ── interval arithmetic ──────────────────────────────────────────────────────

def test_union_merges_touching_ranges():
    assert union([(600, 660), (540, 600), (700, 720)]) == [(540, 660), (700, 720)]


def test_subtract_splits_a_range():
    assert subtract([(540, 720)], (600, 630)) == [(540, 600), (630, 720)]
    assert subtract([(540, 600)], (600, 630)) == [(540, 600)]


# ── pure day plans ───────────────────────────────────────────────────────────

def test_morning_rule_gives_half_hour_grid():
    plan = build_plan([(540, 720, 30)])
    assert starts(plan.slots()) == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]


def test_two_rules_leave_lunch_gap():
    plan = build_plan([(540, 660, 60), (780, 900, 60)])
    assert starts(plan.slots()) == ["09:00", "10:00", "13:00", "14:00"]


def test_booked_time_removes_whole_grid_cells_only():
    plan = build_plan([(540, 720, 30)], booked=[(600, 645)])
    # 10:00 and 10:30 are partly taken; the grid does not shift to 10:45
    assert starts(plan.slots()) == ["09:00", "09:30", "11:00", "11:30"]


def test_unavailable_day_has_no_slots():
    plan = build_plan([(540, 720, 30)], exception(ScheduleException.KIND_UNAVAILABLE))
    assert plan.slots() == []


def test_custom_hours_replace_rules():
    exc = exception(ScheduleException.KIND_CUSTOM_HOURS, time(13, 0), time(15, 0))
    plan = build_plan([(540, 1020, 30)], exc)
    assert starts(plan.slots()) == ["13:00", "13:30", "14:00", "14:30"]


def test_custom_hours_breaks_are_cut_out():
    exc = exception(ScheduleException.KIND_CUSTOM_HOURS, time(13, 0), time(15, 0),
                    breaks=[{"start": "13:30", "end": "14:00"}])
    plan = build_plan([(540, 1020, 30)], exc)
    assert starts(plan.slots()) == ["13:00", "14:00", "14:30"]


def test_custom_hours_without_rules_use_default_step():
    exc = exception(ScheduleException.KIND_CUSTOM_HOURS, time(10, 0), time(11, 0))
    plan = build_plan([], exc)
    assert starts(plan.slots()) == ["10:00", "10:30"]


def test_blocked_hours_cut_into_rules():
    exc = exception(ScheduleException.KIND_BLOCKED_HOURS, time(10, 0), time(11, 0))
    plan = build_plan([(540, 720, 30)], exc)
    assert starts(plan.slots()) == ["09:00", "09:30", "11:00", "11:30"]


def test_overlapping_rules_of_different_widths_stay_disjoint():
    plan = build_plan([(540, 660, 60), (570, 630, 15)])
    slots = plan.slots()
    assert starts(slots) == ["09:00", "10:00", "10:15"]
    assert all(a.end <= b.start for a, b in zip(slots, slots[1:]))


def test_snap_finds_the_containing_cell():
    plan = build_plan([(540, 720, 30)])
    assert plan.snap(585) == 570
    assert plan.snap(540) == 540
    assert plan.snap(800) is None


# ── database-backed ──────────────────────────────────────────────────────────

def test_clean_monday(monday_rule, doctor):
    slots = get_bookable_slots(doctor, MONDAY)
    assert starts(slots) == ["09:00", "09:30", "10:00", "10:30", "11:00", "11:30"]


def test_other_weekday_is_empty(monday_rule, doctor):
    assert get_bookable_slots(doctor, "2030-01-08") == []


def test_inactive_rule_is_ignored(monday_rule, doctor):
    monday_rule.is_active = False
    monday_rule.save()
    assert get_bookable_slots(doctor, MONDAY) == []


def test_cancelled_appointments_do_not_take_slots(monday_rule, doctor, book):
    book(time(9, 30))
    book(time(10, 0), status=Appointment.STATUS_CANCELLED)
    book(time(10, 30), status=Appointment.STATUS_COMPLETED)
    assert starts(get_bookable_slots(doctor, MONDAY)) == ["09:00", "10:00", "10:30", "11:00", "11:30"]


def test_exception_override_scenario(doctor, clinic):
    WeeklyAvailabilityRule.objects.create(
        doctor=doctor, clinic=clinic, day_of_week=1,
        start_time=time(9, 0), end_time=time(17, 0), slot_duration=30,
    )
    ScheduleException.objects.create(
        doctor=doctor, clinic=clinic, date=MONDAY, kind=ScheduleException.KIND_CUSTOM_HOURS,
        start_time=time(13, 0), end_time=time(15, 0),
    )
    assert starts(get_bookable_slots(doctor, MONDAY)) == ["13:00", "13:30", "14:00", "14:30"]


def test_inactive_exception_is_ignored(monday_rule, doctor, clinic):
    ScheduleException.objects.create(
        doctor=doctor, clinic=clinic, date=MONDAY,
        kind=ScheduleException.KIND_UNAVAILABLE, is_active=False,
    )
    assert len(get_bookable_slots(doctor, MONDAY)) == 6


def test_availability_bundle(monday_rule, doctor, book):
    book(time(9, 0))
    bundle = get_availability(doctor, MONDAY.isoformat())
    assert bundle["date"] == "2030-01-07"
    assert bundle["day_of_week"] == 1
    assert len(bundle["rules"]) == 1
    assert bundle["exceptions"] == []
    assert len(bundle["appointments"]) == 1
    assert bundle["slots"][0] == {"start_time": "09:30", "end_time": "10:00"}


@pytest.mark.django_db
def test_slots_endpoint_is_public(monday_rule, doctor):
    response = APIClient().get(f"/api/availability/{doctor.id}/slots/2030-01-07/")
    assert response.status_code == 200
    assert [s["start_time"] for s in response.json()["slots"]][:2] == ["09:00", "09:30"]


def test_slots_endpoint_rejects_bad_date(monday_rule, doctor, client_for):
    response = client_for(doctor).get(f"/api/availability/{doctor.id}/slots/07-01-2030/")
    assert response.status_code == 400
    assert response.json()["code"] == "InvalidInput"
