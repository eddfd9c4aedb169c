from datetime import time

import pytest

from clinic.errors import InvalidInput, NotFound
from scheduling.conflicts import check_slot, detect_conflicts, overlaps, suggest_alternatives
from scheduling.models import Appointment, WeeklyAvailabilityRule

from .conftest import MONDAY


def test_overlap_is_exclusive_on_boundaries():
    assert overlaps(600, 30, 615, 30)
    assert overlaps(615, 30, 600, 30)
    assert not overlaps(630, 30, 600, 30)
    assert not overlaps(570, 30, 600, 30)


def test_detects_overlapping_appointment(monday_rule, doctor, book):
    existing = book(time(10, 0), status=Appointment.STATUS_CONFIRMED)

    conflicts = detect_conflicts(doctor.id, MONDAY, "10:15", 30)

    assert len(conflicts) == 1
    record = conflicts[0]
    assert record.appointment_id == existing.id
    assert record.time == "10:00"
    assert record.duration == 30
    assert record.patient_name == "Jane Doe"
    assert record.status == Appointment.STATUS_CONFIRMED


def test_back_to_back_is_not_a_conflict(monday_rule, doctor, book):
    book(time(10, 0))
    assert detect_conflicts(doctor.id, MONDAY, "10:30", 30) == []
    assert detect_conflicts(doctor.id, MONDAY, "09:30", 30) == []


def test_cancelled_and_no_show_never_conflict(monday_rule, doctor, book):
    book(time(10, 0), status=Appointment.STATUS_CANCELLED)
    book(time(10, 0), status=Appointment.STATUS_NO_SHOW)
    assert detect_conflicts(doctor.id, MONDAY, "10:00", 30) == []


def test_conflicts_are_ordered_by_start(monday_rule, doctor, book, other_patient):
    book(time(10, 30), who=other_patient)
    book(time(10, 0))
    conflicts = detect_conflicts(doctor.id, MONDAY, "10:00", 60)
    assert [c.time for c in conflicts] == ["10:00", "10:30"]


def test_excluded_appointment_is_skipped(monday_rule, doctor, book):
    appt = book(time(10, 0))
    assert detect_conflicts(doctor.id, MONDAY, "10:00", 30, exclude_appointment_id=appt.id) == []


def test_suggestions_for_a_clash(monday_rule, doctor, book):
    book(time(10, 0), status=Appointment.STATUS_CONFIRMED)
    conflicts = detect_conflicts(doctor.id, MONDAY, "10:15", 30)

    suggestions = suggest_alternatives(doctor.id, MONDAY, "10:15", 30, conflicts)

    assert [s["time"] for s in suggestions] == ["09:30", "09:00", "10:30", "11:00"]
    assert suggestions[0]["label"] == "9:30 AM"


def test_suggestions_respect_free_time(monday_rule, doctor, book, other_patient):
    book(time(10, 0))
    book(time(9, 30), who=other_patient)
    conflicts = detect_conflicts(doctor.id, MONDAY, "10:00", 30)

    times = [s["time"] for s in suggest_alternatives(doctor.id, MONDAY, "10:00", 30, conflicts)]

    assert "09:30" not in times
    assert times == ["09:00", "10:30", "11:00", "11:30"]


def test_suggestions_never_start_before_opening(doctor, clinic, book):
    clinic.opening_time = time(9, 15)
    clinic.save()
    WeeklyAvailabilityRule.objects.create(
        doctor=doctor, clinic=clinic, day_of_week=1,
        start_time=time(8, 0), end_time=time(12, 0), slot_duration=30,
    )
    book(time(9, 30))
    conflicts = detect_conflicts(doctor.id, MONDAY, "09:30", 30)

    times = [s["time"] for s in suggest_alternatives(doctor.id, MONDAY, "09:30", 30, conflicts)]

    assert times == ["10:00", "10:30", "11:00"]


def test_no_conflicts_no_suggestions(monday_rule, doctor):
    assert suggest_alternatives(doctor.id, MONDAY, "10:00", 30, []) == []


def test_check_slot_report(monday_rule, doctor, book):
    book(time(10, 0))
    report = check_slot(doctor.id, MONDAY, "10:00", 30)
    assert report["has_conflicts"] is True
    assert report["conflicts"][0]["time"] == "10:00"
    assert len(report["suggestions"]) == 4

    assert check_slot(doctor.id, MONDAY, "11:00", 30) == {
        "has_conflicts": False, "conflicts": [], "suggestions": [],
    }


@pytest.mark.parametrize("start,duration", [("25:00", 30), ("10:00", 5), ("10:00", 300), ("ten", 30)])
def test_bad_probe_is_invalid_input(monday_rule, doctor, start, duration):
    with pytest.raises(InvalidInput):
        detect_conflicts(doctor.id, MONDAY, start, duration)


def test_unknown_doctor(db):
    with pytest.raises(NotFound):
        detect_conflicts(999, MONDAY, "10:00", 30)


def test_conflict_check_endpoint(monday_rule, doctor, book, client_for):
    book(time(10, 0))
    response = client_for(doctor).get(
        "/api/appointments/check-conflicts/",
        {"doctor": doctor.id, "date": "2030-01-07", "time": "10:15", "duration": 30},
    )
    assert response.status_code == 200
    assert response.json()["has_conflicts"] is True
