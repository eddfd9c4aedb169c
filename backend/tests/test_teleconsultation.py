import re
from datetime import time

import pytest

from clinic.errors import Conflict, InvalidInput, InvalidTransition, RoleConflict, Unauthorized
from scheduling import booking
from scheduling.models import Appointment
from teleconsultation import services
from teleconsultation.models import Teleconsultation, TeleconsultationParticipant

SESSIONS = "/api/teleconsultations/"


@pytest.fixture
def tele_appointment(book):
    return book(time(11, 0), appointment_type=Appointment.TYPE_TELECONSULTATION)


@pytest.fixture
def session(tele_appointment, patient):
    return services.create_session(tele_appointment, patient)


def reload(session):
    return Teleconsultation.objects.get(id=session.id)


# ── minting ──────────────────────────────────────────────────────────────────

def test_minted_identifiers(session):
    assert re.fullmatch(r"dr[0-9a-f]{24}", session.room_name)
    assert re.fullmatch(r"\d{3}-\d{3}-\d{3}", session.meeting_id)
    assert re.fullmatch(r"[0-9A-F]{8}", session.moderator_secret)
    assert re.fullmatch(r"[0-9A-F]{8}", session.participant_secret)
    assert session.status == Teleconsultation.STATUS_SCHEDULED
    assert session.scheduled_time == time(11, 0)
    assert session.features["screenSharing"] is True
    assert session.features["recording"] is False


def test_room_names_are_unique(book, patient):
    rooms = set()
    for hour in (9, 10, 11):
        appt = book(time(hour, 0), appointment_type=Appointment.TYPE_TELECONSULTATION)
        rooms.add(services.create_session(appt, patient).room_name)
    assert len(rooms) == 3


def test_creation_payload(session):
    payload = services.creation_payload(session)

    assert payload["session"]["room_name"] == session.room_name
    assert "moderator_secret" not in payload["session"]
    assert f"password={session.moderator_secret}" in payload["urls"]["moderator"]
    assert "displayName=Dr.+John+Smith" in payload["urls"]["moderator"]
    assert f"password={session.participant_secret}" in payload["urls"]["participant"]
    assert payload["urls"]["direct"] == f"https://{session.domain}/{session.room_name}"
    assert session.meeting_id in payload["invitations"]["patient"]
    assert "Meeting Password" not in payload["invitations"]["patient"]
    assert session.moderator_secret in payload["invitations"]["doctor"]


def test_password_protected_session_has_no_direct_link(tele_appointment, patient):
    session = services.create_session(tele_appointment, patient, {"require_password": True, "enable_recording": True})
    payload = services.creation_payload(session)
    assert payload["urls"]["direct"] is None
    assert session.participant_secret in payload["invitations"]["patient"]
    assert session.features["recording"] is True


def test_one_session_per_appointment(session, tele_appointment, patient):
    with pytest.raises(Conflict):
        services.create_session(tele_appointment, patient)


def test_no_session_for_a_finished_appointment(book, patient):
    appt = book(time(9, 0), status=Appointment.STATUS_COMPLETED)
    with pytest.raises(InvalidTransition):
        services.create_session(appt, patient)


def test_create_endpoint(tele_appointment, doctor, client_for):
    client = client_for(doctor)
    response = client.post(SESSIONS, {"appointment": tele_appointment.id, "duration": 45}, format="json")
    assert response.status_code == 201
    assert response.json()["session"]["duration"] == 45

    again = client.post(SESSIONS, {"appointment": tele_appointment.id}, format="json")
    assert again.status_code == 409


def test_lookup_by_meeting_id(session, patient, make_user, client_for):
    response = client_for(patient).get(f"{SESSIONS}meeting/{session.meeting_id}/")
    assert response.status_code == 200
    assert response.json()["id"] == session.id

    stranger = make_user("stranger", "patient")
    assert client_for(stranger).get(f"{SESSIONS}{session.id}/").status_code == 403


# ── lifecycle ────────────────────────────────────────────────────────────────

def test_start_is_idempotent(session, doctor, tele_appointment):
    started = services.start_session(session.id, doctor)
    first_start = started.actual_start_time
    assert started.status == Teleconsultation.STATUS_STARTED
    assert first_start is not None

    again = services.start_session(session.id, doctor)
    assert again.status == Teleconsultation.STATUS_STARTED
    assert again.actual_start_time == first_start

    tele_appointment.refresh_from_db()
    assert tele_appointment.status == Appointment.STATUS_IN_PROGRESS


def test_patient_cannot_start(session, patient):
    with pytest.raises(Unauthorized):
        services.start_session(session.id, patient)


def test_join_while_scheduled_keeps_status(session, patient):
    joined = services.join_session(session.id, patient, "patient")
    assert joined["session"].status == Teleconsultation.STATUS_SCHEDULED
    assert joined["room_name"] == session.room_name
    assert joined["url"].startswith(f"https://{session.domain}/{session.room_name}?")


def test_first_join_after_start_moves_to_in_progress(session, doctor, patient):
    services.start_session(session.id, doctor)
    services.join_session(session.id, doctor, "doctor")
    assert reload(session).status == Teleconsultation.STATUS_IN_PROGRESS

    services.join_session(session.id, patient, "patient")
    assert reload(session).status == Teleconsultation.STATUS_IN_PROGRESS


def test_role_must_match_caller(session, patient):
    with pytest.raises(Unauthorized):
        services.join_session(session.id, patient, "doctor")
    with pytest.raises(InvalidInput):
        services.join_session(session.id, patient, "nurse")


def test_taken_role_is_refused(session, patient, clinic_admin):
    services.join_session(session.id, patient, "patient")
    with pytest.raises(RoleConflict):
        services.join_session(session.id, clinic_admin, "patient")


def test_rejoin_by_same_user_is_idempotent(session, patient):
    services.join_session(session.id, patient, "patient")
    services.join_session(session.id, patient, "patient")
    assert TeleconsultationParticipant.objects.filter(left_at__isnull=True).count() == 1


def test_leave_frees_the_role(session, patient, clinic_admin):
    services.join_session(session.id, patient, "patient")
    services.leave_session(session.id, patient)
    services.join_session(session.id, clinic_admin, "patient")
    assert TeleconsultationParticipant.objects.filter(left_at__isnull=True).get().user == clinic_admin


def test_end_requires_a_live_session(session, doctor):
    with pytest.raises(InvalidTransition):
        services.end_session(session.id, doctor)


def test_end_records_outcome(session, doctor, patient, tele_appointment):
    services.start_session(session.id, doctor)
    services.join_session(session.id, patient, "patient")

    ended = services.end_session(session.id, doctor, {
        "consultation_notes": "Mild fever",
        "diagnosis": "Viral infection",
        "follow_up_required": True,
        "follow_up_date": "2030-01-14",
    })

    assert ended.status == Teleconsultation.STATUS_COMPLETED
    assert ended.actual_end_time is not None
    assert ended.actual_duration is not None
    assert ended.diagnosis == "Viral infection"
    assert not TeleconsultationParticipant.objects.filter(left_at__isnull=True).exists()
    tele_appointment.refresh_from_db()
    assert tele_appointment.status == Appointment.STATUS_COMPLETED

    with pytest.raises(InvalidTransition):
        services.join_session(session.id, patient, "patient")


def test_follow_up_needs_a_date(session, doctor):
    services.start_session(session.id, doctor)
    with pytest.raises(InvalidInput):
        services.end_session(session.id, doctor, {"follow_up_required": True})


def test_outcome_length_limits(session, doctor):
    services.start_session(session.id, doctor)
    with pytest.raises(InvalidInput):
        services.end_session(session.id, doctor, {"diagnosis": "x" * 1001})


def test_cancel_from_in_progress(session, doctor, patient, tele_appointment):
    services.start_session(session.id, doctor)
    services.join_session(session.id, patient, "patient")

    cancelled = services.cancel_session(session.id, patient, "Connection issues")

    assert cancelled.status == Teleconsultation.STATUS_CANCELLED
    assert cancelled.cancellation_reason == "Connection issues"
    tele_appointment.refresh_from_db()
    assert tele_appointment.status == Appointment.STATUS_CANCELLED

    with pytest.raises(InvalidTransition):
        services.cancel_session(session.id, patient)


def test_cancelling_the_appointment_cancels_the_session(session, patient, tele_appointment):
    booking.change_status(patient, tele_appointment.id, Appointment.STATUS_CANCELLED, "Feeling better")
    assert reload(session).status == Teleconsultation.STATUS_CANCELLED
    assert reload(session).cancellation_reason == "Feeling better"


@pytest.mark.parametrize("operation", [
    lambda s, doctor, patient: services.start_session(s.id, doctor),
    lambda s, doctor, patient: services.join_session(s.id, patient, "patient"),
    lambda s, doctor, patient: services.end_session(s.id, doctor),
    lambda s, doctor, patient: services.cancel_session(s.id, doctor),
])
def test_processing_sessions_are_frozen(session, doctor, patient, operation):
    Teleconsultation.objects.filter(id=session.id).update(status=Teleconsultation.STATUS_PROCESSING)
    with pytest.raises(InvalidTransition):
        operation(session, doctor, patient)


# ── HTTP ─────────────────────────────────────────────────────────────────────

def test_lifecycle_over_http(session, doctor, patient, client_for):
    doc, pat = client_for(doctor), client_for(patient)

    assert doc.patch(f"{SESSIONS}{session.id}/start/").json()["status"] == Teleconsultation.STATUS_STARTED

    joined = pat.post(f"{SESSIONS}{session.id}/join/", {"role": "patient"}, format="json")
    assert joined.status_code == 200
    assert joined.json()["status"] == Teleconsultation.STATUS_IN_PROGRESS
    assert joined.json()["token"].count(".") == 2

    ended = doc.patch(f"{SESSIONS}{session.id}/end/", {"diagnosis": "Allergy"}, format="json")
    assert ended.status_code == 200
    assert ended.json()["status"] == Teleconsultation.STATUS_COMPLETED

    again = doc.patch(f"{SESSIONS}{session.id}/start/")
    assert again.status_code == 409
    assert again.json()["code"] == "InvalidTransition"


def test_role_conflict_over_http(session, patient, clinic_admin, client_for):
    client_for(patient).post(f"{SESSIONS}{session.id}/join/", {"role": "patient"}, format="json")
    response = client_for(clinic_admin).post(f"{SESSIONS}{session.id}/join/", {"role": "patient"}, format="json")
    assert response.status_code == 409
    assert response.json()["code"] == "RoleConflict"


def test_signaling_health(db, client_for, doctor):
    response = client_for(doctor).get("/api/signaling/health/")
    assert response.json() == {"status": "OK", "activeRooms": 0, "activeConnections": 0}
