# teleconsultation/services.py
#
# Session lifecycle:
#
#   Scheduled ──start──▶ Started ──first join──▶ In Progress
#      │                   │                         │
#      ├──cancel──▶ Cancelled ◀──cancel──────────────┤
#      │                   └──end──▶ Completed ◀──end─┘
#
# Every mutation re-reads the session under select_for_update() so two
# requests for the same session apply one after the other.

import logging

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from clinic.actors import is_clinic_admin, is_clinic_staff
from clinic.errors import (
    Conflict,
    InvalidInput,
    InvalidTransition,
    NotFound,
    RoleConflict,
    Unauthorized,
)
from clinic.timeutils import parse_date, parse_duration, parse_hhmm
from scheduling.models import Appointment

from . import meeting
from .models import Teleconsultation, TeleconsultationParticipant, default_features
from .protocol import encode, room_group
from .serializers import TeleconsultationSerializer

logger = logging.getLogger(__name__)

OUTCOME_LIMITS = {
    "consultation_notes": 2000,
    "diagnosis": 1000,
    "prescription": 1500,
}

FEATURE_KEYS = ("screenSharing", "chat", "whiteboard", "fileSharing", "recording")


def _name(user):
    return user.get_full_name() or user.username


def _minutes_between(start, end):
    return max(0, round((end - start).total_seconds() / 60))


# =============================================================================
# LOOKUPS & CHECKS
# =============================================================================

def get_session(session_id):
    session = (
        Teleconsultation.objects
        .select_related("doctor", "patient", "clinic", "appointment")
        .filter(id=session_id)
        .first()
    )
    if session is None:
        raise NotFound("Teleconsultation not found")
    return session


def get_by_meeting(meeting_id):
    session = (
        Teleconsultation.objects
        .select_related("doctor", "patient", "clinic", "appointment")
        .filter(meeting_id=meeting_id)
        .first()
    )
    if session is None:
        raise NotFound("Teleconsultation not found")
    return session


def _lock(session_id):
    try:
        return Teleconsultation.objects.select_for_update().get(id=session_id)
    except Teleconsultation.DoesNotExist:
        raise NotFound("Teleconsultation not found")


def check_party(actor, session):
    """The session's doctor, its patient, or an admin of its clinic."""
    if actor.id in (session.doctor_id, session.patient_id) or is_clinic_admin(actor, session.clinic):
        return
    raise Unauthorized("You are not a participant of this teleconsultation")


def _check_doctor_side(actor, session):
    if actor.id == session.doctor_id or is_clinic_admin(actor, session.clinic):
        return
    raise Unauthorized("Only the doctor or a clinic admin can do this")


def _reject_processing(session):
    if session.status == Teleconsultation.STATUS_PROCESSING:
        raise InvalidTransition("Teleconsultation is being processed and cannot change")


def _notify_room(session, event, **data):
    """Tell sockets attached to the session's room about a lifecycle change, after commit."""
    text = encode(event, {"roomName": session.room_name, "status": session.status, **data})
    group = room_group(session.room_name)

    def send():
        layer = get_channel_layer()
        if layer is not None and group:
            async_to_sync(layer.group_send)(group, {"type": "signal.message", "text": text})

    transaction.on_commit(send)


# =============================================================================
# CREATE
# =============================================================================

def create_session(appointment, actor, options=None):
    """Mint the room for an appointment. One session per appointment."""
    options = options or {}
    if not (actor.id in (appointment.doctor_id, appointment.patient_id)
            or is_clinic_staff(actor, appointment.clinic)):
        raise Unauthorized("You cannot create a teleconsultation for this appointment")
    if appointment.is_terminal:
        raise InvalidTransition(f"Appointment is {appointment.status}")
    if Teleconsultation.objects.filter(appointment=appointment).exists():
        raise Conflict("A teleconsultation already exists for this appointment")

    features = default_features()
    for key in FEATURE_KEYS:
        if key in (options.get("features") or {}):
            features[key] = bool(options["features"][key])
    if "enable_recording" in options:
        features["recording"] = bool(options["enable_recording"])

    scheduled_date = parse_date(options["scheduled_date"]) if options.get("scheduled_date") else appointment.date
    scheduled_time = parse_hhmm(options["scheduled_time"]) if options.get("scheduled_time") else appointment.start_time
    duration = parse_duration(options["duration"]) if options.get("duration") else appointment.duration

    try:
        with transaction.atomic():
            session = Teleconsultation.objects.create(
                appointment=appointment,
                doctor=appointment.doctor,
                patient=appointment.patient,
                clinic=appointment.clinic,
                room_name=meeting.new_room_name(),
                meeting_id=meeting.new_meeting_id(),
                domain=settings.MEDIA_SERVER_DOMAIN,
                require_password=bool(options.get("require_password", False)),
                # both secrets are minted even when passwords are not enforced
                moderator_secret=meeting.new_secret(),
                participant_secret=meeting.new_secret(),
                features=features,
                scheduled_date=scheduled_date,
                scheduled_time=scheduled_time,
                duration=duration,
                created_by=actor,
            )
    except IntegrityError:
        raise Conflict("A teleconsultation already exists for this appointment")

    logger.info("Teleconsultation %s minted for appointment %s (room %s, meeting %s)",
                session.id, appointment.id, session.room_name, session.meeting_id)
    return session


def creation_payload(session):
    """Session + join URLs + invitation texts, returned once at creation."""
    doctor_name, patient_name = _name(session.doctor), _name(session.patient)
    urls = meeting.session_urls(session, doctor_name, patient_name)
    return {
        "session": TeleconsultationSerializer(session).data,
        "urls": urls,
        "moderator_secret": session.moderator_secret,
        "participant_secret": session.participant_secret,
        "invitations": {
            "patient": meeting.patient_invitation(session, doctor_name, patient_name, urls["participant"]),
            "doctor": meeting.doctor_invitation(session, doctor_name, patient_name, urls["moderator"]),
        },
    }


def create_for_appointment(actor, appointment_id, options=None):
    appointment = Appointment.objects.select_related("doctor", "patient", "clinic").filter(id=appointment_id).first()
    if appointment is None:
        raise NotFound("Appointment not found")
    with transaction.atomic():
        return create_session(appointment, actor, options)


# =============================================================================
# START / JOIN / LEAVE
# =============================================================================

def start_session(session_id, actor):
    """Scheduled → Started. Repeating it on a live session changes nothing."""
    with transaction.atomic():
        session = _lock(session_id)
        _check_doctor_side(actor, session)
        _reject_processing(session)

        if session.status in Teleconsultation.LIVE_STATUSES:
            return session
        if session.status != Teleconsultation.STATUS_SCHEDULED:
            raise InvalidTransition(f"Cannot start a teleconsultation that is {session.status}")

        session.status = Teleconsultation.STATUS_STARTED
        session.actual_start_time = timezone.now()
        session.save(update_fields=["status", "actual_start_time", "updated_at"])

        appt = session.appointment
        if appt.can_transition_to(Appointment.STATUS_IN_PROGRESS):
            appt.status = Appointment.STATUS_IN_PROGRESS
            appt.save(update_fields=["status", "updated_at"])

        _notify_room(session, "session-started")

    logger.info("Teleconsultation %s started by user %s", session.id, actor.id)
    return session


def join_session(session_id, actor, role):
    """
    Attach the caller as doctor or patient and hand back their URL + role token.
    A role already held by someone else is refused with RoleConflict.
    """
    if role not in (TeleconsultationParticipant.ROLE_DOCTOR, TeleconsultationParticipant.ROLE_PATIENT):
        raise InvalidInput("role must be 'doctor' or 'patient'")

    with transaction.atomic():
        session = _lock(session_id)
        check_party(actor, session)
        owner_id = session.doctor_id if role == TeleconsultationParticipant.ROLE_DOCTOR else session.patient_id
        if actor.id != owner_id and not is_clinic_admin(actor, session.clinic):
            raise Unauthorized(f"You cannot join as the {role}")

        _reject_processing(session)
        if session.is_terminal:
            raise InvalidTransition(f"Teleconsultation is {session.status}")

        attached = session.participants.filter(role=role, left_at__isnull=True).first()
        if attached is not None and attached.user_id != actor.id:
            raise RoleConflict(f"The {role} slot is already taken")

        if attached is None:
            try:
                with transaction.atomic():
                    TeleconsultationParticipant.objects.create(
                        teleconsultation=session, user=actor, role=role, joined_at=timezone.now(),
                    )
            except IntegrityError:
                raise RoleConflict(f"The {role} slot is already taken")

        if session.status == Teleconsultation.STATUS_STARTED:
            session.status = Teleconsultation.STATUS_IN_PROGRESS
            session.save(update_fields=["status", "updated_at"])
            _notify_room(session, "session-in-progress")

    moderator = role == TeleconsultationParticipant.ROLE_DOCTOR
    doctor_name, patient_name = _name(session.doctor), _name(session.patient)
    urls = meeting.session_urls(session, doctor_name, patient_name)

    logger.info("User %s joined teleconsultation %s as %s", actor.id, session.id, role)
    return {
        "session": session,
        "role": role,
        "room_name": session.room_name,
        "url": urls["moderator"] if moderator else urls["participant"],
        "token": meeting.role_token(session, moderator=moderator),
    }


def leave_session(session_id, actor, role=None):
    with transaction.atomic():
        session = _lock(session_id)
        check_party(actor, session)

        attached = session.participants.filter(user=actor, left_at__isnull=True)
        if role:
            attached = attached.filter(role=role)
        rows = list(attached)
        if not rows:
            raise NotFound("You are not attached to this teleconsultation")
        now = timezone.now()
        for row in rows:
            row.left_at = now
            row.connection_minutes = _minutes_between(row.joined_at, now)
            row.save(update_fields=["left_at", "connection_minutes"])

    logger.info("User %s left teleconsultation %s", actor.id, session.id)
    return session


def _close_participants(session, now):
    for row in session.participants.filter(left_at__isnull=True):
        row.left_at = now
        row.connection_minutes = _minutes_between(row.joined_at, now)
        row.save(update_fields=["left_at", "connection_minutes"])


# =============================================================================
# END / CANCEL
# =============================================================================

def _parse_outcome(outcome):
    fields = {}
    for key, limit in OUTCOME_LIMITS.items():
        value = outcome.get(key)
        if value is None:
            continue
        value = str(value)
        if len(value) > limit:
            raise InvalidInput(f"{key} must be at most {limit} characters")
        fields[key] = value
    if "follow_up_required" in outcome:
        fields["follow_up_required"] = bool(outcome.get("follow_up_required"))
    if outcome.get("follow_up_date"):
        fields["follow_up_date"] = parse_date(outcome["follow_up_date"], "follow_up_date")
    if fields.get("follow_up_required") and not fields.get("follow_up_date"):
        raise InvalidInput("follow_up_date is required when a follow-up is required")
    return fields


def end_session(session_id, actor, outcome=None):
    """Started / In Progress → Completed, storing the consultation outcome."""
    fields = _parse_outcome(outcome or {})

    with transaction.atomic():
        session = _lock(session_id)
        _check_doctor_side(actor, session)
        _reject_processing(session)
        if session.status not in Teleconsultation.LIVE_STATUSES:
            raise InvalidTransition(f"Cannot end a teleconsultation that is {session.status}")

        now = timezone.now()
        for key, value in fields.items():
            setattr(session, key, value)
        session.status = Teleconsultation.STATUS_COMPLETED
        session.actual_end_time = now
        session.actual_duration = _minutes_between(session.actual_start_time or now, now)
        session.save()
        _close_participants(session, now)

        appt = session.appointment
        if not appt.is_terminal:
            # the visit happened, whatever the appointment said before
            appt.status = Appointment.STATUS_COMPLETED
            appt.save(update_fields=["status", "updated_at"])

        _notify_room(session, "session-ended")

    logger.info("Teleconsultation %s completed after %s min", session.id, session.actual_duration)
    return session


def _cancel(session, reason, now):
    session.status = Teleconsultation.STATUS_CANCELLED
    session.cancellation_reason = (reason or "")[:300]
    if session.actual_start_time and not session.actual_end_time:
        session.actual_end_time = now
    session.save(update_fields=["status", "cancellation_reason", "actual_end_time", "updated_at"])
    _close_participants(session, now)
    _notify_room(session, "session-cancelled", reason=session.cancellation_reason)


def cancel_session(session_id, actor, reason=""):
    """Scheduled / Started / In Progress → Cancelled. Cancels the appointment too."""
    with transaction.atomic():
        session = _lock(session_id)
        check_party(actor, session)
        _reject_processing(session)
        if session.is_terminal:
            raise InvalidTransition(f"Cannot cancel a teleconsultation that is {session.status}")

        _cancel(session, reason, timezone.now())

        appt = session.appointment
        if appt.can_transition_to(Appointment.STATUS_CANCELLED):
            appt.status = Appointment.STATUS_CANCELLED
            appt.save(update_fields=["status", "updated_at"])

    logger.info("Teleconsultation %s cancelled by user %s: %s", session.id, actor.id, reason or "-")
    return session


# =============================================================================
# HOOKS FROM THE BOOKING PATH
# =============================================================================

def cancel_for_appointment(appointment, reason):
    session = Teleconsultation.objects.select_for_update().filter(appointment=appointment).first()
    if session is None or session.is_terminal or session.status == Teleconsultation.STATUS_PROCESSING:
        return None
    _cancel(session, reason, timezone.now())
    logger.info("Teleconsultation %s cancelled with appointment %s", session.id, appointment.id)
    return session


def follow_appointment(appointment):
    """Keep a pending session on the appointment's new date/time."""
    updated = (
        Teleconsultation.objects
        .filter(appointment=appointment, status=Teleconsultation.STATUS_SCHEDULED)
        .update(
            scheduled_date=appointment.date,
            scheduled_time=appointment.start_time,
            duration=appointment.duration,
            updated_at=timezone.now(),
        )
    )
    if updated:
        logger.info("Teleconsultation for appointment %s moved with it", appointment.id)
