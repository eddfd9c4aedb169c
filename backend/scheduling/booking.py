# scheduling/booking.py
#
# The booking path: conflict check + insert, reschedule, status changes.
#
# Two guards keep a doctor from being double-booked:
#   1. check + insert run in one transaction holding a row lock on the
#      doctor's profile, so concurrent bookings for a doctor queue up;
#   2. the partial unique constraint on (doctor, date, start_time) for live
#      statuses catches anything that slips past (e.g. SQLite, no row locks).

import logging

from django.db import IntegrityError, transaction

from clinic.actors import get_doctor, get_patient, is_clinic_staff, resolve_clinic, role_of
from clinic.errors import Conflict, InvalidInput, InvalidTransition, NotFound, Unauthorized
from clinic.models import UserProfile
from clinic.timeutils import format_hhmm, parse_date, parse_duration, parse_hhmm, to_minutes
from teleconsultation import services as teleconsultation_services

from .conflicts import detect_conflicts, suggest_alternatives
from .models import Appointment

logger = logging.getLogger(__name__)

CONFLICT_MESSAGE = "Time slot conflicts with existing appointment(s)"
MINUTES_PER_DAY  = 24 * 60


def _check_same_day(start, duration):
    if to_minutes(start) + duration > MINUTES_PER_DAY:
        raise InvalidInput("Appointment must end by midnight of the same day")


def _lock_doctor(doctor):
    UserProfile.objects.select_for_update().get(user_id=doctor.id)


def _raise_conflict(doctor, day, start, duration, conflicts, exclude_id=None, clinic=None):
    suggestions = suggest_alternatives(doctor.id, day, start, duration, conflicts,
                                       exclude_appointment_id=exclude_id, clinic=clinic)
    logger.info("Booking rejected for doctor %s on %s %s: %d conflict(s)",
                doctor.id, day, format_hhmm(start), len(conflicts))
    raise Conflict(
        CONFLICT_MESSAGE,
        conflicts=[c.as_dict() for c in conflicts],
        suggestions=suggestions,
    )


def _check_booker(actor, patient, clinic):
    """Patients book for themselves; clinic staff book for anyone."""
    if actor.id == patient.id or is_clinic_staff(actor, clinic):
        return
    raise Unauthorized("You can only book appointments for yourself")


def get_appointment(appointment_id):
    appt = (
        Appointment.objects
        .select_related("doctor", "patient", "clinic")
        .filter(id=appointment_id)
        .first()
    )
    if appt is None:
        raise NotFound("Appointment not found")
    return appt


def check_access(actor, appt):
    if actor.id in (appt.doctor_id, appt.patient_id) or is_clinic_staff(actor, appt.clinic):
        return
    raise Unauthorized("You are not part of this appointment")


# =============================================================================
# BOOK
# =============================================================================

def book_appointment(actor, doctor_id, patient_id, date, time, duration=30,
                     appointment_type="General Consultation", reason="", notes="",
                     clinic_id=None, session_options=None):
    """
    Create an appointment, or raise Conflict carrying `conflicts` and
    `suggestions`. Teleconsultation appointments get their session minted in
    the same transaction.

    Returns (appointment, session or None).
    """
    day = parse_date(date)
    start = parse_hhmm(time, "time")
    duration = parse_duration(duration)
    _check_same_day(start, duration)

    valid_types = [t for t, _ in Appointment.TYPE_CHOICES]
    if appointment_type not in valid_types:
        raise InvalidInput(f"Invalid appointment_type. Must be one of: {valid_types}")

    doctor = get_doctor(doctor_id)
    patient = get_patient(patient_id)
    clinic = resolve_clinic(doctor, clinic_id)
    _check_booker(actor, patient, clinic)

    session = None
    with transaction.atomic():
        _lock_doctor(doctor)
        conflicts = detect_conflicts(doctor.id, day, start, duration)
        if conflicts:
            _raise_conflict(doctor, day, start, duration, conflicts, clinic=clinic)

        try:
            with transaction.atomic():
                appt = Appointment.objects.create(
                    doctor=doctor, patient=patient, clinic=clinic,
                    date=day, start_time=start, duration=duration,
                    appointment_type=appointment_type, reason=reason or "", notes=notes or "",
                    created_by=actor,
                )
        except IntegrityError:
            logger.warning("Concurrent booking for doctor %s on %s %s lost the race",
                           doctor.id, day, format_hhmm(start))
            raise Conflict(CONFLICT_MESSAGE, conflicts=[], suggestions=[])

        if appt.appointment_type == Appointment.TYPE_TELECONSULTATION:
            session = teleconsultation_services.create_session(appt, actor, session_options or {})

    logger.info("Appointment %s booked: doctor %s, patient %s, %s %s (%d min)",
                appt.id, doctor.id, patient.id, day, format_hhmm(start), duration)
    return appt, session


# =============================================================================
# RESCHEDULE
# =============================================================================

def reschedule_appointment(actor, appointment_id, date=None, time=None, duration=None):
    appt = get_appointment(appointment_id)
    check_access(actor, appt)
    if appt.is_terminal:
        raise InvalidTransition(f"Cannot reschedule an appointment that is {appt.status}")

    day = parse_date(date) if date else appt.date
    start = parse_hhmm(time, "time") if time else appt.start_time
    duration = parse_duration(duration) if duration is not None else appt.duration
    _check_same_day(start, duration)

    with transaction.atomic():
        _lock_doctor(appt.doctor)
        conflicts = detect_conflicts(appt.doctor_id, day, start, duration, exclude_appointment_id=appt.id)
        if conflicts:
            _raise_conflict(appt.doctor, day, start, duration, conflicts, exclude_id=appt.id, clinic=appt.clinic)

        appt.date, appt.start_time, appt.duration = day, start, duration
        try:
            with transaction.atomic():
                appt.save(update_fields=["date", "start_time", "duration", "updated_at"])
        except IntegrityError:
            raise Conflict(CONFLICT_MESSAGE, conflicts=[], suggestions=[])

        teleconsultation_services.follow_appointment(appt)

    logger.info("Appointment %s moved to %s %s (%d min)", appt.id, day, format_hhmm(start), duration)
    return appt


# =============================================================================
# STATUS
# =============================================================================

def change_status(actor, appointment_id, new_status, reason=""):
    valid = [s for s, _ in Appointment.STATUS_CHOICES]
    if new_status not in valid:
        raise InvalidInput(f"Invalid status. Must be one of: {valid}")

    with transaction.atomic():
        appt = get_appointment(appointment_id)
        check_access(actor, appt)
        if role_of(actor) == UserProfile.ROLE_PATIENT and new_status != Appointment.STATUS_CANCELLED:
            raise Unauthorized("Patients can only cancel their appointments")

        locked = Appointment.objects.select_for_update().get(id=appt.id)
        if not locked.can_transition_to(new_status):
            raise InvalidTransition(f"Cannot move appointment from {locked.status} to {new_status}")

        locked.status = new_status
        locked.save(update_fields=["status", "updated_at"])

        if new_status == Appointment.STATUS_CANCELLED:
            teleconsultation_services.cancel_for_appointment(locked, reason or "Appointment cancelled")

    logger.info("Appointment %s: %s -> %s", appt.id, appt.status, new_status)
    return locked


def list_day(doctor_id, date):
    doctor = get_doctor(doctor_id)
    return list(
        Appointment.objects
        .filter(doctor=doctor, date=parse_date(date))
        .select_related("doctor", "patient")
        .order_by("start_time")
    )
