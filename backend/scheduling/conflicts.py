# scheduling/conflicts.py
#
# Overlap checks for a proposed booking and alternative times when it clashes.
# Intervals are half-open: back-to-back appointments do not conflict.

import logging
from dataclasses import asdict, dataclass

from django.conf import settings

from clinic.actors import clinic_of, get_doctor
from clinic.timeutils import format_12h, format_hhmm, parse_date, parse_duration, parse_hhmm, to_minutes

from .availability import load_day
from .models import Appointment

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 4
SUGGESTION_STEPS = 3


@dataclass(frozen=True)
class ConflictRecord:
    appointment_id: int
    patient_name: str
    time: str
    duration: int
    appointment_type: str
    status: str

    def as_dict(self):
        return asdict(self)


def overlaps(a_start, a_duration, b_start, b_duration) -> bool:
    return a_start < b_start + b_duration and b_start < a_start + a_duration


def detect_conflicts(doctor_id, date, start_time, duration, exclude_appointment_id=None):
    """
    Appointments of `doctor_id` on `date` that overlap [start_time, start_time + duration),
    ordered by start time. Cancelled and No Show appointments never conflict.
    """
    day = parse_date(date)
    start = to_minutes(parse_hhmm(start_time, "time"))
    duration = parse_duration(duration)
    doctor = get_doctor(doctor_id)

    candidates = (
        Appointment.objects
        .filter(doctor=doctor, date=day)
        .exclude(status__in=[Appointment.STATUS_CANCELLED, Appointment.STATUS_NO_SHOW])
        .select_related("patient")
        .order_by("start_time", "id")
    )
    if exclude_appointment_id is not None:
        candidates = candidates.exclude(id=exclude_appointment_id)

    conflicts = []
    for appt in candidates:
        if overlaps(start, duration, to_minutes(appt.start_time), appt.duration):
            conflicts.append(ConflictRecord(
                appointment_id=appt.id,
                patient_name=appt.patient.get_full_name() or appt.patient.username,
                time=format_hhmm(appt.start_time),
                duration=appt.duration,
                appointment_type=appt.appointment_type,
                status=appt.status,
            ))
    return conflicts


def suggest_alternatives(doctor_id, date, start_time, duration, conflicts,
                         exclude_appointment_id=None, clinic=None):
    """
    Up to four bookable start times near a clashing request.

    Earlier tries step back by the requested duration (never before opening),
    later tries step forward from the first clash by its duration (never past
    closing). Each try snaps onto the doctor's slot grid and is kept only when
    the whole requested duration is free.
    """
    if not conflicts:
        return []

    day = parse_date(date)
    start = to_minutes(parse_hhmm(start_time, "time"))
    duration = parse_duration(duration)
    doctor = get_doctor(doctor_id)
    clinic = clinic or clinic_of(doctor)

    opens  = to_minutes(clinic.opening_time if clinic else parse_hhmm(settings.CLINIC_OPEN_TIME))
    closes = to_minutes(clinic.closing_time if clinic else parse_hhmm(settings.CLINIC_CLOSE_TIME))
    plan = load_day(doctor, day, exclude_appointment_id=exclude_appointment_id).plan

    first = conflicts[0]
    clash_start = to_minutes(parse_hhmm(first.time))

    tries = [max(start - k * duration, opens) for k in range(1, SUGGESTION_STEPS + 1)]
    for k in range(1, SUGGESTION_STEPS + 1):
        t = clash_start + k * first.duration
        if t + duration <= closes:
            tries.append(t)

    picked = []
    for t in tries:
        t = plan.snap(t)
        if t is None or t < opens or t in picked or not plan.fits(t, duration):
            continue
        picked.append(t)
        if len(picked) == MAX_SUGGESTIONS:
            break

    return [{"time": format_hhmm(t), "label": format_12h(t)} for t in picked]


def check_slot(doctor_id, date, start_time, duration, exclude_appointment_id=None):
    """Conflict probe used by the booking form before it submits."""
    conflicts = detect_conflicts(doctor_id, date, start_time, duration, exclude_appointment_id)
    suggestions = suggest_alternatives(doctor_id, date, start_time, duration, conflicts, exclude_appointment_id)
    logger.debug("Slot check doctor=%s %s %s: %d conflict(s), %d suggestion(s)",
                 doctor_id, date, start_time, len(conflicts), len(suggestions))
    return {
        "has_conflicts": bool(conflicts),
        "conflicts": [c.as_dict() for c in conflicts],
        "suggestions": suggestions,
    }
