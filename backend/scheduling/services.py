# scheduling/services.py
#
# Weekly rules and date exceptions: validation and writes.
# Views call these and let the clinic.errors exceptions propagate.

import logging
from datetime import timedelta

from django.db import IntegrityError, transaction
from django.utils import timezone

from clinic.actors import get_doctor, require_schedule_manager, resolve_clinic
from clinic.errors import Conflict, InvalidInput, NotFound
from clinic.timeutils import (
    DAY_NAMES,
    day_of_week,
    format_hhmm,
    parse_date,
    parse_duration,
    parse_hhmm,
    parse_weekday,
)

from .models import Appointment, ScheduleException, WeeklyAvailabilityRule

logger = logging.getLogger(__name__)

MAX_EXCEPTION_RANGE_DAYS = 366


def _time_range(start, end):
    start_t = parse_hhmm(start, "start_time")
    end_t = parse_hhmm(end, "end_time")
    if end_t <= start_t:
        # Also rejects rules that would cross midnight.
        raise InvalidInput("end_time must be after start_time on the same day")
    return start_t, end_t


# =============================================================================
# WEEKLY RULES
# =============================================================================

def list_rules(doctor_id, clinic_id=None):
    doctor = get_doctor(doctor_id)
    rules = WeeklyAvailabilityRule.objects.filter(doctor=doctor, is_active=True)
    if clinic_id:
        rules = rules.filter(clinic_id=clinic_id)
    return list(rules.order_by("day_of_week", "start_time"))


def create_rule(actor, doctor_id, day, start_time, end_time, slot_duration=30, clinic_id=None):
    doctor = get_doctor(doctor_id)
    clinic = resolve_clinic(doctor, clinic_id)
    require_schedule_manager(actor, doctor, clinic)

    day = parse_weekday(day)
    start_t, end_t = _time_range(start_time, end_time)
    slot_duration = parse_duration(slot_duration, "slot_duration")

    rule = WeeklyAvailabilityRule.objects.create(
        doctor=doctor, clinic=clinic, day_of_week=day,
        start_time=start_t, end_time=end_t, slot_duration=slot_duration,
    )
    logger.info("Rule %s created for doctor %s: %s %s-%s", rule.id, doctor.id,
                DAY_NAMES[day], format_hhmm(start_t), format_hhmm(end_t))
    return rule


def delete_rule(actor, rule_id):
    rule = WeeklyAvailabilityRule.objects.select_related("doctor", "clinic").filter(id=rule_id).first()
    if rule is None:
        raise NotFound("Availability rule not found")
    require_schedule_manager(actor, rule.doctor, rule.clinic)
    rule.delete()
    logger.info("Rule %s deleted", rule_id)


def _days_with_future_appointments(doctor):
    today = timezone.localdate()
    dates = (
        Appointment.objects
        .filter(doctor=doctor, date__gte=today, status__in=Appointment.ACTIVE_STATUSES)
        .values_list("date", flat=True)
        .distinct()
    )
    return {day_of_week(d) for d in dates}


def replace_weekly(actor, doctor_id, schedule, slot_duration=30, clinic_id=None):
    """
    Replace the doctor's whole week at one clinic.

    `schedule` is a list of days:
        [{"day_of_week": 1, "enabled": true,
          "slots": [{"start_time": "09:00", "end_time": "12:00"}, ...]}, ...]

    Days not listed keep their rules. A listed day whose hours would change is
    refused while it still has upcoming appointments.
    """
    doctor = get_doctor(doctor_id)
    clinic = resolve_clinic(doctor, clinic_id)
    require_schedule_manager(actor, doctor, clinic)

    if not isinstance(schedule, list):
        raise InvalidInput("schedule must be a list of days")
    slot_duration = parse_duration(slot_duration, "slot_duration")

    wanted = {}
    for entry in schedule:
        if not isinstance(entry, dict):
            raise InvalidInput("each schedule entry must be an object")
        day = parse_weekday(entry.get("day_of_week"))
        ranges = []
        if entry.get("enabled", True):
            windows = entry.get("slots") or []
            if not isinstance(windows, list):
                raise InvalidInput("slots must be a list")
            for window in windows:
                if not isinstance(window, dict):
                    raise InvalidInput("each slot needs start_time and end_time")
                ranges.append(_time_range(window.get("start_time"), window.get("end_time")))
        wanted[day] = sorted(ranges)

    with transaction.atomic():
        current = WeeklyAvailabilityRule.objects.select_for_update().filter(
            doctor=doctor, clinic=clinic, day_of_week__in=list(wanted),
        )
        existing = {}
        for rule in current:
            if rule.is_active:
                existing.setdefault(rule.day_of_week, []).append((rule.start_time, rule.end_time))

        busy_days = _days_with_future_appointments(doctor)
        changed = [day for day, ranges in wanted.items() if sorted(existing.get(day, [])) != ranges]
        blocked = sorted(day for day in changed if day in busy_days)
        if blocked:
            names = [DAY_NAMES[d] for d in blocked]
            raise Conflict(
                f"Cannot modify availability for {', '.join(names)}: appointments are "
                "scheduled on these days. Cancel or reschedule them first.",
                conflicting_days=names,
            )

        current.delete()
        rules = [
            WeeklyAvailabilityRule(
                doctor=doctor, clinic=clinic, day_of_week=day,
                start_time=start_t, end_time=end_t, slot_duration=slot_duration,
            )
            for day, ranges in sorted(wanted.items())
            for start_t, end_t in ranges
        ]
        WeeklyAvailabilityRule.objects.bulk_create(rules)

    logger.info("Weekly schedule replaced for doctor %s at clinic %s (%d rules)",
                doctor.id, clinic.id, len(rules))
    return list_rules(doctor.id, clinic.id)


# =============================================================================
# EXCEPTIONS
# =============================================================================

def list_exceptions(doctor_id, start_date=None, end_date=None):
    doctor = get_doctor(doctor_id)
    qs = ScheduleException.objects.filter(doctor=doctor, is_active=True)
    if start_date:
        qs = qs.filter(date__gte=parse_date(start_date, "startDate"))
    if end_date:
        qs = qs.filter(date__lte=parse_date(end_date, "endDate"))
    return list(qs.order_by("date"))


def _parse_breaks(breaks, start_t, end_t):
    if not breaks:
        return []
    if not isinstance(breaks, list):
        raise InvalidInput("breaks must be a list")
    cleaned = []
    for brk in breaks:
        if not isinstance(brk, dict):
            raise InvalidInput("each break needs start and end")
        b_start, b_end = _time_range(brk.get("start"), brk.get("end"))
        if b_start < start_t or b_end > end_t:
            raise InvalidInput("breaks must fall inside the custom hours")
        cleaned.append({"start": format_hhmm(b_start), "end": format_hhmm(b_end)})
    return cleaned


def _exception_fields(kind, start_time, end_time, breaks):
    valid = [k for k, _ in ScheduleException.KIND_CHOICES]
    if kind not in valid:
        raise InvalidInput(f"Invalid kind. Must be one of: {valid}")

    if kind not in ScheduleException.TIMED_KINDS:
        return {"kind": kind, "start_time": None, "end_time": None, "breaks": []}

    if not start_time or not end_time:
        raise InvalidInput("start_time and end_time are required for custom hours and blocked hours")
    start_t, end_t = _time_range(start_time, end_time)
    return {
        "kind": kind,
        "start_time": start_t,
        "end_time": end_t,
        "breaks": _parse_breaks(breaks, start_t, end_t) if kind == ScheduleException.KIND_CUSTOM_HOURS else [],
    }


def create_exception(actor, doctor_id, date, kind, start_time=None, end_time=None,
                     breaks=None, reason="", clinic_id=None):
    doctor = get_doctor(doctor_id)
    clinic = resolve_clinic(doctor, clinic_id)
    require_schedule_manager(actor, doctor, clinic)

    day = parse_date(date)
    fields = _exception_fields(kind, start_time, end_time, breaks)

    if ScheduleException.objects.filter(doctor=doctor, date=day, is_active=True).exists():
        raise Conflict("An exception already exists for this date. Delete it first or choose another date.")
    try:
        with transaction.atomic():
            exc = ScheduleException.objects.create(
                doctor=doctor, clinic=clinic, date=day, reason=reason or "", **fields,
            )
    except IntegrityError:
        raise Conflict("An exception already exists for this date. Delete it first or choose another date.")

    logger.info("Exception %s (%s) created for doctor %s on %s", exc.id, exc.kind, doctor.id, day)
    return exc


def create_exception_range(actor, doctor_id, start_date, end_date, kind,
                           start_time=None, end_time=None, reason="", clinic_id=None):
    """Vacation helper: one exception per day, skipping days that already have one."""
    doctor = get_doctor(doctor_id)
    clinic = resolve_clinic(doctor, clinic_id)
    require_schedule_manager(actor, doctor, clinic)

    first = parse_date(start_date, "start_date")
    last = parse_date(end_date, "end_date")
    if last < first:
        raise InvalidInput("end_date must not be before start_date")
    if (last - first).days >= MAX_EXCEPTION_RANGE_DAYS:
        raise InvalidInput(f"Date range is limited to {MAX_EXCEPTION_RANGE_DAYS} days")
    if kind == ScheduleException.KIND_BLOCKED_HOURS:
        raise InvalidInput("Date ranges support unavailable or custom_hours only")
    fields = _exception_fields(kind, start_time, end_time, None)

    days = [first + timedelta(days=n) for n in range((last - first).days + 1)]
    with transaction.atomic():
        taken = set(
            ScheduleException.objects
            .filter(doctor=doctor, date__in=days, is_active=True)
            .values_list("date", flat=True)
        )
        created = ScheduleException.objects.bulk_create([
            ScheduleException(doctor=doctor, clinic=clinic, date=d, reason=reason or "", **fields)
            for d in days if d not in taken
        ])

    logger.info("Created %d exceptions for doctor %s between %s and %s (%d skipped)",
                len(created), doctor.id, first, last, len(taken))
    return created, sorted(taken)


def deactivate_exception(actor, exception_id):
    exc = ScheduleException.objects.select_related("doctor", "clinic").filter(id=exception_id).first()
    if exc is None or not exc.is_active:
        raise NotFound("Exception not found")
    require_schedule_manager(actor, exc.doctor, exc.clinic)
    exc.is_active = False
    exc.save(update_fields=["is_active", "updated_at"])
    logger.info("Exception %s deactivated", exc.id)
    return exc
