# scheduling/availability.py
#
# Bookable slots for one doctor on one date.
#
#   working hours  = union of the day's weekly rules
#                    (an exception may wipe, replace or cut into them)
#   free time      = working hours minus live appointments
#   slots          = rule-grid cells that lie fully inside free time
#
# Everything below works on "minutes since midnight" integers; load_day()
# is the only function that touches the database.

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from clinic.timeutils import day_of_week, format_hhmm, parse_date, parse_hhmm, to_minutes

from .models import Appointment, ScheduleException, WeeklyAvailabilityRule
from .serializers import AppointmentSerializer, ExceptionSerializer, RuleSerializer

Interval = Tuple[int, int]

DEFAULT_SLOT_DURATION = 30


# =============================================================================
# INTERVAL ARITHMETIC
# =============================================================================

def union(intervals) -> List[Interval]:
    """Merge overlapping/touching [start, end) ranges into a sorted list."""
    merged: List[Interval] = []
    for start, end in sorted(i for i in intervals if i[0] < i[1]):
        if merged and start <= merged[-1][1]:
            merged[-1] = (merged[-1][0], max(merged[-1][1], end))
        else:
            merged.append((start, end))
    return merged


def subtract(intervals, cut: Interval) -> List[Interval]:
    cut_start, cut_end = cut
    result = []
    for start, end in intervals:
        if cut_end <= start or end <= cut_start:
            result.append((start, end))
            continue
        if start < cut_start:
            result.append((start, cut_start))
        if cut_end < end:
            result.append((cut_end, end))
    return result


# =============================================================================
# DAY PLAN
# =============================================================================

@dataclass(frozen=True)
class Segment:
    """A stretch of the day sliced into slots of `step` minutes from `start`."""
    start: int
    end: int
    step: int


@dataclass(frozen=True)
class Slot:
    start: int
    end: int

    def as_dict(self):
        return {"start_time": format_hhmm(self.start), "end_time": format_hhmm(self.end)}


@dataclass
class DayPlan:
    segments: List[Segment] = field(default_factory=list)
    working: List[Interval] = field(default_factory=list)
    free: List[Interval] = field(default_factory=list)

    def slots(self) -> List[Slot]:
        candidates = set()
        for seg in self.segments:
            t = seg.start
            while t + seg.step <= seg.end:
                if self.fits(t, seg.step):
                    candidates.add(Slot(t, t + seg.step))
                t += seg.step

        # Rules of different widths may overlap; keep the list disjoint.
        result: List[Slot] = []
        for slot in sorted(candidates, key=lambda s: (s.start, s.end)):
            if result and slot.start < result[-1].end:
                continue
            result.append(slot)
        return result

    def fits(self, start: int, duration: int) -> bool:
        return any(a <= start and start + duration <= b for a, b in self.free)

    def snap(self, minute: int) -> Optional[int]:
        """Start of the grid cell containing `minute`, or None outside every segment."""
        for seg in sorted(self.segments, key=lambda s: (s.start, s.step)):
            if seg.start <= minute < seg.end:
                return seg.start + ((minute - seg.start) // seg.step) * seg.step
        return None


def build_plan(rules, exception=None, booked=()) -> DayPlan:
    """
    rules     : iterable of (start, end, slot_duration) in minutes
    exception : ScheduleException-like object or None
    booked    : iterable of (start, end) for live appointments
    """
    rules = [r for r in rules if r[0] < r[1]]
    segments = [Segment(start, end, step) for start, end, step in rules]
    working = union((start, end) for start, end, _ in rules)

    if exception is not None:
        kind = exception.kind
        if kind == ScheduleException.KIND_UNAVAILABLE:
            return DayPlan()
        if kind == ScheduleException.KIND_CUSTOM_HOURS:
            step = min((r[2] for r in rules), default=DEFAULT_SLOT_DURATION)
            start, end = to_minutes(exception.start_time), to_minutes(exception.end_time)
            segments = [Segment(start, end, step)]
            working = [(start, end)]
            for brk in exception.breaks or []:
                working = subtract(working, (to_minutes(parse_hhmm(brk["start"])),
                                             to_minutes(parse_hhmm(brk["end"]))))
        elif kind == ScheduleException.KIND_BLOCKED_HOURS:
            working = subtract(working, (to_minutes(exception.start_time),
                                         to_minutes(exception.end_time)))

    free = list(working)
    for cut in booked:
        free = subtract(free, cut)

    return DayPlan(segments=segments, working=working, free=free)


# =============================================================================
# DATABASE LOADER
# =============================================================================

@dataclass
class DayAvailability:
    date: object
    rules: list
    exception: Optional[ScheduleException]
    appointments: list
    plan: DayPlan

    def bundle(self):
        return {
            "date": self.date.isoformat(),
            "day_of_week": day_of_week(self.date),
            "rules": RuleSerializer(self.rules, many=True).data,
            "exceptions": ExceptionSerializer([self.exception] if self.exception else [], many=True).data,
            "appointments": AppointmentSerializer(self.appointments, many=True).data,
            "slots": [s.as_dict() for s in self.plan.slots()],
        }


def load_day(doctor, day, clinic=None, exclude_appointment_id=None) -> DayAvailability:
    day = parse_date(day)

    rules = WeeklyAvailabilityRule.objects.filter(
        doctor=doctor, day_of_week=day_of_week(day), is_active=True,
    ).order_by("start_time")
    if clinic is not None:
        rules = rules.filter(clinic=clinic)
    rules = list(rules)

    exception = ScheduleException.objects.filter(doctor=doctor, date=day, is_active=True).first()

    appointments = Appointment.objects.filter(
        doctor=doctor, date=day, status__in=Appointment.ACTIVE_STATUSES,
    ).select_related("patient").order_by("start_time")
    if exclude_appointment_id is not None:
        appointments = appointments.exclude(id=exclude_appointment_id)
    appointments = list(appointments)

    plan = build_plan(
        [(to_minutes(r.start_time), to_minutes(r.end_time), r.slot_duration) for r in rules],
        exception,
        [(to_minutes(a.start_time), to_minutes(a.start_time) + a.duration) for a in appointments],
    )
    return DayAvailability(date=day, rules=rules, exception=exception, appointments=appointments, plan=plan)


def get_availability(doctor, day, clinic=None):
    """Rules, exception and live appointments behind a day's slots."""
    return load_day(doctor, day, clinic).bundle()


def get_bookable_slots(doctor, day, clinic=None) -> List[Slot]:
    return load_day(doctor, day, clinic).plan.slots()
