# scheduling/models.py
#
# Tables behind the booking engine:
#   1. WeeklyAvailabilityRule - recurring hours a doctor works on a weekday
#   2. ScheduleException      - date-specific override (day off, custom hours, blocked hours)
#   3. Appointment            - a booked visit; its status machine drives it forward
#
# All times are wall-clock HH:MM in the clinic's timezone (Clinic.timezone).

from datetime import datetime, timedelta

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q

from clinic.models import Clinic
from clinic.timeutils import DAY_NAMES, MAX_DURATION, MIN_DURATION


# =============================================================================
# 1. WEEKLY AVAILABILITY RULE
# =============================================================================

class WeeklyAvailabilityRule(models.Model):
    """
    Dr. Smith works at City Clinic on Mondays 09:00-12:00 and 14:00-17:00.

    Several rules per (doctor, clinic, day) are allowed; the gap between them
    is the lunch break. Rules never cross midnight.
    """

    DAY_CHOICES = list(enumerate(DAY_NAMES))   # 0 = Sunday ... 6 = Saturday

    doctor        = models.ForeignKey(User,   on_delete=models.CASCADE, related_name="weekly_rules")
    clinic        = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="weekly_rules")
    day_of_week   = models.PositiveSmallIntegerField(choices=DAY_CHOICES)
    start_time    = models.TimeField()
    end_time      = models.TimeField()
    slot_duration = models.PositiveSmallIntegerField(default=30)   # minutes
    is_active     = models.BooleanField(default=True)

    created_at    = models.DateTimeField(auto_now_add=True)
    updated_at    = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["day_of_week", "start_time"]
        indexes = [models.Index(fields=["doctor", "day_of_week", "is_active"], name="scheduling__doctor__9c1d2e_idx")]

    def clean(self):
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValidationError("End time must be after start time")
        if not MIN_DURATION <= (self.slot_duration or 0) <= MAX_DURATION:
            raise ValidationError(f"Slot duration must be between {MIN_DURATION} and {MAX_DURATION} minutes")

    def __str__(self):
        return (
            f"{self.doctor.get_full_name() or self.doctor.username} @ {self.clinic.name} "
            f"{self.get_day_of_week_display()} {self.start_time:%H:%M}-{self.end_time:%H:%M}"
        )


# =============================================================================
# 2. SCHEDULE EXCEPTION
# =============================================================================

class ScheduleException(models.Model):
    """
    One active override per (doctor, date):
      - unavailable   → no slots at all that day
      - custom_hours  → replaces the weekly hours with [start, end) minus breaks
      - blocked_hours → removes [start, end) from the weekly hours

    Deleting an exception only clears is_active, so the history stays.
    """

    KIND_UNAVAILABLE   = "unavailable"
    KIND_CUSTOM_HOURS  = "custom_hours"
    KIND_BLOCKED_HOURS = "blocked_hours"

    KIND_CHOICES = [
        (KIND_UNAVAILABLE,   "Unavailable"),
        (KIND_CUSTOM_HOURS,  "Custom hours"),
        (KIND_BLOCKED_HOURS, "Blocked hours"),
    ]

    TIMED_KINDS = (KIND_CUSTOM_HOURS, KIND_BLOCKED_HOURS)

    doctor     = models.ForeignKey(User,   on_delete=models.CASCADE, related_name="schedule_exceptions")
    clinic     = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="schedule_exceptions")
    date       = models.DateField()
    kind       = models.CharField(max_length=20, choices=KIND_CHOICES)
    start_time = models.TimeField(null=True, blank=True)
    end_time   = models.TimeField(null=True, blank=True)
    # [{"start": "12:00", "end": "12:30"}, ...] - custom_hours only
    breaks     = models.JSONField(default=list, blank=True)
    reason     = models.CharField(max_length=200, blank=True)
    is_active  = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["date"]
        constraints = [
            models.UniqueConstraint(
                fields=["doctor", "date"],
                condition=Q(is_active=True),
                name="one_active_exception_per_doctor_date",
            ),
        ]

    def clean(self):
        if self.kind in self.TIMED_KINDS:
            if not self.start_time or not self.end_time:
                raise ValidationError("Start and end time are required for custom or blocked hours")
            if self.end_time <= self.start_time:
                raise ValidationError("End time must be after start time")

    def __str__(self):
        return f"{self.doctor.username} {self.date} {self.get_kind_display()}"


# =============================================================================
# 3. APPOINTMENT
# =============================================================================

class Appointment(models.Model):
    """
    A booked visit.

    Flow:
      Scheduled → Confirmed → In Progress → Completed
      Scheduled / Confirmed → No Show
      anything not yet finished → Cancelled
    """

    STATUS_SCHEDULED   = "Scheduled"
    STATUS_CONFIRMED   = "Confirmed"
    STATUS_IN_PROGRESS = "In Progress"
    STATUS_COMPLETED   = "Completed"
    STATUS_CANCELLED   = "Cancelled"
    STATUS_NO_SHOW     = "No Show"

    STATUS_CHOICES = [
        (STATUS_SCHEDULED,   "Scheduled"),
        (STATUS_CONFIRMED,   "Confirmed"),
        (STATUS_IN_PROGRESS, "In Progress"),
        (STATUS_COMPLETED,   "Completed"),
        (STATUS_CANCELLED,   "Cancelled"),
        (STATUS_NO_SHOW,     "No Show"),
    ]

    # Statuses that hold the doctor's time
    ACTIVE_STATUSES   = (STATUS_SCHEDULED, STATUS_CONFIRMED, STATUS_IN_PROGRESS)
    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED, STATUS_NO_SHOW)

    TRANSITIONS = {
        STATUS_SCHEDULED:   (STATUS_CONFIRMED, STATUS_IN_PROGRESS, STATUS_CANCELLED, STATUS_NO_SHOW),
        STATUS_CONFIRMED:   (STATUS_IN_PROGRESS, STATUS_CANCELLED, STATUS_NO_SHOW),
        STATUS_IN_PROGRESS: (STATUS_COMPLETED, STATUS_CANCELLED),
    }

    TYPE_TELECONSULTATION = "Teleconsultation"

    TYPE_CHOICES = [
        ("General Consultation",    "General Consultation"),
        ("Follow-up Visit",         "Follow-up Visit"),
        ("Annual Checkup",          "Annual Checkup"),
        ("Specialist Consultation", "Specialist Consultation"),
        ("Emergency Visit",         "Emergency Visit"),
        ("Lab Work",                "Lab Work"),
        ("Imaging",                 "Imaging"),
        ("Vaccination",             "Vaccination"),
        ("Physical Therapy",        "Physical Therapy"),
        ("Mental Health",           "Mental Health"),
        (TYPE_TELECONSULTATION,     "Teleconsultation"),
    ]

    doctor           = models.ForeignKey(User,   on_delete=models.CASCADE, related_name="doctor_appointments")
    patient          = models.ForeignKey(User,   on_delete=models.CASCADE, related_name="patient_appointments")
    clinic           = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="appointments")
    date             = models.DateField()
    start_time       = models.TimeField()
    duration         = models.PositiveSmallIntegerField(default=30)   # minutes, 15..240
    status           = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED)
    appointment_type = models.CharField(max_length=40, choices=TYPE_CHOICES, default="General Consultation")
    reason           = models.CharField(max_length=300, blank=True)
    notes            = models.TextField(blank=True)

    created_by       = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="booked_appointments",
    )
    created_at       = models.DateTimeField(auto_now_add=True)
    updated_at       = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["date", "start_time"]
        indexes = [models.Index(fields=["doctor", "date"], name="scheduling__doctor__4b7a10_idx")]
        constraints = [
            # Two simultaneous bookings of the same start can't both be live.
            models.UniqueConstraint(
                fields=["doctor", "date", "start_time"],
                condition=Q(status__in=["Scheduled", "Confirmed", "In Progress"]),
                name="one_live_appointment_per_doctor_start",
            ),
        ]

    @property
    def end_time(self):
        return (datetime.combine(self.date, self.start_time) + timedelta(minutes=self.duration)).time()

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def can_transition_to(self, new_status):
        return new_status in self.TRANSITIONS.get(self.status, ())

    def __str__(self):
        return f"Appointment {self.pk}: {self.patient.username} with {self.doctor.username} @ {self.date} {self.start_time:%H:%M}"
