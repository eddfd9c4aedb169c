# teleconsultation/models.py
#
#   1. Teleconsultation            - the video session minted for a Teleconsultation appointment
#   2. TeleconsultationParticipant - one row per attach of doctor or patient
#
# Flow:
#   minted      →  status = 'Scheduled'
#   doctor/admin starts it  →  'Started'
#   someone joins a started session  →  'In Progress'
#   ended  →  'Completed' (notes, diagnosis, prescription filled in)
#   or cancelled at any point before that  →  'Cancelled'

from datetime import datetime, timedelta

from django.contrib.auth.models import User
from django.db import models
from django.db.models import Q

from clinic.models import Clinic
from scheduling.models import Appointment


def default_features():
    return {
        "screenSharing": True,
        "chat": True,
        "whiteboard": False,
        "fileSharing": True,
        "recording": False,
    }


# =============================================================================
# 1. TELECONSULTATION
# =============================================================================

class Teleconsultation(models.Model):

    STATUS_SCHEDULED   = "Scheduled"
    STATUS_STARTED     = "Started"
    STATUS_IN_PROGRESS = "In Progress"
    STATUS_COMPLETED   = "Completed"
    STATUS_CANCELLED   = "Cancelled"
    STATUS_PROCESSING  = "Processing"

    STATUS_CHOICES = [
        (STATUS_SCHEDULED,   "Scheduled"),
        (STATUS_STARTED,     "Started"),
        (STATUS_IN_PROGRESS, "In Progress"),
        (STATUS_COMPLETED,   "Completed"),
        (STATUS_CANCELLED,   "Cancelled"),
        # Stored by older billing code; no operation moves a session in or out of it.
        (STATUS_PROCESSING,  "Processing"),
    ]

    TERMINAL_STATUSES = (STATUS_COMPLETED, STATUS_CANCELLED)
    LIVE_STATUSES     = (STATUS_STARTED, STATUS_IN_PROGRESS)

    # ── Links ─────────────────────────────────────────────────────────────────
    appointment = models.OneToOneField(Appointment, on_delete=models.CASCADE, related_name="teleconsultation")
    doctor      = models.ForeignKey(User,   on_delete=models.CASCADE, related_name="doctor_teleconsultations")
    patient     = models.ForeignKey(User,   on_delete=models.CASCADE, related_name="patient_teleconsultations")
    clinic      = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="teleconsultations")

    # ── Room ──────────────────────────────────────────────────────────────────
    room_name          = models.CharField(max_length=64, unique=True)    # "dr" + 24 hex
    meeting_id         = models.CharField(max_length=11, unique=True)    # "123-456-789"
    domain             = models.CharField(max_length=120)
    require_password   = models.BooleanField(default=False)
    moderator_secret   = models.CharField(max_length=16)
    participant_secret = models.CharField(max_length=16)
    features           = models.JSONField(default=default_features)

    # ── Schedule ──────────────────────────────────────────────────────────────
    scheduled_date = models.DateField()
    scheduled_time = models.TimeField()
    duration       = models.PositiveSmallIntegerField(default=30)   # minutes
    status         = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_SCHEDULED)

    actual_start_time = models.DateTimeField(null=True, blank=True)
    actual_end_time   = models.DateTimeField(null=True, blank=True)
    actual_duration   = models.PositiveIntegerField(null=True, blank=True)   # minutes

    # ── Outcome ───────────────────────────────────────────────────────────────
    consultation_notes  = models.TextField(max_length=2000, blank=True)
    diagnosis           = models.TextField(max_length=1000, blank=True)
    prescription        = models.TextField(max_length=1500, blank=True)
    follow_up_required  = models.BooleanField(default=False)
    follow_up_date      = models.DateField(null=True, blank=True)
    cancellation_reason = models.CharField(max_length=300, blank=True)

    created_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True,
        related_name="created_teleconsultations",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["scheduled_date", "scheduled_time"]

    @property
    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    def scheduled_start(self):
        """Aware datetime of the planned start in the clinic's timezone."""
        naive = datetime.combine(self.scheduled_date, self.scheduled_time)
        return naive.replace(tzinfo=self.clinic.tzinfo)

    def scheduled_end(self):
        return self.scheduled_start() + timedelta(minutes=self.duration)

    def __str__(self):
        return f"Teleconsultation {self.meeting_id} ({self.status})"


# =============================================================================
# 2. PARTICIPANT
# =============================================================================

class TeleconsultationParticipant(models.Model):
    """
    One row per attach. A row with left_at = NULL is a participant currently
    in the session; at most one such row per role.
    """

    ROLE_DOCTOR  = "doctor"
    ROLE_PATIENT = "patient"

    ROLE_CHOICES = [
        (ROLE_DOCTOR,  "Doctor"),
        (ROLE_PATIENT, "Patient"),
    ]

    teleconsultation   = models.ForeignKey(Teleconsultation, on_delete=models.CASCADE, related_name="participants")
    user               = models.ForeignKey(User, on_delete=models.CASCADE, related_name="teleconsultation_attendance")
    role               = models.CharField(max_length=10, choices=ROLE_CHOICES)
    joined_at          = models.DateTimeField()
    left_at            = models.DateTimeField(null=True, blank=True)
    connection_minutes = models.PositiveIntegerField(null=True, blank=True)

    class Meta:
        ordering = ["joined_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["teleconsultation", "role"],
                condition=Q(left_at__isnull=True),
                name="one_attached_participant_per_role",
            ),
        ]

    def __str__(self):
        return f"{self.user.username} as {self.role} in {self.teleconsultation.meeting_id}"
