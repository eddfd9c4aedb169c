# clinic/models.py
#
# Tables shared by every app.
#
#   1. Clinic       - a clinic/hospital branch, with its own timezone and hours
#   2. UserProfile  - extra info for every user (role, clinic, specialty, UHID)
#
# Django's built-in User stores username, password, email and names. Doctors,
# patients and clinic admins are all Users; the profile role tells them apart.

from datetime import datetime
from zoneinfo import ZoneInfo

from django.conf import settings
from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone


def default_timezone():
    return settings.TIME_ZONE


def default_opening_time():
    return datetime.strptime(settings.CLINIC_OPEN_TIME, "%H:%M").time()


def default_closing_time():
    return datetime.strptime(settings.CLINIC_CLOSE_TIME, "%H:%M").time()


# =============================================================================
# 1. CLINIC
# =============================================================================

class Clinic(models.Model):
    """
    A clinic or hospital branch.

    All schedule times (weekly rules, exceptions, appointments) are wall-clock
    HH:MM values in this clinic's timezone.
    """
    clinic_id    = models.CharField(max_length=50, unique=True)   # e.g. "CLINIC-001"
    name         = models.CharField(max_length=100)
    timezone     = models.CharField(max_length=64, default=default_timezone)
    opening_time = models.TimeField(default=default_opening_time)
    closing_time = models.TimeField(default=default_closing_time)

    def __str__(self):
        return f"{self.name} ({self.clinic_id})"

    @property
    def tzinfo(self):
        return ZoneInfo(self.timezone)

    def local_now(self):
        return timezone.now().astimezone(self.tzinfo)


# =============================================================================
# 2. USER PROFILE
# =============================================================================

class UserProfile(models.Model):
    """
    Role decides what the user may do:
      - 'clinic_admin' → manages schedules, invoices, any session of the clinic
      - 'doctor'       → owns availability, moderates teleconsultations
      - 'nurse'        → books appointments for the clinic
      - 'patient'      → books own appointments, joins own teleconsultations
    """

    ROLE_CLINIC_ADMIN = "clinic_admin"
    ROLE_DOCTOR       = "doctor"
    ROLE_NURSE        = "nurse"
    ROLE_PATIENT      = "patient"

    ROLE_CHOICES = [
        (ROLE_CLINIC_ADMIN, "Clinic admin"),
        (ROLE_DOCTOR,       "Doctor"),
        (ROLE_NURSE,        "Nurse"),
        (ROLE_PATIENT,      "Patient"),
    ]

    user      = models.OneToOneField(User, on_delete=models.CASCADE, related_name="profile")
    role      = models.CharField(max_length=20, choices=ROLE_CHOICES, default=ROLE_PATIENT)
    clinic    = models.ForeignKey(
        Clinic,
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name="members",
    )
    specialty = models.CharField(max_length=100, blank=True)                      # doctors
    uhid      = models.CharField(max_length=32, unique=True, null=True, blank=True)  # patients
    mobile    = models.CharField(max_length=20, blank=True)

    def __str__(self):
        return f"{self.display_name} ({self.role})"

    @property
    def display_name(self):
        return self.user.get_full_name() or self.user.username
