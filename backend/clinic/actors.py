# clinic/actors.py
#
# Who is calling? Authentication happens in DRF (JWT); these helpers only look
# at request.user and its profile to decide what the caller may touch.

from django.contrib.auth.models import User

from .errors import NotFound, Unauthorized
from .models import Clinic, UserProfile


def role_of(user):
    if user is None or not user.is_authenticated:
        return None
    profile = getattr(user, "profile", None)
    if profile is not None:
        return profile.role
    return "admin" if user.is_superuser else None


def clinic_of(user):
    profile = getattr(user, "profile", None)
    return profile.clinic if profile is not None else None


def is_clinic_admin(user, clinic) -> bool:
    """Superusers administer every clinic; clinic admins only their own."""
    if user is None or not user.is_authenticated:
        return False
    if user.is_superuser:
        return True
    profile = getattr(user, "profile", None)
    return (
        profile is not None
        and profile.role == UserProfile.ROLE_CLINIC_ADMIN
        and clinic is not None
        and profile.clinic_id == clinic.id
    )


def is_clinic_staff(user, clinic) -> bool:
    """Clinic admins plus the nurses and doctors working at that clinic."""
    if is_clinic_admin(user, clinic):
        return True
    profile = getattr(user, "profile", None)
    return (
        profile is not None
        and profile.role in (UserProfile.ROLE_NURSE, UserProfile.ROLE_DOCTOR)
        and clinic is not None
        and profile.clinic_id == clinic.id
    )


def require_clinic_admin(user, clinic):
    if not is_clinic_admin(user, clinic):
        raise Unauthorized("Clinic admin privileges required")


def require_schedule_manager(user, doctor, clinic):
    """A doctor may manage their own schedule; admins manage any in their clinic."""
    if user.id == doctor.id or is_clinic_admin(user, clinic):
        return
    raise Unauthorized("Only the doctor or a clinic admin can change this schedule")


def get_doctor(doctor_id):
    try:
        return User.objects.select_related("profile__clinic").get(
            id=doctor_id, profile__role=UserProfile.ROLE_DOCTOR
        )
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Doctor {doctor_id} not found")


def get_patient(patient_id):
    try:
        return User.objects.select_related("profile").get(
            id=patient_id, profile__role=UserProfile.ROLE_PATIENT
        )
    except (User.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Patient {patient_id} not found")


def get_clinic(clinic_id):
    try:
        return Clinic.objects.get(id=clinic_id)
    except (Clinic.DoesNotExist, ValueError, TypeError):
        raise NotFound(f"Clinic {clinic_id} not found")


def resolve_clinic(doctor, clinic_id=None):
    """Explicit clinic id wins; otherwise the doctor's own clinic."""
    if clinic_id not in (None, ""):
        return get_clinic(clinic_id)
    clinic = clinic_of(doctor)
    if clinic is None:
        raise NotFound("Doctor is not attached to a clinic")
    return clinic
