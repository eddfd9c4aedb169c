from datetime import date, time

import pytest
from django.contrib.auth.models import User
from rest_framework.test import APIClient

from clinic.models import Clinic, UserProfile
from scheduling.models import Appointment, WeeklyAvailabilityRule
from teleconsultation.rooms import registry

# A Monday far enough ahead that "upcoming appointment" checks see it.
MONDAY = date(2030, 1, 7)


@pytest.fixture(autouse=True)
def empty_rooms():
    registry.clear()
    yield
    registry.clear()


@pytest.fixture
def clinic(db):
    return Clinic.objects.create(clinic_id="CITY-001", name="City Clinic", timezone="Asia/Kolkata")


@pytest.fixture
def make_user(db):
    def make(username, role, clinic=None, first_name="", last_name=""):
        user = User.objects.create_user(username=username, password="pass1234",
                                        first_name=first_name, last_name=last_name)
        UserProfile.objects.create(user=user, role=role, clinic=clinic)
        return user
    return make


@pytest.fixture
def doctor(make_user, clinic):
    return make_user("dr_smith", UserProfile.ROLE_DOCTOR, clinic, "John", "Smith")


@pytest.fixture
def patient(make_user, clinic):
    return make_user("jane", UserProfile.ROLE_PATIENT, clinic, "Jane", "Doe")


@pytest.fixture
def other_patient(make_user, clinic):
    return make_user("bob", UserProfile.ROLE_PATIENT, clinic, "Bob", "Roe")


@pytest.fixture
def clinic_admin(make_user, clinic):
    return make_user("admin_city", UserProfile.ROLE_CLINIC_ADMIN, clinic)


@pytest.fixture
def client_for():
    def make(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client
    return make


@pytest.fixture
def monday_rule(doctor, clinic):
    return WeeklyAvailabilityRule.objects.create(
        doctor=doctor, clinic=clinic, day_of_week=1,
        start_time=time(9, 0), end_time=time(12, 0), slot_duration=30,
    )


@pytest.fixture
def book(doctor, patient, clinic):
    """Insert an appointment directly, bypassing the booking checks."""
    def make(start, duration=30, status=Appointment.STATUS_SCHEDULED, day=MONDAY,
             appointment_type="General Consultation", who=None):
        return Appointment.objects.create(
            doctor=doctor, patient=who or patient, clinic=clinic, date=day,
            start_time=start, duration=duration, status=status,
            appointment_type=appointment_type,
        )
    return make
