# scheduling/serializers.py

from rest_framework import serializers

from .models import Appointment, ScheduleException, WeeklyAvailabilityRule


# =============================================================================
# WEEKLY RULES & EXCEPTIONS
# =============================================================================

class RuleSerializer(serializers.ModelSerializer):
    day_label  = serializers.CharField(source="get_day_of_week_display", read_only=True)
    start_time = serializers.TimeField(format="%H:%M")
    end_time   = serializers.TimeField(format="%H:%M")

    class Meta:
        model = WeeklyAvailabilityRule
        fields = ["id", "doctor", "clinic", "day_of_week", "day_label",
                  "start_time", "end_time", "slot_duration", "is_active"]


class ExceptionSerializer(serializers.ModelSerializer):
    kind_label = serializers.CharField(source="get_kind_display", read_only=True)
    start_time = serializers.TimeField(format="%H:%M", allow_null=True)
    end_time   = serializers.TimeField(format="%H:%M", allow_null=True)

    class Meta:
        model = ScheduleException
        fields = ["id", "doctor", "clinic", "date", "kind", "kind_label",
                  "start_time", "end_time", "breaks", "reason", "is_active"]


# =============================================================================
# APPOINTMENT
# =============================================================================

class AppointmentSerializer(serializers.ModelSerializer):
    """Calendar card: names resolved so the UI doesn't need extra lookups."""

    doctor_name  = serializers.SerializerMethodField()
    patient_name = serializers.SerializerMethodField()
    start_time   = serializers.TimeField(format="%H:%M")
    end_time     = serializers.TimeField(format="%H:%M", read_only=True)
    teleconsultation_id = serializers.SerializerMethodField()

    class Meta:
        model = Appointment
        fields = [
            "id",
            "doctor",
            "doctor_name",
            "patient",
            "patient_name",
            "clinic",
            "date",
            "start_time",
            "end_time",
            "duration",
            "status",
            "appointment_type",
            "reason",
            "notes",
            "teleconsultation_id",
            "created_at",
        ]

    def get_doctor_name(self, obj):
        return obj.doctor.get_full_name() or obj.doctor.username

    def get_patient_name(self, obj):
        return obj.patient.get_full_name() or obj.patient.username

    def get_teleconsultation_id(self, obj):
        session = getattr(obj, "teleconsultation", None)
        return session.id if session else None
