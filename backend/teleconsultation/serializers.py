# teleconsultation/serializers.py
#
# Secrets are never part of the regular session payload; they are handed out
# once at creation (services.creation_payload) and through join URLs.

from rest_framework import serializers

from .models import Teleconsultation, TeleconsultationParticipant


class ParticipantSerializer(serializers.ModelSerializer):
    name = serializers.SerializerMethodField()

    class Meta:
        model = TeleconsultationParticipant
        fields = ["id", "user", "name", "role", "joined_at", "left_at", "connection_minutes"]

    def get_name(self, obj):
        return obj.user.get_full_name() or obj.user.username


class TeleconsultationSerializer(serializers.ModelSerializer):
    doctor_name    = serializers.SerializerMethodField()
    patient_name   = serializers.SerializerMethodField()
    scheduled_time = serializers.TimeField(format="%H:%M")
    participants   = ParticipantSerializer(many=True, read_only=True)

    class Meta:
        model = Teleconsultation
        fields = [
            "id",
            "appointment",
            "doctor",
            "doctor_name",
            "patient",
            "patient_name",
            "clinic",
            "room_name",
            "meeting_id",
            "domain",
            "require_password",
            "features",
            "scheduled_date",
            "scheduled_time",
            "duration",
            "status",
            "actual_start_time",
            "actual_end_time",
            "actual_duration",
            "consultation_notes",
            "diagnosis",
            "prescription",
            "follow_up_required",
            "follow_up_date",
            "cancellation_reason",
            "participants",
            "created_at",
        ]

    def get_doctor_name(self, obj):
        return obj.doctor.get_full_name() or obj.doctor.username

    def get_patient_name(self, obj):
        return obj.patient.get_full_name() or obj.patient.username
