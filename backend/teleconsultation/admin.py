from django.contrib import admin

from .models import Teleconsultation, TeleconsultationParticipant


class ParticipantInline(admin.TabularInline):
    model = TeleconsultationParticipant
    extra = 0
    readonly_fields = ('user', 'role', 'joined_at', 'left_at', 'connection_minutes')
    can_delete = False


@admin.register(Teleconsultation)
class TeleconsultationAdmin(admin.ModelAdmin):
    list_display = ('meeting_id', 'scheduled_date', 'scheduled_time', 'get_patient', 'get_doctor', 'status')
    list_filter = ('status', 'clinic', 'scheduled_date')
    search_fields = ('meeting_id', 'room_name', 'patient__username', 'doctor__username')
    readonly_fields = ('room_name', 'meeting_id', 'moderator_secret', 'participant_secret', 'created_at', 'updated_at')
    autocomplete_fields = ['patient', 'doctor', 'clinic']
    inlines = [ParticipantInline]

    fieldsets = (
        ('Identifiers', {
            'fields': ('appointment', 'room_name', 'meeting_id', 'domain', 'clinic')
        }),
        ('Participants', {
            'fields': ('doctor', 'patient')
        }),
        ('Schedule', {
            'fields': ('scheduled_date', 'scheduled_time', 'duration', 'status',
                       'actual_start_time', 'actual_end_time', 'actual_duration')
        }),
        ('Access', {
            'fields': ('require_password', 'moderator_secret', 'participant_secret', 'features'),
            'classes': ('collapse',)
        }),
        ('Outcome', {
            'fields': ('consultation_notes', 'diagnosis', 'prescription',
                       'follow_up_required', 'follow_up_date', 'cancellation_reason'),
            'classes': ('collapse',)
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at')
        }),
    )

    def get_patient(self, obj):
        return obj.patient.get_full_name() or obj.patient.username
    get_patient.short_description = 'Patient'

    def get_doctor(self, obj):
        return obj.doctor.get_full_name() or obj.doctor.username
    get_doctor.short_description = 'Doctor'
