from django.contrib import admin

from .models import Appointment, ScheduleException, WeeklyAvailabilityRule

# =============================================================================
# 1. AVAILABILITY
# =============================================================================

@admin.register(WeeklyAvailabilityRule)
class WeeklyAvailabilityRuleAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'clinic', 'day_name', 'start_time', 'end_time', 'slot_duration', 'is_active')
    list_filter = ('day_of_week', 'clinic', 'is_active')
    search_fields = ('doctor__username', 'doctor__first_name', 'clinic__name')
    autocomplete_fields = ['doctor', 'clinic']

    def day_name(self, obj):
        return obj.get_day_of_week_display()
    day_name.short_description = 'Day'


@admin.register(ScheduleException)
class ScheduleExceptionAdmin(admin.ModelAdmin):
    list_display = ('doctor', 'date', 'kind', 'start_time', 'end_time', 'reason', 'is_active')
    list_filter = ('kind', 'is_active', 'clinic')
    search_fields = ('doctor__username', 'reason')
    autocomplete_fields = ['doctor', 'clinic']


# =============================================================================
# 2. APPOINTMENTS
# =============================================================================

@admin.register(Appointment)
class AppointmentAdmin(admin.ModelAdmin):
    list_display = ('id', 'date', 'start_time', 'duration', 'get_patient', 'get_doctor', 'appointment_type', 'status')
    list_filter = ('status', 'appointment_type', 'clinic', 'date')
    search_fields = ('patient__username', 'patient__first_name', 'doctor__username', 'doctor__first_name', 'reason')
    readonly_fields = ('created_at', 'updated_at')
    autocomplete_fields = ['patient', 'doctor', 'clinic']

    def get_patient(self, obj):
        return obj.patient.get_full_name() or obj.patient.username
    get_patient.short_description = 'Patient'

    def get_doctor(self, obj):
        return obj.doctor.get_full_name() or obj.doctor.username
    get_doctor.short_description = 'Doctor'
