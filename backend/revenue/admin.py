from django.contrib import admin

from .models import Invoice, MonthlyRevenue, RevenueEntry


@admin.register(Invoice)
class InvoiceAdmin(admin.ModelAdmin):
    list_display = ('invoice_no', 'clinic', 'get_patient', 'total', 'status', 'approved_at')
    list_filter = ('status', 'clinic')
    search_fields = ('invoice_no', 'patient__username', 'patient__first_name')
    readonly_fields = ('approved_at', 'approved_by', 'rejected_at', 'paid_at', 'created_at', 'updated_at')
    autocomplete_fields = ['patient', 'clinic']

    def get_patient(self, obj):
        return obj.patient.get_full_name() or obj.patient.username
    get_patient.short_description = 'Patient'


class RevenueEntryInline(admin.TabularInline):
    model = RevenueEntry
    extra = 0
    readonly_fields = ('invoice', 'amount', 'action', 'reason', 'timestamp')
    can_delete = False


@admin.register(MonthlyRevenue)
class MonthlyRevenueAdmin(admin.ModelAdmin):
    list_display = ('clinic', 'year', 'month', 'total_revenue', 'invoice_count', 'last_updated')
    list_filter = ('clinic', 'year')
    readonly_fields = ('total_revenue', 'invoice_count', 'last_updated')
    inlines = [RevenueEntryInline]
