# revenue/serializers.py

from rest_framework import serializers

from .models import Invoice


class InvoiceSerializer(serializers.ModelSerializer):
    patient_name = serializers.SerializerMethodField()
    total        = serializers.DecimalField(max_digits=12, decimal_places=2, coerce_to_string=False)

    class Meta:
        model = Invoice
        fields = ["id", "invoice_no", "clinic", "patient", "patient_name", "total", "status",
                  "approved_at", "approved_by", "rejected_at", "rejection_reason", "paid_at",
                  "created_at", "updated_at"]

    def get_patient_name(self, obj):
        return obj.patient.get_full_name() or obj.patient.username
