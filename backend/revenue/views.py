# revenue/views.py
#
# Dashboard reads for clinic staff, invoice transitions for clinic admins.
# Staff see their own clinic; superusers pick one with ?clinic=<id>.

from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from clinic.actors import clinic_of, get_clinic, is_clinic_staff
from clinic.errors import Unauthorized

from . import invoices, ledger
from .serializers import InvoiceSerializer


def _viewer_clinic(request):
    clinic_id = request.query_params.get("clinic")
    clinic = get_clinic(clinic_id) if clinic_id else clinic_of(request.user)
    if clinic is None or not is_clinic_staff(request.user, clinic):
        raise Unauthorized("User must be associated with a clinic to view revenue")
    return clinic


# =============================================================================
# LEDGER READS
# =============================================================================

class CurrentMonthRevenueView(APIView):
    """GET /api/revenue/current-month/"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        clinic   = _viewer_clinic(request)
        current  = ledger.current_month(clinic)
        previous = ledger.previous_month(clinic)
        return Response({
            "current_month_revenue":  current["total"],
            "previous_month_revenue": previous,
            "percentage_change":      ledger.percentage_change(current["total"], previous),
            "invoice_count":          current["count"],
            "month":                  current["month_label"],
        })


class YearlyRevenueView(APIView):
    """GET /api/revenue/yearly/  or  /api/revenue/yearly/<year>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, year=None):
        clinic    = _viewer_clinic(request)
        year      = year or clinic.local_now().year
        breakdown = ledger.yearly_breakdown(clinic, year)
        return Response({
            "year":              year,
            "total_revenue":     sum(m["total_revenue"] for m in breakdown),
            "total_invoices":    sum(m["invoice_count"] for m in breakdown),
            "monthly_breakdown": breakdown,
        })


class RevenueAuditView(APIView):
    """GET /api/revenue/audit/<year>/<month>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, year, month):
        clinic = _viewer_clinic(request)
        return Response(ledger.audit_month(clinic, year, month))


# =============================================================================
# INVOICE TRANSITIONS
# =============================================================================

class InvoiceApproveView(APIView):
    """PATCH /api/invoices/<id>/approve/"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        invoice = invoices.approve_invoice(request.user, pk)
        return Response({"message": "Invoice approved", "invoice": InvoiceSerializer(invoice).data})


class InvoiceRejectView(APIView):
    """PATCH /api/invoices/<id>/reject/   body: {reason}"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        invoice = invoices.reject_invoice(request.user, pk, request.data.get("reason", ""))
        return Response({"message": "Invoice rejected", "invoice": InvoiceSerializer(invoice).data})


class InvoicePayView(APIView):
    """PATCH /api/invoices/<id>/pay/"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        invoice = invoices.mark_paid(request.user, pk)
        return Response({"message": "Invoice marked as paid", "invoice": InvoiceSerializer(invoice).data})


class InvoiceCancelView(APIView):
    """PATCH /api/invoices/<id>/cancel/"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        invoice = invoices.cancel_invoice(request.user, pk)
        return Response({"message": "Invoice cancelled", "invoice": InvoiceSerializer(invoice).data})
