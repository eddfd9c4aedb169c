# revenue/models.py
#
# Tables behind the monthly revenue ledger:
#   1. Invoice        - the minimal invoice state machine the ledger listens to
#   2. MonthlyRevenue - one running counter per (clinic, year, month)
#   3. RevenueEntry   - append-only log of signed deltas applied to a counter
#
# MonthlyRevenue.total_revenue and invoice_count are the memoized fold of the
# row's entries; reconcile.py repairs them when they drift.

from decimal import Decimal

from django.contrib.auth.models import User
from django.db import models
from django.utils import timezone

from clinic.models import Clinic

MONTH_NAMES = [
    "January", "February", "March", "April", "May", "June",
    "July", "August", "September", "October", "November", "December",
]


# =============================================================================
# 1. INVOICE
# =============================================================================

class Invoice(models.Model):
    STATUS_DRAFT     = "Draft"
    STATUS_SENT      = "Sent"
    STATUS_APPROVED  = "Approved"
    STATUS_REJECTED  = "Rejected"
    STATUS_PAID      = "Paid"
    STATUS_OVERDUE   = "Overdue"
    STATUS_CANCELLED = "Cancelled"

    STATUS_CHOICES = [
        (STATUS_DRAFT,     "Draft"),
        (STATUS_SENT,      "Sent"),
        (STATUS_APPROVED,  "Approved"),
        (STATUS_REJECTED,  "Rejected"),
        (STATUS_PAID,      "Paid"),
        (STATUS_OVERDUE,   "Overdue"),
        (STATUS_CANCELLED, "Cancelled"),
    ]

    # Statuses whose amount belongs in the ledger
    COUNTED_STATUSES = (STATUS_APPROVED, STATUS_PAID)

    clinic           = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="invoices")
    patient          = models.ForeignKey(User,   on_delete=models.CASCADE, related_name="invoices")
    invoice_no       = models.CharField(max_length=30, unique=True)
    total            = models.DecimalField(max_digits=12, decimal_places=2)
    status           = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_DRAFT)

    approved_at      = models.DateTimeField(null=True, blank=True)
    approved_by      = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name="approved_invoices"
    )
    rejected_at      = models.DateTimeField(null=True, blank=True)
    rejection_reason = models.CharField(max_length=300, blank=True)
    paid_at          = models.DateTimeField(null=True, blank=True)

    created_at       = models.DateTimeField(auto_now_add=True)
    updated_at       = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]

    def __str__(self):
        return f"{self.invoice_no} ({self.status}) {self.total}"


# =============================================================================
# 2. MONTHLY REVENUE
# =============================================================================

class MonthlyRevenue(models.Model):
    clinic        = models.ForeignKey(Clinic, on_delete=models.CASCADE, related_name="monthly_revenue")
    year          = models.PositiveSmallIntegerField()
    month         = models.PositiveSmallIntegerField()   # 1..12
    total_revenue = models.DecimalField(max_digits=14, decimal_places=2, default=Decimal("0"))
    invoice_count = models.IntegerField(default=0)
    last_updated  = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["year", "month"]
        constraints = [
            models.UniqueConstraint(fields=["clinic", "year", "month"], name="one_revenue_row_per_clinic_month"),
        ]

    @property
    def month_name(self):
        return MONTH_NAMES[self.month - 1]

    @property
    def label(self):
        return f"{self.month_name} {self.year}"

    def __str__(self):
        return f"{self.clinic.name} {self.label}: {self.total_revenue} ({self.invoice_count})"


# =============================================================================
# 3. REVENUE ENTRY
# =============================================================================

class RevenueEntry(models.Model):
    ACTION_ADD      = "add"
    ACTION_SUBTRACT = "subtract"
    ACTION_CHOICES  = [(ACTION_ADD, "Add"), (ACTION_SUBTRACT, "Subtract")]

    REASON_APPROVED   = "approved"
    REASON_REJECTED   = "rejected"
    REASON_CANCELLED  = "cancelled"
    REASON_ADJUSTMENT = "adjustment"
    REASON_CHOICES = [
        (REASON_APPROVED,   "Approved"),
        (REASON_REJECTED,   "Rejected"),
        (REASON_CANCELLED,  "Cancelled"),
        (REASON_ADJUSTMENT, "Adjustment"),
    ]

    revenue   = models.ForeignKey(MonthlyRevenue, on_delete=models.CASCADE, related_name="entries")
    invoice   = models.ForeignKey(Invoice, on_delete=models.PROTECT, related_name="revenue_entries")
    amount    = models.DecimalField(max_digits=12, decimal_places=2)
    action    = models.CharField(max_length=10, choices=ACTION_CHOICES)
    reason    = models.CharField(max_length=12, choices=REASON_CHOICES)
    timestamp = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["timestamp", "id"]
        verbose_name_plural = "revenue entries"

    @property
    def signed_amount(self):
        return self.amount if self.action == self.ACTION_ADD else -self.amount

    @property
    def signed_count(self):
        return 1 if self.action == self.ACTION_ADD else -1

    def __str__(self):
        return f"{self.action} {self.amount} for {self.invoice.invoice_no} ({self.reason})"
