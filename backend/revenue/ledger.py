# revenue/ledger.py
#
# The monthly revenue counter.
#
#   add_revenue / subtract_revenue  upsert the (clinic, year, month) row, bump
#                                   its totals with F() increments and append
#                                   one RevenueEntry, all in one transaction
#   current_month / previous_month  read side for the dashboard
#   yearly_breakdown                always 12 entries, zeros for empty months
#   audit_month                     entry log of one month
#   fold_entries                    recompute (total, count) from the entries
#
# Callers own dedup: invoice transitions into Approved happen once, so the
# ledger never checks whether an invoice was already posted.

import logging
from decimal import Decimal, InvalidOperation

from django.db import DatabaseError, transaction
from django.db.models import F
from django.utils import timezone

from clinic.errors import InvalidInput, StoreUnavailable

from .models import MONTH_NAMES, MonthlyRevenue, RevenueEntry

logger = logging.getLogger(__name__)

ZERO = Decimal("0")


def month_of(clinic, at=None):
    """(year, month) of `at` (default: now) on the clinic's wall clock."""
    local = (at or timezone.now()).astimezone(clinic.tzinfo)
    return local.year, local.month


def month_label(year, month):
    return f"{MONTH_NAMES[month - 1]} {year}"


def _previous(year, month):
    return (year - 1, 12) if month == 1 else (year, month - 1)


def _amount(value):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise InvalidInput(f"Invalid amount: {value!r}")
    if amount < 0:
        raise InvalidInput("Amount must not be negative")
    return amount


# =============================================================================
# MUTATIONS
# =============================================================================

def _post(clinic, invoice, amount, action, reason, at=None):
    amount = _amount(amount)
    year, month = month_of(clinic, at)
    sign = 1 if action == RevenueEntry.ACTION_ADD else -1
    now = timezone.now()

    try:
        with transaction.atomic():
            row, _ = MonthlyRevenue.objects.get_or_create(clinic=clinic, year=year, month=month)
            MonthlyRevenue.objects.filter(pk=row.pk).update(
                total_revenue = F("total_revenue") + sign * amount,
                invoice_count = F("invoice_count") + sign,
                last_updated  = now,
            )
            RevenueEntry.objects.create(
                revenue   = row,
                invoice   = invoice,
                amount    = amount,
                action    = action,
                reason    = reason,
                timestamp = now,
            )
    except DatabaseError as exc:
        logger.error("Revenue %s of %s for invoice %s failed: %s", action, amount, invoice.pk, exc)
        raise StoreUnavailable("Revenue ledger is unavailable")

    row.refresh_from_db()
    logger.info("Revenue %s %s for clinic %s invoice %s (%s), %s total now %s",
                action, amount, clinic.pk, invoice.pk, reason, row.label, row.total_revenue)
    return row


def add_revenue(clinic, invoice, amount, reason=RevenueEntry.REASON_APPROVED, at=None):
    return _post(clinic, invoice, amount, RevenueEntry.ACTION_ADD, reason, at)


def subtract_revenue(clinic, invoice, amount, reason=RevenueEntry.REASON_REJECTED, at=None):
    return _post(clinic, invoice, amount, RevenueEntry.ACTION_SUBTRACT, reason, at)


# =============================================================================
# READS
# =============================================================================

def _row(clinic, year, month):
    return MonthlyRevenue.objects.filter(clinic=clinic, year=year, month=month).first()


def current_month(clinic):
    year, month = month_of(clinic)
    row = _row(clinic, year, month)
    return {
        "total":       row.total_revenue if row else ZERO,
        "count":       row.invoice_count if row else 0,
        "month_label": month_label(year, month),
    }


def previous_month(clinic):
    row = _row(clinic, *_previous(*month_of(clinic)))
    return row.total_revenue if row else ZERO


def percentage_change(current, previous):
    """Month-over-month change rounded to one decimal; 100 when growing from zero."""
    if previous > 0:
        return round(float((current - previous) / previous * 100), 1)
    return 100.0 if current > 0 else 0.0


def yearly_breakdown(clinic, year):
    rows = {r.month: r for r in MonthlyRevenue.objects.filter(clinic=clinic, year=year)}
    breakdown = []
    for month in range(1, 13):
        row = rows.get(month)
        breakdown.append({
            "month":         month,
            "month_name":    MONTH_NAMES[month - 1],
            "total_revenue": row.total_revenue if row else ZERO,
            "invoice_count": row.invoice_count if row else 0,
        })
    return breakdown


def audit_month(clinic, year, month):
    if not 1 <= month <= 12:
        raise InvalidInput("Invalid year or month")

    row = _row(clinic, year, month)
    if row is None:
        return {"year": year, "month": month, "total_revenue": ZERO, "invoice_count": 0,
                "last_updated": None, "entries": []}

    entries = row.entries.select_related("invoice__patient")
    return {
        "year":          year,
        "month":         month,
        "total_revenue": row.total_revenue,
        "invoice_count": row.invoice_count,
        "last_updated":  row.last_updated,
        "entries": [
            {
                "invoice_id":   e.invoice_id,
                "invoice_no":   e.invoice.invoice_no,
                "patient_name": e.invoice.patient.get_full_name() or e.invoice.patient.username,
                "amount":       e.amount,
                "action":       e.action,
                "reason":       e.reason,
                "timestamp":    e.timestamp,
            }
            for e in entries
        ],
    }


def fold_entries(row):
    """(total, count) the row should hold according to its entry log."""
    total, count = ZERO, 0
    for entry in row.entries.all():
        total += entry.signed_amount
        count += entry.signed_count
    return total, count
