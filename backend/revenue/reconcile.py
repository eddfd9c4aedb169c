# revenue/reconcile.py
#
# Batch repair of the ledger against the invoice table. Three passes:
#
#   1. missing    Approved/Paid invoices with no net add entry get one, posted
#                 into the month they were approved
#   2. stale      Rejected/Cancelled invoices still counted get a compensating
#                 subtract for whatever is still on the books
#   3. drift      rows whose memoized totals disagree with their entry log are
#                 rewritten to the fold
#
# Safe to run repeatedly: a second run over a repaired ledger finds nothing.

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from django.db.models import Q

from . import ledger
from .models import Invoice, MonthlyRevenue, RevenueEntry

logger = logging.getLogger(__name__)

COMPENSATION_REASONS = {
    Invoice.STATUS_REJECTED:  RevenueEntry.REASON_REJECTED,
    Invoice.STATUS_CANCELLED: RevenueEntry.REASON_CANCELLED,
}


@dataclass
class ReconcileReport:
    added:       list = field(default_factory=list)   # invoice numbers
    compensated: list = field(default_factory=list)   # invoice numbers
    repaired:    list = field(default_factory=list)   # "<clinic>:<label>"
    dry_run:     bool = False

    @property
    def changes(self):
        return len(self.added) + len(self.compensated) + len(self.repaired)

    def as_dict(self):
        return {
            "added":       self.added,
            "compensated": self.compensated,
            "repaired":    self.repaired,
            "dry_run":     self.dry_run,
        }


def _net(invoice):
    """(amount, count) this invoice currently contributes to the ledger."""
    amount, count = Decimal("0"), 0
    for entry in invoice.revenue_entries.all():
        amount += entry.signed_amount
        count += entry.signed_count
    return amount, count


def reconcile(clinic=None, dry_run=False):
    report = ReconcileReport(dry_run=dry_run)

    invoices = Invoice.objects.select_related("clinic").prefetch_related("revenue_entries")
    rows = MonthlyRevenue.objects.select_related("clinic")
    if clinic is not None:
        invoices = invoices.filter(clinic=clinic)
        rows = rows.filter(clinic=clinic)

    # ── 1 + 2: invoices vs entries ───────────────────────────────────────────
    candidates = invoices.filter(
        Q(status__in=Invoice.COUNTED_STATUSES)
        | Q(status__in=tuple(COMPENSATION_REASONS), revenue_entries__isnull=False)
    ).distinct()

    for invoice in candidates:
        amount, count = _net(invoice)

        if invoice.status in Invoice.COUNTED_STATUSES and count <= 0:
            logger.warning("Invoice %s is %s but not in the ledger", invoice.invoice_no, invoice.status)
            report.added.append(invoice.invoice_no)
            if not dry_run:
                ledger.add_revenue(invoice.clinic, invoice, invoice.total,
                                   RevenueEntry.REASON_APPROVED, at=invoice.approved_at)

        elif invoice.status in COMPENSATION_REASONS and count > 0:
            logger.warning("Invoice %s is %s but still counted (%s)", invoice.invoice_no, invoice.status, amount)
            report.compensated.append(invoice.invoice_no)
            if not dry_run:
                ledger.subtract_revenue(invoice.clinic, invoice, amount,
                                        COMPENSATION_REASONS[invoice.status],
                                        at=invoice.rejected_at or invoice.updated_at)

    # ── 3: memoized totals vs entry fold ─────────────────────────────────────
    for row in rows.prefetch_related("entries"):
        total, count = ledger.fold_entries(row)
        if total == row.total_revenue and count == row.invoice_count:
            continue
        logger.warning("Revenue row %s %s drifted: stored %s/%s, entries %s/%s",
                       row.clinic_id, row.label, row.total_revenue, row.invoice_count, total, count)
        report.repaired.append(f"{row.clinic_id}:{row.label}")
        if not dry_run:
            MonthlyRevenue.objects.filter(pk=row.pk).update(total_revenue=total, invoice_count=count)

    logger.info("Revenue reconciliation%s: %d added, %d compensated, %d repaired",
                " (dry run)" if dry_run else "",
                len(report.added), len(report.compensated), len(report.repaired))
    return report
