# revenue/invoices.py
#
# Invoice transitions that move money in or out of the ledger:
#
#   Draft ──▶ Sent ──approve──▶ Approved ──pay──▶ Paid
#              │  └────pay (auto-approve)──────────▲
#              ├──reject──▶ Rejected ◀──reject── Approved
#              └──cancel──▶ Cancelled ◀──cancel── Draft | Approved | Overdue
#
# Each transition is a compare-and-set UPDATE on the status column, so an
# invoice enters Approved at most once. The ledger call that follows is
# best-effort: a failure is logged and left for reconcile_revenue.

import logging

from django.utils import timezone

from clinic.actors import require_clinic_admin
from clinic.errors import InvalidTransition, NotFound, StoreUnavailable

from . import ledger
from .models import Invoice, RevenueEntry

logger = logging.getLogger(__name__)


def get_invoice(invoice_id):
    invoice = Invoice.objects.select_related("clinic", "patient").filter(id=invoice_id).first()
    if invoice is None:
        raise NotFound("Invoice not found")
    return invoice


def _transition(invoice, allowed_from, to_status, **fields):
    """Move `invoice` to `to_status` if it is still in one of `allowed_from`."""
    previous = invoice.status
    if previous not in allowed_from:
        raise InvalidTransition(
            f"Invoice {invoice.invoice_no} is {previous}; cannot move to {to_status}",
            status=previous,
        )

    fields.setdefault("updated_at", timezone.now())
    updated = (
        Invoice.objects
        .filter(pk=invoice.pk, status=previous)
        .update(status=to_status, **fields)
    )
    if not updated:
        invoice.refresh_from_db(fields=["status"])
        raise InvalidTransition(
            f"Invoice {invoice.invoice_no} changed to {invoice.status} concurrently",
            status=invoice.status,
        )

    invoice.refresh_from_db()
    logger.info("Invoice %s: %s -> %s", invoice.invoice_no, previous, to_status)
    return previous


def _post_best_effort(post, invoice, reason):
    try:
        post(invoice.clinic, invoice, invoice.total, reason)
    except StoreUnavailable:
        logger.exception("Revenue ledger update (%s) failed for invoice %s; "
                         "reconcile_revenue will repair it", reason, invoice.invoice_no)


# =============================================================================
# TRANSITIONS
# =============================================================================

def approve_invoice(actor, invoice_id):
    invoice = get_invoice(invoice_id)
    require_clinic_admin(actor, invoice.clinic)

    _transition(invoice, (Invoice.STATUS_SENT,), Invoice.STATUS_APPROVED,
                approved_at=timezone.now(), approved_by=actor)
    _post_best_effort(ledger.add_revenue, invoice, RevenueEntry.REASON_APPROVED)
    return invoice


def reject_invoice(actor, invoice_id, reason=""):
    invoice = get_invoice(invoice_id)
    require_clinic_admin(actor, invoice.clinic)

    previous = _transition(
        invoice, (Invoice.STATUS_SENT, Invoice.STATUS_APPROVED), Invoice.STATUS_REJECTED,
        rejected_at=timezone.now(), rejection_reason=(reason or "")[:300],
    )
    if previous == Invoice.STATUS_APPROVED:
        _post_best_effort(ledger.subtract_revenue, invoice, RevenueEntry.REASON_REJECTED)
    return invoice


def mark_paid(actor, invoice_id):
    """Paying a Sent invoice approves it on the way, posting its revenue."""
    invoice = get_invoice(invoice_id)
    require_clinic_admin(actor, invoice.clinic)

    now = timezone.now()
    fields = {"paid_at": now}
    if invoice.approved_at is None:
        fields.update(approved_at=now, approved_by=actor)

    previous = _transition(invoice, (Invoice.STATUS_SENT, Invoice.STATUS_APPROVED),
                           Invoice.STATUS_PAID, **fields)
    if previous == Invoice.STATUS_SENT:
        _post_best_effort(ledger.add_revenue, invoice, RevenueEntry.REASON_APPROVED)
    return invoice


def cancel_invoice(actor, invoice_id):
    invoice = get_invoice(invoice_id)
    require_clinic_admin(actor, invoice.clinic)

    previous = _transition(
        invoice,
        (Invoice.STATUS_DRAFT, Invoice.STATUS_SENT, Invoice.STATUS_APPROVED, Invoice.STATUS_OVERDUE),
        Invoice.STATUS_CANCELLED,
    )
    if previous == Invoice.STATUS_APPROVED:
        _post_best_effort(ledger.subtract_revenue, invoice, RevenueEntry.REASON_CANCELLED)
    return invoice
