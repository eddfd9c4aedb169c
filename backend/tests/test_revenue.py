from datetime import timedelta
from decimal import Decimal
from io import StringIO

import pytest
from django.core.management import CommandError, call_command
from django.db import DatabaseError

from clinic.errors import InvalidInput, InvalidTransition, StoreUnavailable, Unauthorized
from revenue import invoices, ledger
from revenue.models import Invoice, MonthlyRevenue, RevenueEntry
from revenue.reconcile import reconcile


@pytest.fixture
def make_invoice(clinic, patient):
    counter = {"n": 0}

    def make(total="1500.00", status=Invoice.STATUS_SENT):
        counter["n"] += 1
        return Invoice.objects.create(
            clinic=clinic, patient=patient, invoice_no=f"INV-{counter['n']:04d}",
            total=Decimal(total), status=status,
        )
    return make


def current_row(clinic):
    year, month = ledger.month_of(clinic)
    return MonthlyRevenue.objects.get(clinic=clinic, year=year, month=month)


def assert_folded(row):
    row.refresh_from_db()
    assert ledger.fold_entries(row) == (row.total_revenue, row.invoice_count)


# ── ledger ───────────────────────────────────────────────────────────────────

def test_add_creates_the_month_row(clinic, make_invoice):
    invoice = make_invoice()
    row = ledger.add_revenue(clinic, invoice, invoice.total)

    assert (row.total_revenue, row.invoice_count) == (Decimal("1500.00"), 1)
    entry = row.entries.get()
    assert (entry.invoice, entry.action, entry.reason) == (invoice, RevenueEntry.ACTION_ADD, "approved")


def test_totals_match_the_entry_fold(clinic, make_invoice):
    a, b, c = make_invoice("100.00"), make_invoice("250.50"), make_invoice("75.25")
    ledger.add_revenue(clinic, a, a.total)
    ledger.add_revenue(clinic, b, b.total)
    ledger.subtract_revenue(clinic, a, a.total, RevenueEntry.REASON_REJECTED)
    ledger.add_revenue(clinic, c, c.total)

    row = current_row(clinic)
    assert row.total_revenue == Decimal("325.75")
    assert row.invoice_count == 2
    assert row.entries.count() == 4
    assert_folded(row)


def test_one_row_per_clinic_month(clinic, make_invoice):
    for _ in range(3):
        invoice = make_invoice()
        ledger.add_revenue(clinic, invoice, invoice.total)
    assert MonthlyRevenue.objects.count() == 1


def test_negative_amount_is_refused(clinic, make_invoice):
    with pytest.raises(InvalidInput):
        ledger.add_revenue(clinic, make_invoice(), "-5")


def test_current_and_previous_month(clinic, make_invoice):
    last_month = clinic.local_now().replace(day=1) - timedelta(days=1)
    old = make_invoice("1000.00")
    ledger.add_revenue(clinic, old, old.total, at=last_month)
    new = make_invoice("1500.00")
    ledger.add_revenue(clinic, new, new.total)

    current = ledger.current_month(clinic)
    assert current["total"] == Decimal("1500.00")
    assert current["count"] == 1
    assert current["month_label"] == clinic.local_now().strftime("%B %Y")
    assert ledger.previous_month(clinic) == Decimal("1000.00")


@pytest.mark.parametrize("current,previous,expected", [
    (Decimal("1500"), Decimal("1000"), 50.0),
    (Decimal("500"), Decimal("1000"), -50.0),
    (Decimal("500"), Decimal("0"), 100.0),
    (Decimal("0"), Decimal("0"), 0.0),
    (Decimal("1"), Decimal("3"), -66.7),
])
def test_percentage_change(current, previous, expected):
    assert ledger.percentage_change(current, previous) == expected


def test_yearly_breakdown_has_twelve_months(clinic, make_invoice):
    invoice = make_invoice()
    ledger.add_revenue(clinic, invoice, invoice.total)
    year, month = ledger.month_of(clinic)

    breakdown = ledger.yearly_breakdown(clinic, year)

    assert [m["month"] for m in breakdown] == list(range(1, 13))
    assert breakdown[month - 1]["total_revenue"] == Decimal("1500.00")
    assert sum(m["invoice_count"] for m in breakdown) == 1


def test_ledger_failure_surfaces_as_store_unavailable(clinic, make_invoice, monkeypatch):
    def broken(*args, **kwargs):
        raise DatabaseError("connection lost")

    monkeypatch.setattr(MonthlyRevenue.objects, "get_or_create", broken)
    with pytest.raises(StoreUnavailable):
        ledger.add_revenue(clinic, make_invoice(), "10")


# ── invoice transitions ──────────────────────────────────────────────────────

def test_approve_posts_revenue_once(clinic, clinic_admin, make_invoice):
    invoice = make_invoice()
    approved = invoices.approve_invoice(clinic_admin, invoice.id)

    assert approved.status == Invoice.STATUS_APPROVED
    assert approved.approved_by == clinic_admin
    assert current_row(clinic).total_revenue == Decimal("1500.00")

    with pytest.raises(InvalidTransition):
        invoices.approve_invoice(clinic_admin, invoice.id)
    assert RevenueEntry.objects.count() == 1


def test_only_clinic_admins_approve(doctor, make_invoice):
    with pytest.raises(Unauthorized):
        invoices.approve_invoice(doctor, make_invoice().id)


def test_reject_after_approval_subtracts(clinic, clinic_admin, make_invoice):
    invoice = make_invoice()
    invoices.approve_invoice(clinic_admin, invoice.id)
    rejected = invoices.reject_invoice(clinic_admin, invoice.id, "Duplicate billing")

    assert rejected.status == Invoice.STATUS_REJECTED
    assert rejected.rejection_reason == "Duplicate billing"
    row = current_row(clinic)
    assert (row.total_revenue, row.invoice_count) == (Decimal("0.00"), 0)
    assert [e.action for e in row.entries.all()] == ["add", "subtract"]


def test_reject_from_sent_leaves_ledger_alone(clinic_admin, make_invoice):
    invoices.reject_invoice(clinic_admin, make_invoice().id)
    assert not RevenueEntry.objects.exists()


def test_draft_cannot_be_rejected(clinic_admin, make_invoice):
    with pytest.raises(InvalidTransition):
        invoices.reject_invoice(clinic_admin, make_invoice(status=Invoice.STATUS_DRAFT).id)


def test_paying_a_sent_invoice_approves_it(clinic, clinic_admin, make_invoice):
    paid = invoices.mark_paid(clinic_admin, make_invoice().id)
    assert paid.status == Invoice.STATUS_PAID
    assert paid.approved_at is not None
    assert current_row(clinic).invoice_count == 1


def test_paying_an_approved_invoice_does_not_double_count(clinic, clinic_admin, make_invoice):
    invoice = make_invoice()
    invoices.approve_invoice(clinic_admin, invoice.id)
    invoices.mark_paid(clinic_admin, invoice.id)
    assert current_row(clinic).invoice_count == 1


def test_cancel_approved_invoice(clinic, clinic_admin, make_invoice):
    invoice = make_invoice()
    invoices.approve_invoice(clinic_admin, invoice.id)
    invoices.cancel_invoice(clinic_admin, invoice.id)

    entry = RevenueEntry.objects.order_by("-id").first()
    assert (entry.action, entry.reason) == ("subtract", "cancelled")
    assert current_row(clinic).total_revenue == Decimal("0.00")


# ── failure + reconciliation ─────────────────────────────────────────────────

def test_ledger_failure_does_not_undo_approval(clinic, clinic_admin, make_invoice, monkeypatch, caplog):
    invoice = make_invoice()

    def unavailable(*args, **kwargs):
        raise StoreUnavailable("Revenue ledger is unavailable")

    monkeypatch.setattr(ledger, "add_revenue", unavailable)
    approved = invoices.approve_invoice(clinic_admin, invoice.id)

    assert approved.status == Invoice.STATUS_APPROVED
    assert not MonthlyRevenue.objects.exists()
    assert "reconcile_revenue" in caplog.text

    with pytest.raises(InvalidTransition):
        invoices.approve_invoice(clinic_admin, invoice.id)

    monkeypatch.undo()
    report = reconcile()

    assert report.added == [invoice.invoice_no]
    row = current_row(clinic)
    assert (row.total_revenue, row.invoice_count) == (Decimal("1500.00"), 1)
    assert reconcile().changes == 0


def test_reconcile_compensates_stale_counts(clinic, make_invoice):
    invoice = make_invoice()
    ledger.add_revenue(clinic, invoice, invoice.total)
    Invoice.objects.filter(id=invoice.id).update(status=Invoice.STATUS_CANCELLED)

    report = reconcile(clinic=clinic)

    assert report.compensated == [invoice.invoice_no]
    assert current_row(clinic).total_revenue == Decimal("0.00")
    assert RevenueEntry.objects.order_by("-id").first().reason == "cancelled"


def test_reconcile_repairs_drifted_totals(clinic, make_invoice):
    invoice = make_invoice(status=Invoice.STATUS_APPROVED)
    ledger.add_revenue(clinic, invoice, invoice.total)
    MonthlyRevenue.objects.update(total_revenue=Decimal("99.00"), invoice_count=7)

    report = reconcile()

    assert len(report.repaired) == 1
    assert_folded(current_row(clinic))
    assert current_row(clinic).total_revenue == Decimal("1500.00")


def test_dry_run_writes_nothing(make_invoice):
    make_invoice(status=Invoice.STATUS_APPROVED)
    out = StringIO()

    call_command("reconcile_revenue", "--dry-run", stdout=out)

    assert "Dry run: 1 added" in out.getvalue()
    assert not RevenueEntry.objects.exists()


def test_command_reconciles_one_clinic(clinic, make_invoice):
    make_invoice(status=Invoice.STATUS_APPROVED)
    out = StringIO()
    call_command("reconcile_revenue", "--clinic", str(clinic.id), stdout=out)
    assert "Ledger reconciled" in out.getvalue()
    assert RevenueEntry.objects.count() == 1


def test_command_unknown_clinic(db):
    with pytest.raises(CommandError):
        call_command("reconcile_revenue", "--clinic", "999")


# ── HTTP ─────────────────────────────────────────────────────────────────────

def test_approve_and_dashboard_over_http(clinic, clinic_admin, doctor, make_invoice, client_for):
    invoice = make_invoice()
    admin = client_for(clinic_admin)

    response = admin.patch(f"/api/invoices/{invoice.id}/approve/")
    assert response.status_code == 200
    assert response.json()["invoice"]["status"] == Invoice.STATUS_APPROVED

    again = admin.patch(f"/api/invoices/{invoice.id}/approve/")
    assert again.status_code == 409
    assert again.json()["code"] == "InvalidTransition"

    dashboard = client_for(doctor).get("/api/revenue/current-month/").json()
    assert dashboard["current_month_revenue"] == 1500.0
    assert dashboard["previous_month_revenue"] == 0
    assert dashboard["percentage_change"] == 100.0
    assert dashboard["invoice_count"] == 1

    year, month = ledger.month_of(clinic)
    yearly = client_for(doctor).get(f"/api/revenue/yearly/{year}/").json()
    assert yearly["total_revenue"] == 1500.0
    assert len(yearly["monthly_breakdown"]) == 12

    audit = client_for(doctor).get(f"/api/revenue/audit/{year}/{month}/").json()
    assert audit["entries"][0]["invoice_no"] == invoice.invoice_no
    assert audit["entries"][0]["patient_name"] == "Jane Doe"


def test_reject_over_http(clinic_admin, make_invoice, client_for):
    invoice = make_invoice()
    response = client_for(clinic_admin).patch(f"/api/invoices/{invoice.id}/reject/",
                                              {"reason": "Wrong amount"}, format="json")
    assert response.status_code == 200
    assert response.json()["invoice"]["rejection_reason"] == "Wrong amount"


def test_patients_cannot_see_revenue(patient, client_for):
    assert client_for(patient).get("/api/revenue/current-month/").status_code == 403


def test_audit_rejects_bad_month(doctor, client_for):
    assert client_for(doctor).get("/api/revenue/audit/2030/13/").status_code == 400
