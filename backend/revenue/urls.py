# revenue/urls.py
#
# Prefixed with /api/ in clinic_platform/urls.py.

from django.urls import path

from . import views

urlpatterns = [

    # ── Ledger ────────────────────────────────────────────────────────────────
    path("revenue/current-month/",                  views.CurrentMonthRevenueView.as_view()),
    path("revenue/yearly/",                         views.YearlyRevenueView.as_view()),
    path("revenue/yearly/<int:year>/",              views.YearlyRevenueView.as_view()),
    path("revenue/audit/<int:year>/<int:month>/",   views.RevenueAuditView.as_view()),

    # ── Invoice transitions ───────────────────────────────────────────────────
    path("invoices/<int:pk>/approve/",              views.InvoiceApproveView.as_view()),
    path("invoices/<int:pk>/reject/",               views.InvoiceRejectView.as_view()),
    path("invoices/<int:pk>/pay/",                  views.InvoicePayView.as_view()),
    path("invoices/<int:pk>/cancel/",               views.InvoiceCancelView.as_view()),
]
