# scheduling/urls.py
#
# Prefixed with /api/ in clinic_platform/urls.py.

from django.urls import path

from . import views

urlpatterns = [

    # ── Weekly availability ───────────────────────────────────────────────────
    path("availability/",                                  views.AvailabilityCreateView.as_view()),
    path("availability/bulk/",                             views.AvailabilityBulkView.as_view()),
    path("availability/<int:pk>/",                         views.AvailabilityDetailView.as_view()),
    path("availability/<int:doctor_id>/slots/<str:date>/", views.DaySlotsView.as_view()),

    # ── Date exceptions ───────────────────────────────────────────────────────
    path("exceptions/",                                    views.ExceptionCreateView.as_view()),
    path("exceptions/bulk/",                               views.ExceptionBulkView.as_view()),
    path("exceptions/<int:pk>/",                           views.ExceptionDetailView.as_view()),

    # ── Appointments ──────────────────────────────────────────────────────────
    path("appointments/",                                  views.AppointmentListCreateView.as_view()),
    path("appointments/check-conflicts/",                  views.ConflictCheckView.as_view()),
    path("appointments/<int:pk>/",                         views.AppointmentDetailView.as_view()),
    path("appointments/<int:pk>/status/",                  views.AppointmentStatusView.as_view()),
]
