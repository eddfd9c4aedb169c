# teleconsultation/urls.py
#
# Prefixed with /api/ in clinic_platform/urls.py.

from django.urls import path

from . import views

urlpatterns = [

    # ── Sessions ──────────────────────────────────────────────────────────────
    path("teleconsultations/",                              views.TeleconsultationCreateView.as_view()),
    path("teleconsultations/meeting/<str:meeting_id>/",     views.TeleconsultationByMeetingView.as_view()),
    path("teleconsultations/<int:pk>/",                     views.TeleconsultationDetailView.as_view()),
    path("teleconsultations/<int:pk>/start/",               views.TeleconsultationStartView.as_view()),
    path("teleconsultations/<int:pk>/end/",                 views.TeleconsultationEndView.as_view()),
    path("teleconsultations/<int:pk>/cancel/",              views.TeleconsultationCancelView.as_view()),
    path("teleconsultations/<int:pk>/join/",                views.TeleconsultationJoinView.as_view()),
    path("teleconsultations/<int:pk>/leave/",               views.TeleconsultationLeaveView.as_view()),

    # ── Signaling relay status ────────────────────────────────────────────────
    path("signaling/health/",                               views.SignalingHealthView.as_view()),
    path("signaling/rooms/<str:room_name>/",                views.SignalingRoomView.as_view()),
]
