# scheduling/views.py
#
# HTTP surface for availability, exceptions and appointments.
# Errors are raised as clinic.errors exceptions and rendered by the project
# exception handler as {"error": ..., "code": ...}.

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from clinic.actors import get_doctor, role_of
from clinic.errors import InvalidInput
from clinic.models import UserProfile
from teleconsultation.services import creation_payload

from . import booking, services
from .availability import get_availability
from .conflicts import check_slot
from .serializers import AppointmentSerializer, ExceptionSerializer, RuleSerializer


def _required(data, *names):
    missing = [n for n in names if data.get(n) in (None, "")]
    if missing:
        raise InvalidInput(f"{', '.join(missing)} {'is' if len(missing) == 1 else 'are'} required")


# =============================================================================
# WEEKLY AVAILABILITY
# =============================================================================

class AvailabilityCreateView(APIView):
    """POST /api/availability/  - add one weekly rule"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        data = request.data
        _required(data, "doctor", "day_of_week", "start_time", "end_time")
        rule = services.create_rule(
            request.user,
            doctor_id     = data.get("doctor"),
            day           = data.get("day_of_week"),
            start_time    = data.get("start_time"),
            end_time      = data.get("end_time"),
            slot_duration = data.get("slot_duration", 30),
            clinic_id     = data.get("clinic"),
        )
        return Response(RuleSerializer(rule).data, status=status.HTTP_201_CREATED)


class AvailabilityDetailView(APIView):
    """GET    /api/availability/<doctor_id>/  - a doctor's weekly rules
       DELETE /api/availability/<rule_id>/    - remove one rule"""

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, pk):
        rules = services.list_rules(pk, request.query_params.get("clinic"))
        return Response(RuleSerializer(rules, many=True).data)

    def delete(self, request, pk):
        services.delete_rule(request.user, pk)
        return Response(status=status.HTTP_204_NO_CONTENT)


class AvailabilityBulkView(APIView):
    """POST /api/availability/bulk/  - replace the weekly schedule"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        data = request.data
        _required(data, "doctor", "schedule")
        rules = services.replace_weekly(
            request.user,
            doctor_id     = data.get("doctor"),
            schedule      = data.get("schedule"),
            slot_duration = data.get("slot_duration", 30),
            clinic_id     = data.get("clinic"),
        )
        return Response(RuleSerializer(rules, many=True).data)


class DaySlotsView(APIView):
    """
    GET /api/availability/<doctor_id>/slots/<YYYY-MM-DD>/
    Rules, exception and live appointments for the day plus the bookable slots.
    """
    permission_classes = [AllowAny]

    def get(self, request, doctor_id, date):
        doctor = get_doctor(doctor_id)
        return Response(get_availability(doctor, date))


# =============================================================================
# SCHEDULE EXCEPTIONS
# =============================================================================

class ExceptionCreateView(APIView):
    """POST /api/exceptions/"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        data = request.data
        _required(data, "doctor", "date", "kind")
        exc = services.create_exception(
            request.user,
            doctor_id  = data.get("doctor"),
            date       = data.get("date"),
            kind       = data.get("kind"),
            start_time = data.get("start_time"),
            end_time   = data.get("end_time"),
            breaks     = data.get("breaks"),
            reason     = data.get("reason", ""),
            clinic_id  = data.get("clinic"),
        )
        return Response(ExceptionSerializer(exc).data, status=status.HTTP_201_CREATED)


class ExceptionDetailView(APIView):
    """GET    /api/exceptions/<doctor_id>/?startDate=&endDate=
       DELETE /api/exceptions/<exception_id>/  - soft delete"""

    def get_permissions(self):
        if self.request.method == "GET":
            return [AllowAny()]
        return [IsAuthenticated()]

    def get(self, request, pk):
        params = request.query_params
        exceptions = services.list_exceptions(
            pk,
            params.get("startDate") or params.get("start_date"),
            params.get("endDate") or params.get("end_date"),
        )
        return Response(ExceptionSerializer(exceptions, many=True).data)

    def delete(self, request, pk):
        exc = services.deactivate_exception(request.user, pk)
        return Response(ExceptionSerializer(exc).data)


class ExceptionBulkView(APIView):
    """POST /api/exceptions/bulk/  - one exception per day of a range (vacations)"""
    permission_classes = [IsAuthenticated]

    def post(self, request):
        data = request.data
        _required(data, "doctor", "start_date", "end_date", "kind")
        created, skipped = services.create_exception_range(
            request.user,
            doctor_id  = data.get("doctor"),
            start_date = data.get("start_date"),
            end_date   = data.get("end_date"),
            kind       = data.get("kind"),
            start_time = data.get("start_time"),
            end_time   = data.get("end_time"),
            reason     = data.get("reason", ""),
            clinic_id  = data.get("clinic"),
        )
        return Response({
            "count"  : len(created),
            "skipped": [d.isoformat() for d in skipped],
        }, status=status.HTTP_201_CREATED)


# =============================================================================
# APPOINTMENTS
# =============================================================================

class AppointmentListCreateView(APIView):
    """GET  /api/appointments/?doctor=<id>&date=YYYY-MM-DD
       POST /api/appointments/  - 201, or 409 with conflicts + suggestions"""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        _required(request.query_params, "doctor", "date")
        appointments = booking.list_day(request.query_params["doctor"], request.query_params["date"])
        return Response(AppointmentSerializer(appointments, many=True).data)

    def post(self, request):
        data = request.data
        patient_id = data.get("patient")
        if patient_id in (None, "") and role_of(request.user) == UserProfile.ROLE_PATIENT:
            patient_id = request.user.id
        _required(data, "doctor", "date", "time")
        if patient_id in (None, ""):
            raise InvalidInput("patient is required")

        appt, session = booking.book_appointment(
            request.user,
            doctor_id        = data.get("doctor"),
            patient_id       = patient_id,
            date             = data.get("date"),
            time             = data.get("time"),
            duration         = data.get("duration", 30),
            appointment_type = data.get("appointment_type", "General Consultation"),
            reason           = data.get("reason", ""),
            notes            = data.get("notes", ""),
            clinic_id        = data.get("clinic"),
            session_options  = data.get("teleconsultation") or {},
        )
        return Response({
            "appointment"     : AppointmentSerializer(appt).data,
            "teleconsultation": creation_payload(session) if session else None,
        }, status=status.HTTP_201_CREATED)


class ConflictCheckView(APIView):
    """GET /api/appointments/check-conflicts/?doctor=&date=&time=&duration=&exclude="""
    permission_classes = [IsAuthenticated]

    def get(self, request):
        params = request.query_params
        _required(params, "doctor", "date", "time")
        return Response(check_slot(
            params.get("doctor"),
            params.get("date"),
            params.get("time"),
            params.get("duration", 30),
            params.get("exclude") or None,
        ))


class AppointmentDetailView(APIView):
    """GET   /api/appointments/<id>/
       PATCH /api/appointments/<id>/  - reschedule (date / time / duration)"""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        appt = booking.get_appointment(pk)
        booking.check_access(request.user, appt)
        return Response(AppointmentSerializer(appt).data)

    def patch(self, request, pk):
        data = request.data
        appt = booking.reschedule_appointment(
            request.user, pk,
            date     = data.get("date"),
            time     = data.get("time"),
            duration = data.get("duration"),
        )
        return Response(AppointmentSerializer(appt).data)


class AppointmentStatusView(APIView):
    """PATCH /api/appointments/<id>/status/"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        _required(request.data, "status")
        appt = booking.change_status(request.user, pk, request.data.get("status"), request.data.get("reason", ""))
        return Response(AppointmentSerializer(appt).data)
