# teleconsultation/views.py

from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from clinic.errors import InvalidInput, NotFound

from . import services
from .rooms import registry
from .serializers import TeleconsultationSerializer


# =============================================================================
# SESSIONS
# =============================================================================

class TeleconsultationCreateView(APIView):
    """
    POST /api/teleconsultations/
    Body: appointment, scheduled_date?, scheduled_time?, duration?,
          require_password?, enable_recording?, features?
    Returns the session, the three join URLs and both invitation texts.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request):
        data = request.data
        appointment_id = data.get("appointment")
        if not appointment_id:
            raise InvalidInput("appointment is required")
        options = {k: data.get(k) for k in (
            "scheduled_date", "scheduled_time", "duration",
            "require_password", "enable_recording", "features",
        ) if data.get(k) is not None}
        session = services.create_for_appointment(request.user, appointment_id, options)
        return Response(services.creation_payload(session), status=status.HTTP_201_CREATED)


class TeleconsultationDetailView(APIView):
    """GET /api/teleconsultations/<id>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, pk):
        session = services.get_session(pk)
        services.check_party(request.user, session)
        return Response(TeleconsultationSerializer(session).data)


class TeleconsultationByMeetingView(APIView):
    """GET /api/teleconsultations/meeting/<meeting_id>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, meeting_id):
        session = services.get_by_meeting(meeting_id)
        services.check_party(request.user, session)
        return Response(TeleconsultationSerializer(session).data)


class TeleconsultationStartView(APIView):
    """PATCH /api/teleconsultations/<id>/start/"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        services.start_session(pk, request.user)
        return Response(TeleconsultationSerializer(services.get_session(pk)).data)


class TeleconsultationEndView(APIView):
    """
    PATCH /api/teleconsultations/<id>/end/
    Body: consultation_notes, diagnosis, prescription, follow_up_required, follow_up_date
    """
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        services.end_session(pk, request.user, request.data)
        return Response(TeleconsultationSerializer(services.get_session(pk)).data)


class TeleconsultationCancelView(APIView):
    """PATCH /api/teleconsultations/<id>/cancel/"""
    permission_classes = [IsAuthenticated]

    def patch(self, request, pk):
        services.cancel_session(pk, request.user, request.data.get("reason", ""))
        return Response(TeleconsultationSerializer(services.get_session(pk)).data)


class TeleconsultationJoinView(APIView):
    """
    POST /api/teleconsultations/<id>/join/   body: {"role": "doctor" | "patient"}
    Returns the caller's join URL and signed role token.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        joined = services.join_session(pk, request.user, request.data.get("role"))
        return Response({
            "role"      : joined["role"],
            "room_name" : joined["room_name"],
            "url"       : joined["url"],
            "token"     : joined["token"],
            "status"    : joined["session"].status,
        })


class TeleconsultationLeaveView(APIView):
    """POST /api/teleconsultations/<id>/leave/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        services.leave_session(pk, request.user, request.data.get("role"))
        return Response(TeleconsultationSerializer(services.get_session(pk)).data)


# =============================================================================
# SIGNALING STATUS
# =============================================================================

class SignalingHealthView(APIView):
    """GET /api/signaling/health/"""
    permission_classes = [AllowAny]

    def get(self, request):
        return Response({"status": "OK", **registry.stats()})


class SignalingRoomView(APIView):
    """GET /api/signaling/rooms/<room_name>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, room_name):
        members = registry.members(room_name)
        if not members:
            raise NotFound("Room not found")
        return Response({
            "room_name" : room_name,
            "members"   : [{"role": m.role} for m in members],
            "user_count": len(members),
            **registry.presence(room_name),
        })
