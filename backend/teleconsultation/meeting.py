# teleconsultation/meeting.py
#
# Minting meeting rooms on the media server (Jitsi-compatible):
# room names, meeting ids, secrets, join URLs, role tokens, invitation texts.
# Nothing here touches the database.

import secrets
from datetime import timedelta
from urllib.parse import urlencode

import jwt
from django.conf import settings

ROOM_PREFIX = "dr"
TOKEN_GRACE = timedelta(minutes=5)
TOKEN_ALGORITHM = "HS256"


# =============================================================================
# IDENTIFIERS
# =============================================================================

def new_room_name() -> str:
    """'dr' + 24 random hex characters. The prefix carries no information."""
    return ROOM_PREFIX + secrets.token_hex(12)


def new_meeting_id() -> str:
    digits = "".join(secrets.choice("0123456789") for _ in range(9))
    return f"{digits[0:3]}-{digits[3:6]}-{digits[6:9]}"


def new_secret() -> str:
    """8 uppercase hex characters."""
    return secrets.token_hex(4).upper()


# =============================================================================
# URLS
# =============================================================================

def meeting_url(domain, room_name, display_name=None, password=None, audio_muted=None, video_muted=None):
    params = {}
    if password:
        params["password"] = password
    if display_name:
        params["displayName"] = display_name
    if audio_muted is not None:
        params["startWithAudioMuted"] = str(audio_muted).lower()
    if video_muted is not None:
        params["startWithVideoMuted"] = str(video_muted).lower()

    base = f"https://{domain}/{room_name}"
    return f"{base}?{urlencode(params)}" if params else base


def session_urls(session, doctor_name, patient_name):
    """
    moderator   - for the doctor, carries the moderator secret
    participant - for the patient, carries the participant secret
    direct      - no secret; only handed out when passwords are not enforced
    """
    urls = {
        "moderator": meeting_url(
            session.domain, session.room_name, f"Dr. {doctor_name}",
            session.moderator_secret, audio_muted=False, video_muted=False,
        ),
        "participant": meeting_url(
            session.domain, session.room_name, patient_name,
            session.participant_secret, audio_muted=True, video_muted=False,
        ),
    }
    urls["direct"] = None if session.require_password else meeting_url(session.domain, session.room_name)
    return urls


# =============================================================================
# ROLE TOKENS
# =============================================================================

def role_token(session, moderator: bool) -> str:
    """
    Signed HS256 token the media server checks before letting someone in.
    Expires five minutes after the scheduled end.
    """
    features = session.features or {}
    if moderator:
        granted = {
            "recording": bool(features.get("recording", False)),
            "screenSharing": True,
            "livestreaming": False,
        }
    else:
        granted = {
            "recording": False,
            "screenSharing": bool(features.get("screenSharing", True)),
            "livestreaming": False,
        }

    payload = {
        "iss": settings.ROLE_TOKEN_ISSUER,
        "aud": settings.ROLE_TOKEN_AUDIENCE,
        "exp": int((session.scheduled_end() + TOKEN_GRACE).timestamp()),
        "room": session.room_name,
        "context": {
            "user": {"moderator": moderator},
            "features": granted,
        },
    }
    return jwt.encode(payload, settings.ROLE_TOKEN_SECRET, algorithm=TOKEN_ALGORITHM)


def decode_role_token(token, verify_exp=True):
    return jwt.decode(
        token,
        settings.ROLE_TOKEN_SECRET,
        algorithms=[TOKEN_ALGORITHM],
        audience=settings.ROLE_TOKEN_AUDIENCE,
        issuer=settings.ROLE_TOKEN_ISSUER,
        options={"verify_exp": verify_exp},
    )


# =============================================================================
# INVITATIONS
# =============================================================================

def _long_date(d):
    return f"{d:%A}, {d:%B} {d.day}, {d.year}"


def patient_invitation(session, doctor_name, patient_name, url):
    lines = [
        "TELECONSULTATION INVITATION",
        "",
        f"Dear {patient_name},",
        "",
        f"You have a scheduled teleconsultation with Dr. {doctor_name}.",
        "",
        f"Date: {_long_date(session.scheduled_date)}",
        f"Time: {session.scheduled_time:%H:%M}",
        f"Meeting ID: {session.meeting_id}",
        "",
        f"Join Meeting: {url}",
    ]
    if session.require_password:
        lines.append(f"Meeting Password: {session.participant_secret}")
    lines += [
        "",
        "Instructions:",
        "1. Click the meeting link 5-10 minutes before your appointment",
        "2. Allow camera and microphone access when prompted",
        "3. Ensure you have a stable internet connection",
        "4. Find a quiet, well-lit space for the consultation",
        "",
        "Thank you,",
        settings.CLINIC_NAME,
    ]
    return "\n".join(lines)


def doctor_invitation(session, doctor_name, patient_name, url):
    lines = [
        "TELECONSULTATION - DOCTOR ACCESS",
        "",
        f"Dear Dr. {doctor_name},",
        "",
        f"Teleconsultation scheduled with {patient_name}.",
        "",
        f"Date: {_long_date(session.scheduled_date)}",
        f"Time: {session.scheduled_time:%H:%M}",
        f"Duration: {session.duration} minutes",
        f"Meeting ID: {session.meeting_id}",
        "",
        f"Moderator Link: {url}",
        f"Moderator Password: {session.moderator_secret}",
        "",
        "You have moderator privileges for this session.",
    ]
    return "\n".join(lines)
