from datetime import datetime, time, timedelta
from zoneinfo import ZoneInfo

import jwt
import pytest

from scheduling.models import Appointment
from teleconsultation import meeting, services


@pytest.fixture
def session(book, patient):
    appt = book(time(11, 0), appointment_type=Appointment.TYPE_TELECONSULTATION)
    return services.create_session(appt, patient, {"enable_recording": True, "duration": 45})


def test_moderator_token_claims(session, settings):
    claims = meeting.decode_role_token(meeting.role_token(session, moderator=True))

    assert claims["iss"] == settings.ROLE_TOKEN_ISSUER
    assert claims["aud"] == settings.ROLE_TOKEN_AUDIENCE
    assert claims["room"] == session.room_name
    assert claims["context"]["user"]["moderator"] is True
    assert claims["context"]["features"] == {"recording": True, "screenSharing": True, "livestreaming": False}


def test_participant_token_never_records(session):
    claims = meeting.decode_role_token(meeting.role_token(session, moderator=False))
    assert claims["context"]["user"]["moderator"] is False
    assert claims["context"]["features"]["recording"] is False
    assert claims["context"]["features"]["screenSharing"] is True


def test_token_expires_after_scheduled_end(session):
    claims = meeting.decode_role_token(meeting.role_token(session, moderator=True))
    end = datetime(2030, 1, 7, 11, 45, tzinfo=ZoneInfo("Asia/Kolkata"))
    assert claims["exp"] == int((end + timedelta(minutes=5)).timestamp())


def test_token_is_standard_hs256(session):
    token = meeting.role_token(session, moderator=True)
    assert jwt.get_unverified_header(token)["alg"] == "HS256"
    assert len(token.split(".")) == 3


def test_tampered_token_is_rejected(session):
    token = meeting.role_token(session, moderator=False)
    header, payload, signature = token.split(".")
    forged = ".".join([header, payload, signature[::-1]])
    with pytest.raises(jwt.InvalidTokenError):
        meeting.decode_role_token(forged)


def test_past_session_token_is_expired(book, patient):
    appt = book(time(9, 0), day=datetime(2020, 3, 2).date())
    session = services.create_session(appt, patient)
    token = meeting.role_token(session, moderator=True)

    with pytest.raises(jwt.ExpiredSignatureError):
        meeting.decode_role_token(token)
    assert meeting.decode_role_token(token, verify_exp=False)["room"] == session.room_name
