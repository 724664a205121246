from datetime import datetime, timedelta

import httpx
import pytest
import respx
from pydantic import SecretStr

from app.integrations import GoogleMeetProvisioner
from common import MeetingConfig

TOKEN_RESP = {"access_token": "fake", "expires_in": 3600}
START = datetime(2026, 11, 2, 9, 0)
END = START + timedelta(minutes=30)


def configured() -> MeetingConfig:
    return MeetingConfig(
        calendar_id="clinic@example.com",
        client_id="client",
        client_secret=SecretStr("secret"),
        refresh_token=SecretStr("refresh"),
    )


@pytest.mark.asyncio
async def test_create_meeting_returns_hangout_link():
    provisioner = GoogleMeetProvisioner(configured())
    with respx.mock() as m:
        token = m.post("https://oauth2.googleapis.com/token").respond(200, json=TOKEN_RESP)
        event = m.post(
            "https://www.googleapis.com/calendar/v3/calendars/clinic@example.com/events"
        ).respond(200, json={"id": "evt-1", "hangoutLink": "https://meet.google.com/xyz"})

        link = await provisioner.create_meeting("appt-1", START, END, "Consultation")
        # token is cached for the second call
        await provisioner.create_meeting("appt-2", START, END, "Consultation")

    assert link == "https://meet.google.com/xyz"
    assert token.call_count == 1
    request = event.calls[0].request
    assert request.url.params["conferenceDataVersion"] == "1"
    assert request.headers["Authorization"] == "Bearer fake"


@pytest.mark.asyncio
async def test_create_meeting_failure_returns_none():
    provisioner = GoogleMeetProvisioner(configured())
    with respx.mock() as m:
        m.post("https://oauth2.googleapis.com/token").respond(200, json=TOKEN_RESP)
        m.post(
            "https://www.googleapis.com/calendar/v3/calendars/clinic@example.com/events"
        ).mock(side_effect=httpx.ReadTimeout("slow"))

        assert await provisioner.create_meeting("appt-1", START, END, "Consultation") is None


@pytest.mark.asyncio
async def test_token_refresh_failure_returns_none():
    provisioner = GoogleMeetProvisioner(configured())
    with respx.mock() as m:
        m.post("https://oauth2.googleapis.com/token").respond(400, json={"error": "invalid_grant"})

        assert await provisioner.create_meeting("appt-1", START, END, "Consultation") is None


@pytest.mark.asyncio
async def test_missing_credentials_use_fallback_link():
    provisioner = GoogleMeetProvisioner(MeetingConfig(fallback_link="https://meet.google.com/dev-room"))
    with respx.mock(assert_all_called=False) as m:
        token = m.post("https://oauth2.googleapis.com/token")

        link = await provisioner.create_meeting("appt-1", START, END, "Consultation")

    assert link == "https://meet.google.com/dev-room"
    assert not token.called
    assert await GoogleMeetProvisioner(MeetingConfig()).create_meeting(
        "appt-1", START, END, "Consultation"
    ) is None
