# app/integrations/meeting_provisioner.py
"""
Video meeting provisioning through Google Calendar (Meet links).

Provisioning is best-effort: every failure is logged and reported as
``None`` so payment confirmation never depends on it.
"""
from __future__ import annotations
import time
import uuid
from datetime import datetime, timezone
from typing import Optional, Protocol
import httpx
from common import MeetingConfig, get_app_logger
from common.logger.logger_middleware import capture_timing

logger = get_app_logger(__name__)

GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"


class MeetingProvisioner(Protocol):
    async def create_meeting(
        self, appointment_id: str, start: datetime, end: datetime, summary: str
    ) -> Optional[str]: ...


def _as_utc(value: datetime) -> datetime:
    # Stored appointment dates are naive UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class GoogleMeetProvisioner:
    def __init__(self, config: MeetingConfig):
        self._config = config
        self._token: Optional[str] = None
        self._token_expires_at = 0.0

    async def _get_token(self, client: httpx.AsyncClient) -> str:
        """Refresh-token grant; the access token is cached until 5 minutes before expiry."""
        now = time.time()
        if self._token and now < self._token_expires_at:
            return self._token

        resp = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                "client_id": self._config.client_id,
                "client_secret": self._config.client_secret.get_secret_value(),
                "refresh_token": self._config.refresh_token.get_secret_value(),
                "grant_type": "refresh_token",
            },
        )
        resp.raise_for_status()
        data = resp.json()
        token = data["access_token"]
        self._token = token
        self._token_expires_at = now + data.get("expires_in", 3600) - 300
        return token

    async def create_meeting(
        self, appointment_id: str, start: datetime, end: datetime, summary: str
    ) -> Optional[str]:
        log = logger.bind(appointment_id=appointment_id)

        if not self._config.has_credentials:
            if self._config.fallback_link:
                log.warning("Meeting credentials missing, using fallback link")
            else:
                log.warning("Meeting credentials missing, no link provisioned")
            return self._config.fallback_link

        event = {
            "summary": summary,
            "description": f"Telemedicine consultation (appointment {appointment_id})",
            "start": {"dateTime": _as_utc(start).isoformat(), "timeZone": "UTC"},
            "end": {"dateTime": _as_utc(end).isoformat(), "timeZone": "UTC"},
            "conferenceData": {
                "createRequest": {
                    "requestId": str(uuid.uuid4()),
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
        }
        url = f"{GOOGLE_CALENDAR_API}/calendars/{self._config.calendar_id}/events"

        try:
            with capture_timing("meeting"):
                async with httpx.AsyncClient(timeout=self._config.timeout) as client:
                    token = await self._get_token(client)
                    resp = await client.post(
                        url,
                        params={"conferenceDataVersion": 1},
                        json=event,
                        headers={"Authorization": f"Bearer {token}"},
                    )
                    resp.raise_for_status()
                    data = resp.json()
        except Exception as e:
            log.error("Meeting provisioning failed", error=str(e))
            return None

        link = data.get("hangoutLink")
        if not link:
            log.warning("Calendar event created without a meeting link", event_id=data.get("id"))
            return None

        log.info("Meeting link provisioned", event_id=data.get("id"))
        return link


__all__ = ["MeetingProvisioner", "GoogleMeetProvisioner"]
