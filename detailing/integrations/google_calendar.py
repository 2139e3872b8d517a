"""Google Calendar REST client used for busy-time lookups and booking events."""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, AsyncIterator
from urllib.parse import quote

import httpx

from detailing.core import config
from detailing.scheduling.timezone import SERVICE_TIME_ZONE, day_bounds_utc, to_zone

logger = logging.getLogger(__name__)

GOOGLE_TOKEN_URL = 'https://oauth2.googleapis.com/token'
GOOGLE_CALENDAR_API = 'https://www.googleapis.com/calendar/v3'
BOOKING_EVENT_COLOR_ID = '11'


class CalendarError(Exception):
    """Base class for external calendar failures."""


class CalendarNotConfigured(CalendarError):
    pass


class CalendarAuthError(CalendarError):
    """The refresh token was rejected (revoked, expired, or for another client)."""


class CalendarApiError(CalendarError):
    pass


@dataclass(frozen=True)
class GoogleCalendarCredentials:
    client_id: str
    client_secret: str
    refresh_token: str
    calendar_id: str

    @property
    def is_configured(self) -> bool:
        return all((self.client_id, self.client_secret, self.refresh_token, self.calendar_id))

    @classmethod
    def from_config(cls) -> 'GoogleCalendarCredentials':
        return cls(
            client_id=config.GOOGLE_CLIENT_ID,
            client_secret=config.GOOGLE_CLIENT_SECRET,
            refresh_token=config.GOOGLE_REFRESH_TOKEN,
            calendar_id=config.GOOGLE_CALENDAR_ID,
        )


def _format_rfc3339(instant: datetime) -> str:
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc).isoformat(timespec='milliseconds').replace('+00:00', 'Z')


class GoogleCalendarClient:
    def __init__(
        self,
        credentials: GoogleCalendarCredentials,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = config.CALENDAR_TIMEOUT_SECONDS,
    ) -> None:
        self.credentials = credentials
        self._http_client = http_client
        self._timeout = timeout

    @property
    def _events_url(self) -> str:
        calendar_id = quote(self.credentials.calendar_id, safe='@.')
        return f'{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events'

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http_client is not None:
            yield self._http_client
            return
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            yield client

    async def _access_token(self, client: httpx.AsyncClient) -> str:
        if not self.credentials.is_configured:
            raise CalendarNotConfigured('Google Calendar not configured (missing env vars)')

        response = await client.post(
            GOOGLE_TOKEN_URL,
            data={
                'client_id': self.credentials.client_id,
                'client_secret': self.credentials.client_secret,
                'refresh_token': self.credentials.refresh_token,
                'grant_type': 'refresh_token',
            },
        )
        if response.status_code in (400, 401) and 'invalid_grant' in response.text:
            raise CalendarAuthError('Google refresh token is invalid or expired')
        if response.status_code != 200:
            raise CalendarApiError(f'Token refresh failed ({response.status_code}): {response.text}')

        access_token = response.json().get('access_token')
        if not access_token:
            raise CalendarApiError('No access token in refresh response')
        return access_token

    async def list_events(self, time_min: datetime, time_max: datetime, max_results: int | None = None) -> list[dict[str, Any]]:
        """Return the events whose span intersects ``[time_min, time_max]``, recurring events expanded.

        Follows ``nextPageToken`` unless ``max_results`` caps the request to a single page.
        """
        params: dict[str, Any] = {
            'timeMin': _format_rfc3339(time_min),
            'timeMax': _format_rfc3339(time_max),
            'singleEvents': 'true',
            'orderBy': 'startTime',
        }
        if max_results is not None:
            params['maxResults'] = max_results

        events: list[dict[str, Any]] = []
        async with self._client() as client:
            access_token = await self._access_token(client)
            while True:
                response = await client.get(
                    self._events_url,
                    headers={'Authorization': f'Bearer {access_token}'},
                    params=params,
                )
                if response.status_code == 401:
                    raise CalendarAuthError('Google Calendar rejected the access token')
                if response.status_code != 200:
                    raise CalendarApiError(f'Event list failed ({response.status_code}): {response.text}')

                payload = response.json()
                events.extend(payload.get('items', []))
                page_token = payload.get('nextPageToken')
                if max_results is not None or not page_token:
                    return events
                params['pageToken'] = page_token

    async def insert_event(
        self,
        summary: str,
        start: datetime,
        end: datetime,
        time_zone: str,
        description: str = '',
        location: str | None = None,
    ) -> dict[str, Any]:
        event: dict[str, Any] = {
            'summary': summary,
            'description': description,
            'start': {'dateTime': _format_rfc3339(start), 'timeZone': time_zone},
            'end': {'dateTime': _format_rfc3339(end), 'timeZone': time_zone},
            'colorId': BOOKING_EVENT_COLOR_ID,
        }
        if location:
            event['location'] = location

        async with self._client() as client:
            access_token = await self._access_token(client)
            response = await client.post(
                self._events_url,
                headers={'Authorization': f'Bearer {access_token}'},
                json=event,
            )
            if response.status_code not in (200, 201):
                raise CalendarApiError(f'Event insert failed ({response.status_code}): {response.text}')

            created = response.json()
            logger.info('Google Calendar event created: %s', created.get('id'))
            return created

    async def check_status(self, time_zone: str = SERVICE_TIME_ZONE) -> dict[str, Any]:
        """Probe the credentials with a one-event list over today in ``time_zone``."""
        if not self.credentials.is_configured:
            return {'ok': False, 'error': 'missing_env', 'message': 'Google Calendar not configured (missing env vars)'}

        today = to_zone(datetime.now(timezone.utc), time_zone).date().isoformat()
        day_start, day_end = day_bounds_utc(today, time_zone)
        try:
            await self.list_events(day_start, day_end, max_results=1)
        except CalendarAuthError as exc:
            return {'ok': False, 'error': 'invalid_grant', 'message': str(exc)}
        except (CalendarError, httpx.HTTPError) as exc:
            return {'ok': False, 'error': 'api_error', 'message': str(exc)}

        return {'ok': True}
