"""Google Calendar source over the Calendar v3 REST API."""

from __future__ import annotations

import time
from datetime import datetime
from typing import Any

import aiohttp

from src.calendar_sources.base import (
    CalendarAuthorizationError,
    CalendarEventSource,
    SourceFetchError,
)
from src.config.settings import Settings
from src.gaps.models import CalendarEvent, TimeWindow

DEFAULT_BASE_URL = "https://www.googleapis.com/calendar/v3"


class GoogleCalendarSource(CalendarEventSource):
    """Fetch events from one or more Google calendars with an OAuth token."""

    def __init__(
        self,
        access_token: str | None,
        calendar_ids: list[str] | None = None,
        source_id: str = "google_calendar",
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 30.0,
    ) -> None:
        super().__init__(source_id)
        self.access_token = access_token
        self.calendar_ids = calendar_ids or ["primary"]
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session: aiohttp.ClientSession | None = None

    @classmethod
    def from_settings(cls, settings: Settings) -> GoogleCalendarSource | None:
        if settings.google_calendar_access_token is None:
            return None
        return cls(
            access_token=settings.google_calendar_access_token.get_secret_value(),
            calendar_ids=settings.get_google_calendar_ids(),
            timeout_seconds=settings.source_fetch_timeout_seconds,
        )

    async def is_authorized(self) -> bool:
        return self.enabled and bool(self.access_token)

    async def get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout_seconds),
            )
        return self._session

    async def close(self) -> None:
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> GoogleCalendarSource:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def fetch_events(self, window: TimeWindow) -> list[CalendarEvent]:
        if not await self.is_authorized():
            error = CalendarAuthorizationError(
                "Google Calendar access token is not configured",
                source_id=self.source_id,
            )
            self.add_error(str(error))
            raise error

        started = time.monotonic()
        events: list[CalendarEvent] = []
        try:
            for calendar_id in self.calendar_ids:
                items = await self._fetch_calendar(calendar_id, window)
                for item in items:
                    event = self.build_event(item)
                    if event is not None:
                        events.append(event)
        except SourceFetchError as e:
            self.add_error(str(e))
            raise

        self.record_fetch(len(events), time.monotonic() - started)
        self.logger.debug(
            "Fetched Google Calendar events",
            calendars=len(self.calendar_ids),
            events=len(events),
        )
        return events

    async def _fetch_calendar(
        self, calendar_id: str, window: TimeWindow
    ) -> list[dict[str, Any]]:
        url = f"{self.base_url}/calendars/{calendar_id}/events"
        params = {
            "timeMin": _to_rfc3339(window.start),
            "timeMax": _to_rfc3339(window.end),
            "singleEvents": "true",
            "orderBy": "startTime",
        }
        payload = await self._request_json(url, params)
        if not isinstance(payload, dict):
            return []
        return [item for item in payload.get("items", []) if isinstance(item, dict)]

    async def _request_json(self, url: str, params: dict[str, Any]) -> Any:
        session = await self.get_session()
        headers = {"Authorization": f"Bearer {self.access_token}"}
        try:
            async with session.get(url, params=params, headers=headers) as resp:
                if resp.status in (401, 403):
                    raise CalendarAuthorizationError(
                        f"Google Calendar rejected credentials (HTTP {resp.status})",
                        source_id=self.source_id,
                    )
                if resp.status != 200:
                    raise SourceFetchError(
                        f"Google Calendar request failed (HTTP {resp.status})",
                        source_id=self.source_id,
                    )
                return await resp.json()
        except aiohttp.ContentTypeError as e:
            raise SourceFetchError(
                "Google Calendar returned a non-JSON response",
                source_id=self.source_id,
            ) from e
        except aiohttp.ClientError as e:
            raise SourceFetchError(
                f"Google Calendar request error: {e}", source_id=self.source_id
            ) from e

    def build_event(self, raw_event: dict[str, Any]) -> CalendarEvent | None:
        """Convert an API item into a ``CalendarEvent``.

        Cancelled events and events marked "free" (transparent) do not block
        time and are dropped. Items without a usable start are dropped too.
        """
        if raw_event.get("status") == "cancelled":
            return None
        if raw_event.get("transparency") == "transparent":
            return None

        start_info = raw_event.get("start") or {}
        end_info = raw_event.get("end") or {}
        start_time = _parse_event_time(start_info)
        if start_time is None:
            self.logger.debug(
                "Skipping event without start time", event_id=raw_event.get("id")
            )
            return None

        return CalendarEvent(
            id=str(raw_event.get("id") or f"{self.source_id}:{start_time.isoformat()}"),
            title=raw_event.get("summary") or "Untitled Event",
            start_time=start_time,
            end_time=_parse_event_time(end_info),
            is_all_day="date" in start_info and "dateTime" not in start_info,
            source_id=self.source_id,
        )


def _parse_event_time(value: dict[str, Any]) -> datetime | None:
    """Parse a ``{"dateTime": ...}`` or ``{"date": ...}`` block to local naive time."""
    if "dateTime" in value:
        raw = value.get("dateTime")
    elif "date" in value:
        raw = f"{value.get('date')}T00:00:00"
    else:
        return None

    if not isinstance(raw, str):
        return None
    candidate = raw.strip()
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(candidate)
    except ValueError:
        return None

    if parsed.tzinfo is not None:
        parsed = parsed.astimezone().replace(tzinfo=None)
    return parsed


def _to_rfc3339(moment: datetime) -> str:
    if moment.tzinfo is None:
        moment = moment.astimezone()
    return moment.isoformat()
