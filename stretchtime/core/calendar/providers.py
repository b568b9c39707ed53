"""Provider descriptors for Google Calendar and Microsoft Outlook (Graph).

Everything that differs between the two providers lives here as data:
endpoints, scopes, redirect port, extra authorization parameters and the
function that turns a raw event payload into NormalizedEvent objects.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from stretchtime.models.calendar import EventStatus, NormalizedEvent
from stretchtime.models.settings import ProviderSettings

logger = logging.getLogger(__name__)

NO_TITLE = "(No title)"

_FRACTION = re.compile(r"\.(\d+)")


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC."""
    # Graph returns 7 fractional digits, fromisoformat wants at most 6
    value = _FRACTION.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), value.strip(), count=1)
    if value.endswith("Z"):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


PageRequest = Tuple[str, Optional[Dict[str, str]]]


def _single_page(
    payload: Dict[str, Any], url: str, params: Optional[Dict[str, str]]
) -> Optional[PageRequest]:
    return None


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of one OAuth calendar provider"""

    name: str
    display_name: str
    authorize_url: str
    token_url: str
    scopes: Tuple[str, ...]
    redirect_port: int
    events_url: str
    build_event_params: Callable[[datetime, datetime], Dict[str, str]]
    normalize_events: Callable[[Dict[str, Any]], List[NormalizedEvent]]
    # (payload, url, params) -> the next page's (url, params), or None on the last page
    next_page: Callable[[Dict[str, Any], str, Optional[Dict[str, str]]], Optional[PageRequest]] = _single_page
    redirect_path: str = "/oauth2callback"
    extra_auth_params: Mapping[str, str] = field(default_factory=dict)
    scope_on_token_request: bool = False
    event_headers: Mapping[str, str] = field(default_factory=dict)
    default_tenant: Optional[str] = None

    @property
    def redirect_uri(self) -> str:
        return f"http://localhost:{self.redirect_port}{self.redirect_path}"

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)

    def authorize_endpoint(self, provider_settings: ProviderSettings) -> str:
        return self.authorize_url.format(tenant=self._tenant(provider_settings))

    def token_endpoint(self, provider_settings: ProviderSettings) -> str:
        return self.token_url.format(tenant=self._tenant(provider_settings))

    def _tenant(self, provider_settings: ProviderSettings) -> str:
        return provider_settings.tenant_id or self.default_tenant or ""


# --- Google -----------------------------------------------------------------


def _google_event_params(start: datetime, end: datetime) -> Dict[str, str]:
    return {
        "timeMin": rfc3339(start),
        "timeMax": rfc3339(end),
        "singleEvents": "true",
        "orderBy": "startTime",
        "fields": "nextPageToken,items(summary,status,transparency,start,end,attendees(self,responseStatus))",
    }


def _google_next_page(
    payload: Dict[str, Any], url: str, params: Optional[Dict[str, str]]
) -> Optional[PageRequest]:
    token = payload.get("nextPageToken")
    if not token:
        return None
    return url, {**(params or {}), "pageToken": token}


def _google_time(value: Dict[str, str]) -> datetime:
    if "dateTime" in value:
        return parse_timestamp(value["dateTime"])
    # All-day events carry a bare date
    return datetime.fromisoformat(value["date"]).replace(tzinfo=timezone.utc)


def _google_status(item: Dict[str, Any]) -> EventStatus:
    if item.get("transparency") == "transparent":
        return EventStatus.FREE

    for attendee in item.get("attendees", []):
        if attendee.get("self"):
            response = attendee.get("responseStatus")
            if response == "declined":
                return EventStatus.FREE
            if response == "tentative":
                return EventStatus.TENTATIVE

    if item.get("status") == "tentative":
        return EventStatus.TENTATIVE
    return EventStatus.CONFIRMED


def normalize_google_events(payload: Dict[str, Any]) -> List[NormalizedEvent]:
    """Normalize a Google Calendar ``events.list`` response"""
    events = []
    for item in payload.get("items", []):
        if item.get("status") == "cancelled":
            continue
        try:
            start = _google_time(item["start"])
            end = _google_time(item["end"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping Google event with unreadable times: {e}")
            continue

        events.append(
            NormalizedEvent(
                provider="google",
                summary=item.get("summary") or NO_TITLE,
                start=start,
                end=end,
                status=_google_status(item),
            )
        )
    return events


# --- Outlook ----------------------------------------------------------------

_OUTLOOK_SHOW_AS = {
    "free": EventStatus.FREE,
    "tentative": EventStatus.TENTATIVE,
}


def _outlook_event_params(start: datetime, end: datetime) -> Dict[str, str]:
    return {
        "startDateTime": rfc3339(start),
        "endDateTime": rfc3339(end),
        "$select": "subject,start,end,showAs,isCancelled",
        "$orderby": "start/dateTime",
        "$top": "50",
    }


def _outlook_next_page(
    payload: Dict[str, Any], url: str, params: Optional[Dict[str, str]]
) -> Optional[PageRequest]:
    # nextLink already carries the full query
    link = payload.get("@odata.nextLink")
    return (link, None) if link else None


def normalize_outlook_events(payload: Dict[str, Any]) -> List[NormalizedEvent]:
    """Normalize a Microsoft Graph ``calendarView`` response"""
    events = []
    for item in payload.get("value", []):
        if item.get("isCancelled"):
            continue
        try:
            start = parse_timestamp(item["start"]["dateTime"])
            end = parse_timestamp(item["end"]["dateTime"])
        except (KeyError, TypeError, ValueError) as e:
            logger.warning(f"Skipping Outlook event with unreadable times: {e}")
            continue

        show_as = item.get("showAs") or "busy"
        events.append(
            NormalizedEvent(
                provider="outlook",
                summary=item.get("subject") or NO_TITLE,
                start=start,
                end=end,
                status=_OUTLOOK_SHOW_AS.get(show_as, EventStatus.CONFIRMED),
            )
        )
    return events


GOOGLE = ProviderDescriptor(
    name="google",
    display_name="Google",
    authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
    token_url="https://oauth2.googleapis.com/token",
    scopes=("https://www.googleapis.com/auth/calendar.readonly",),
    redirect_port=8234,
    events_url="https://www.googleapis.com/calendar/v3/calendars/primary/events",
    build_event_params=_google_event_params,
    normalize_events=normalize_google_events,
    next_page=_google_next_page,
    extra_auth_params={"access_type": "offline", "prompt": "consent"},
)

OUTLOOK = ProviderDescriptor(
    name="outlook",
    display_name="Outlook",
    authorize_url="https://login.microsoftonline.com/{tenant}/oauth2/v2.0/authorize",
    token_url="https://login.microsoftonline.com/{tenant}/oauth2/v2.0/token",
    scopes=("Calendars.Read", "User.Read", "offline_access"),
    redirect_port=8235,
    events_url="https://graph.microsoft.com/v1.0/me/calendarView",
    build_event_params=_outlook_event_params,
    normalize_events=normalize_outlook_events,
    next_page=_outlook_next_page,
    extra_auth_params={"response_mode": "query", "prompt": "select_account"},
    scope_on_token_request=True,
    event_headers={"Prefer": 'outlook.timezone="UTC"'},
    default_tenant="consumers",
)

PROVIDERS: Dict[str, ProviderDescriptor] = {p.name: p for p in (GOOGLE, OUTLOOK)}
