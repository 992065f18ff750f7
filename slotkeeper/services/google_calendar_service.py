"""
Google Calendar Service
Free/busy lookups, event push/delete and OAuth token upkeep for the provider's calendar.

Every public method degrades instead of raising: when the calendar is not
connected, a token cannot be refreshed, or Google keeps failing, busy lookups
return no busy time and event calls return None/False. Problems that need the
provider's attention set the ``needs_reconnect`` flag on the connection.
"""
import logging
import secrets
import time
from datetime import date, datetime, timedelta, tzinfo
from typing import Any, Callable, Optional
from urllib.parse import quote
from zoneinfo import ZoneInfo

import httpx
from sqlalchemy.orm import Session

from ..cache import Cache, build_busy_cache_key
from ..cache import cache as default_cache
from ..config import EngineSettings
from ..domain.scheduling.intervals import Interval
from ..models import Booking
from ..models_google_calendar import GoogleCalendarConnection
from ..security_utils import decrypt_secret, encrypt_secret, mask_sensitive_data
from ..shared.timeutils import day_bounds, from_utc_naive, to_utc_naive, utcnow

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"  # noqa: S105 - OAuth endpoint URL
GOOGLE_CALENDAR_API = "https://www.googleapis.com/calendar/v3"
GOOGLE_CALENDAR_SCOPES = [
    "https://www.googleapis.com/auth/calendar.freebusy",
    "https://www.googleapis.com/auth/calendar.events",
]

# Refresh this long before the access token actually expires
TOKEN_REFRESH_MARGIN = timedelta(seconds=60)
OAUTH_STATE_TTL = 600
MAX_ATTEMPTS = 2


def build_oauth_state_key(state: str) -> str:
    return f"gcal_oauth_state:{state}"


class GoogleCalendarService:
    def __init__(
        self,
        db: Session,
        settings: Optional[EngineSettings] = None,
        cache: Optional[Cache] = None,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.db = db
        self.settings = settings or EngineSettings()
        self.cache = cache or default_cache
        self.http = http_client or httpx.Client(timeout=self.settings.http_timeout)
        self.clock = clock
        self.sleep = sleep

    # ------------------------------------------------------------------
    # Connection state
    # ------------------------------------------------------------------

    def _connection(self) -> Optional[GoogleCalendarConnection]:
        return self.db.query(GoogleCalendarConnection).order_by(GoogleCalendarConnection.id.asc()).first()

    def _flag_reconnect(self, conn: GoogleCalendarConnection, reason: str) -> None:
        logger.warning(f"⚠️ Google Calendar needs to be reconnected: {reason}")
        if not conn.needs_reconnect:
            conn.needs_reconnect = True
            conn.reconnect_flagged_at = to_utc_naive(self.clock())
            self.db.commit()

    def _clear_reconnect_flag(self, conn: GoogleCalendarConnection) -> None:
        if conn.needs_reconnect:
            conn.needs_reconnect = False
            conn.reconnect_flagged_at = None

    def is_connected(self) -> bool:
        """Credentials are saved and a usable refresh token is stored."""
        conn = self._connection()
        if not conn or not conn.client_id or not conn.refresh_token:
            return False
        if decrypt_secret(conn.refresh_token) is None:
            self._flag_reconnect(conn, "stored refresh token cannot be decrypted")
            return False
        return True

    def status(self) -> dict[str, Any]:
        conn = self._connection()
        if not conn:
            return {
                "connected": False,
                "credentials_saved": False,
                "calendar_id": None,
                "needs_reconnect": False,
                "token_expires_at": None,
            }
        return {
            "connected": self.is_connected(),
            "credentials_saved": bool(conn.client_id and conn.client_secret),
            "calendar_id": conn.calendar_id,
            "needs_reconnect": bool(conn.needs_reconnect),
            "token_expires_at": from_utc_naive(conn.token_expires_at),
        }

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def _save_tokens(self, conn: GoogleCalendarConnection, tokens: dict) -> str:
        access_token = tokens["access_token"]
        conn.access_token = encrypt_secret(access_token)
        if tokens.get("refresh_token"):
            conn.refresh_token = encrypt_secret(tokens["refresh_token"])
        expires_in = int(tokens.get("expires_in") or 3600)
        conn.token_expires_at = to_utc_naive(self.clock() + timedelta(seconds=expires_in))
        self._clear_reconnect_flag(conn)
        self.db.commit()
        return access_token

    def _refresh_access_token(self, conn: GoogleCalendarConnection) -> Optional[str]:
        refresh_token = decrypt_secret(conn.refresh_token)
        if not refresh_token:
            self._flag_reconnect(conn, "no usable refresh token")
            return None

        client_secret = decrypt_secret(conn.client_secret)
        if client_secret is None:
            self._flag_reconnect(conn, "client secret cannot be decrypted")
            return None

        logger.info("🔄 Google Calendar token expired, refreshing...")
        data = {
            "client_id": conn.client_id,
            "client_secret": client_secret,
            "refresh_token": refresh_token,
            "grant_type": "refresh_token",
        }
        for attempt in range(MAX_ATTEMPTS):
            if attempt:
                self.sleep(self.settings.retry_delay)
            try:
                response = self.http.post(GOOGLE_TOKEN_URL, data=data)
            except httpx.TransportError as e:
                logger.warning(f"⚠️ Token refresh network error (attempt {attempt + 1}): {e.__class__.__name__}")
                continue

            tokens = self._json(response)
            if response.status_code == 200 and tokens.get("access_token"):
                logger.info("✅ Google Calendar token refreshed successfully")
                return self._save_tokens(conn, tokens)

            logger.error(f"❌ Token refresh failed with status {response.status_code}")
            break

        self._flag_reconnect(conn, "token refresh failed")
        return None

    def _get_access_token(self, conn: GoogleCalendarConnection) -> Optional[str]:
        """A valid access token, refreshed proactively when it is about to expire."""
        if conn.access_token and conn.token_expires_at:
            expires_at = from_utc_naive(conn.token_expires_at)
            if self.clock() < expires_at - TOKEN_REFRESH_MARGIN:
                token = decrypt_secret(conn.access_token)
                if token:
                    return token
        return self._refresh_access_token(conn)

    @staticmethod
    def _json(response: httpx.Response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    # ------------------------------------------------------------------
    # API requests
    # ------------------------------------------------------------------

    def _request_with_retry(
        self,
        conn: GoogleCalendarConnection,
        method: str,
        url: str,
        json: Optional[dict] = None,
        accept: tuple[int, ...] = (),
    ) -> Optional[httpx.Response]:
        """
        Call the Calendar API with at most one retry.

        The retry happens only after a network error or a 401, and a 401 first
        refreshes the access token. Any other non-2xx status not in ``accept``
        is logged and returns None.
        """
        token = self._get_access_token(conn)
        if not token:
            return None

        for attempt in range(MAX_ATTEMPTS):
            if attempt:
                self.sleep(self.settings.retry_delay)
            try:
                response = self.http.request(method, url, headers={"Authorization": f"Bearer {token}"}, json=json)
            except httpx.TransportError as e:
                logger.warning(f"⚠️ Google Calendar network error (attempt {attempt + 1}): {e.__class__.__name__}")
                continue

            if response.is_success or response.status_code in accept:
                return response

            if response.status_code == 401 and attempt == 0:
                logger.info("🔄 Google Calendar returned 401, refreshing token before retry")
                token = self._refresh_access_token(conn)
                if not token:
                    return None
                continue

            logger.error(f"❌ Google Calendar {method} failed with status {response.status_code}")
            return None

        return None

    # ------------------------------------------------------------------
    # Free/busy
    # ------------------------------------------------------------------

    @staticmethod
    def _parse_time(value: str) -> datetime:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))

    def _parse_busy(self, busy_data: list) -> list[Interval]:
        intervals = []
        for block in busy_data:
            start, end = block.get("start"), block.get("end")
            if not start or not end:
                continue
            try:
                intervals.append(Interval(self._parse_time(start), self._parse_time(end)))
            except ValueError:
                logger.warning(f"⚠️ Skipping unparseable busy block {start!r} - {end!r}")
        return intervals

    def get_busy(self, day: date, tz: tzinfo) -> list[Interval]:
        """Busy intervals on the provider's local ``day``; cached for a few minutes."""
        try:
            if not self.is_connected():
                return []

            cache_key = build_busy_cache_key(day.isoformat())
            cached = self.cache.get(cache_key)
            if cached is not None:
                return self._parse_busy(cached)

            conn = self._connection()
            day_start, day_end = day_bounds(day, tz)
            calendar_id = conn.calendar_id or "primary"
            response = self._request_with_retry(
                conn,
                "POST",
                f"{GOOGLE_CALENDAR_API}/freeBusy",
                json={
                    "timeMin": day_start.isoformat(),
                    "timeMax": day_end.isoformat(),
                    "items": [{"id": calendar_id}],
                },
            )
            if response is None:
                return []

            calendars = self._json(response).get("calendars") or {}
            if calendar_id in calendars:
                busy_data = calendars[calendar_id].get("busy", [])
            elif calendars:
                # Google may key the result by the account email instead of "primary"
                busy_data = next(iter(calendars.values())).get("busy", [])
            else:
                busy_data = []

            self.cache.set(cache_key, busy_data, ttl=self.settings.busy_cache_ttl)
            return self._parse_busy(busy_data)
        except Exception as e:
            logger.error(f"❌ Error fetching Google Calendar busy times for {day}: {e.__class__.__name__}")
            return []

    def get_busy_fresh(self, day: date, tz: tzinfo) -> list[Interval]:
        """Same as ``get_busy`` but bypasses and repopulates the cache."""
        self.cache.delete(build_busy_cache_key(day.isoformat()))
        return self.get_busy(day, tz)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def build_event(self, booking: Booking, service_name: str) -> dict:
        tz = ZoneInfo(booking.provider_timezone or self.settings.timezone)
        start = from_utc_naive(booking.start_utc).astimezone(tz)
        end = from_utc_naive(booking.end_utc).astimezone(tz)
        return {
            "summary": f"Booking — {booking.client_name}",
            "description": (
                "Booked online\n"
                f"Service: {service_name or ''}\n"
                f"Email: {booking.client_email}\n"
                f"Phone: {booking.client_phone or ''}\n"
                f"Notes: {booking.client_notes or ''}"
            ),
            "start": {"dateTime": start.isoformat(), "timeZone": tz.key},
            "end": {"dateTime": end.isoformat(), "timeZone": tz.key},
            "reminders": {"useDefault": True},
        }

    def push_event(self, booking: Booking, service_name: str) -> Optional[str]:
        """Create a calendar event for ``booking``; returns the Google event id or None."""
        try:
            if not self.is_connected():
                return None
            conn = self._connection()
            calendar_id = quote(conn.calendar_id or "primary", safe="")
            response = self._request_with_retry(
                conn,
                "POST",
                f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events",
                json=self.build_event(booking, service_name),
            )
            event_id = self._json(response).get("id") if response is not None else None
            if not event_id:
                logger.error(f"❌ Failed to create calendar event for booking {booking.id}")
                return None

            logger.info(f"✅ Google Calendar event created for booking {booking.id}")
            return event_id
        except Exception as e:
            logger.error(f"❌ Error creating calendar event for booking {booking.id}: {e.__class__.__name__}")
            return None

    def delete_event(self, event_id: str) -> bool:
        """Delete an event. An event that is already gone (404/410) counts as deleted."""
        try:
            if not event_id or not self.is_connected():
                return False
            conn = self._connection()
            calendar_id = quote(conn.calendar_id or "primary", safe="")
            response = self._request_with_retry(
                conn,
                "DELETE",
                f"{GOOGLE_CALENDAR_API}/calendars/{calendar_id}/events/{quote(event_id, safe='')}",
                accept=(404, 410),
            )
            if response is None:
                return False
            if response.status_code in (404, 410):
                logger.info(f"ℹ️ Google Calendar event {event_id} was already gone ({response.status_code})")
            else:
                logger.info(f"✅ Google Calendar event deleted: {event_id}")
            return True
        except Exception as e:
            logger.error(f"❌ Error deleting calendar event {event_id}: {e.__class__.__name__}")
            return False

    # ------------------------------------------------------------------
    # Connection management
    # ------------------------------------------------------------------

    def save_credentials(self, client_id: str, client_secret: str, calendar_id: str = "") -> GoogleCalendarConnection:
        conn = self._connection()
        if conn is None:
            conn = GoogleCalendarConnection()
            self.db.add(conn)
        conn.client_id = client_id.strip()
        conn.client_secret = encrypt_secret(client_secret.strip())
        conn.calendar_id = calendar_id.strip() or "primary"
        self.db.commit()
        self.db.refresh(conn)
        logger.info(f"✅ Google Calendar credentials saved for client {mask_sensitive_data(conn.client_id)}")
        return conn

    def authorization_url(self) -> Optional[str]:
        """Consent URL for the provider; None until credentials are saved."""
        conn = self._connection()
        if not conn or not conn.client_id:
            return None

        state = secrets.token_urlsafe(24)
        self.cache.set(build_oauth_state_key(state), True, ttl=OAUTH_STATE_TTL)
        url = httpx.URL(
            GOOGLE_AUTH_URL,
            params={
                "client_id": conn.client_id,
                "redirect_uri": self.settings.google_redirect_uri,
                "response_type": "code",
                "scope": " ".join(GOOGLE_CALENDAR_SCOPES),
                "access_type": "offline",
                "prompt": "consent",
                "state": state,
            },
        )
        return str(url)

    def consume_state(self, state: str) -> bool:
        """True once for a state issued by ``authorization_url``."""
        if not state:
            return False
        key = build_oauth_state_key(state)
        if self.cache.get(key) is None:
            return False
        self.cache.delete(key)
        return True

    def exchange_code(self, code: str) -> bool:
        """Trade an authorization code for tokens and store them."""
        conn = self._connection()
        if not conn or not code:
            return False
        client_secret = decrypt_secret(conn.client_secret)
        if client_secret is None:
            self._flag_reconnect(conn, "client secret cannot be decrypted")
            return False

        try:
            response = self.http.post(
                GOOGLE_TOKEN_URL,
                data={
                    "code": code,
                    "client_id": conn.client_id,
                    "client_secret": client_secret,
                    "redirect_uri": self.settings.google_redirect_uri,
                    "grant_type": "authorization_code",
                },
            )
        except httpx.TransportError as e:
            logger.error(f"❌ OAuth token exchange network error: {e.__class__.__name__}")
            return False

        tokens = self._json(response)
        if response.status_code != 200 or not tokens.get("access_token"):
            logger.error(f"❌ OAuth token exchange failed with status {response.status_code}")
            return False

        self._save_tokens(conn, tokens)
        logger.info("✅ Google Calendar connected")
        return True

    def disconnect(self) -> None:
        conn = self._connection()
        if conn:
            self.db.delete(conn)
            self.db.commit()
        logger.info("🔌 Google Calendar disconnected")
