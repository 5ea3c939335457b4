import os
from contextvars import ContextVar
from datetime import date, datetime, timedelta, timezone, tzinfo
from pathlib import Path
from typing import Optional

SUPABASE_URL = os.environ.get("SUPABASE_URL", "http://localhost:54321").rstrip("/")
SUPABASE_ANON_KEY = os.environ.get("SUPABASE_ANON_KEY", "")
EPISODES_TABLE = "headache_logs"
AUTH_SESSION_PATH = Path(os.environ.get("AUTH_SESSION_PATH", ".auth_session.json"))
HTTP_TIMEOUT_SECONDS = float(os.environ.get("HTTP_TIMEOUT_SECONDS", "15"))
EXPORT_LOCALE = os.environ.get("EXPORT_LOCALE", "en").strip().lower() or "en"

CSRF_COOKIE_NAME = "csrf_token"
TZ_OFFSET_COOKIE_NAME = "tz_offset"
MIN_PASSWORD_LENGTH = 8
ANALYTICS_DEFAULT_DAYS = 30

PUBLIC_PATHS = {"/login", "/signup", "/privacy"}

_client_now: ContextVar[Optional[datetime]] = ContextVar("_client_now", default=None)
_client_tz_offset_min: ContextVar[Optional[int]] = ContextVar("_client_tz_offset_min", default=None)


def _set_client_clock(tz_offset_cookie: str):
    """Set per-request client-local clock derived from JS timezone offset cookie."""
    offset = None
    try:
        offset = int((tz_offset_cookie or "").strip())
    except ValueError:
        offset = None
    if offset is not None and -840 <= offset <= 840:
        _client_tz_offset_min.set(offset)
        _client_now.set(datetime.now(timezone.utc).astimezone(_client_tz()))
        return
    _client_tz_offset_min.set(None)
    _client_now.set(datetime.now().astimezone())


def _client_tz() -> tzinfo:
    """Client timezone; JS offsets are UTC minus local, in minutes."""
    offset = _client_tz_offset_min.get()
    if offset is not None:
        return timezone(-timedelta(minutes=offset))
    return datetime.now().astimezone().tzinfo


def _now_local() -> datetime:
    return _client_now.get() or datetime.now().astimezone()


def _today_local() -> date:
    return _now_local().date()


def _to_local(dt: datetime) -> datetime:
    """Aware instant -> client-local aware datetime."""
    return dt.astimezone(_client_tz())


def _from_local_input(value: str) -> datetime:
    """Parse a datetime-local form value (client wall time) into an aware instant."""
    naive = datetime.strptime(value, "%Y-%m-%dT%H:%M")
    return naive.replace(tzinfo=_client_tz())
