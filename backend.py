"""Thin client for the hosted backend (Supabase auth + REST).

Only two surfaces are used: GoTrue under ``/auth/v1`` for the session, and
PostgREST under ``/rest/v1`` for episode rows. The session is persisted to a
JSON file so the app survives restarts the same way the browser SDK keeps it
in local storage.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass
from pathlib import Path
from time import time
from typing import Callable, Optional

import requests

from config import HTTP_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

_REFRESH_MARGIN_SECONDS = 60


class BackendError(Exception):
    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class AuthError(BackendError):
    pass


def _error_message(resp) -> str:
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for key in ("msg", "error_description", "message", "error"):
            if body.get(key):
                return str(body[key])
    return (resp.text or "")[:200] or f"HTTP {resp.status_code}"


class SupabaseClient:
    def __init__(self, url: str, anon_key: str, http=None, timeout: float = HTTP_TIMEOUT_SECONDS):
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.http = http or requests.Session()
        self.timeout = timeout

    def request(self, method: str, path: str, *, params=None, json_body=None,
                token: Optional[str] = None, prefer: Optional[str] = None):
        headers = {"apikey": self.anon_key, "Content-Type": "application/json"}
        headers["Authorization"] = f"Bearer {token or self.anon_key}"
        if prefer:
            headers["Prefer"] = prefer
        try:
            resp = self.http.request(
                method,
                f"{self.url}{path}",
                params=params,
                json=json_body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise BackendError(f"Backend unreachable: {exc}") from exc
        if resp.status_code >= 400:
            raise BackendError(_error_message(resp), resp.status_code)
        return resp

    def close(self):
        self.http.close()


@dataclass
class Session:
    access_token: str
    refresh_token: str
    expires_at: int
    user_id: str
    email: str = ""

    @property
    def expires_soon(self) -> bool:
        return self.expires_at - int(time()) < _REFRESH_MARGIN_SECONDS

    @classmethod
    def from_token_response(cls, body: dict) -> "Session":
        user = body.get("user") or {}
        expires_at = body.get("expires_at")
        if not expires_at:
            expires_at = int(time()) + int(body.get("expires_in") or 3600)
        return cls(
            access_token=body["access_token"],
            refresh_token=body.get("refresh_token") or "",
            expires_at=int(expires_at),
            user_id=str(user.get("id") or ""),
            email=user.get("email") or "",
        )


AuthListener = Callable[[str, Optional[Session]], None]


class BackendAuth:
    """Session owner: sign-in/out, refresh, persistence and change events."""

    def __init__(self, client: SupabaseClient, session_path: Optional[Path] = None):
        self.client = client
        self.session_path = session_path
        self._lock = threading.Lock()
        self._session: Optional[Session] = None
        self._loaded = False
        self._listeners: list[AuthListener] = []

    # -- subscription -----------------------------------------------------

    def on_auth_state_change(self, callback: AuthListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(callback)

        def unsubscribe():
            with self._lock:
                if callback in self._listeners:
                    self._listeners.remove(callback)

        return unsubscribe

    def _emit(self, event: str, session: Optional[Session]):
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth listener failed on %s", event)

    # -- persistence ------------------------------------------------------

    def _load(self) -> Optional[Session]:
        if self.session_path is None or not self.session_path.exists():
            return None
        try:
            return Session(**json.loads(self.session_path.read_text(encoding="utf-8")))
        except (ValueError, TypeError):
            logger.warning("Ignoring unreadable session file %s", self.session_path)
            return None

    def _store(self, session: Optional[Session]):
        self._session = session
        self._loaded = True
        if self.session_path is None:
            return
        if session is None:
            self.session_path.unlink(missing_ok=True)
        else:
            self.session_path.write_text(json.dumps(asdict(session)), encoding="utf-8")

    # -- session ----------------------------------------------------------

    def get_session(self) -> Optional[Session]:
        """Current session, refreshed when close to expiry."""
        with self._lock:
            if not self._loaded:
                self._session = self._load()
                self._loaded = True
            session = self._session
        if session is None or not session.expires_soon:
            return session
        try:
            resp = self.client.request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "refresh_token"},
                json_body={"refresh_token": session.refresh_token},
            )
        except BackendError as exc:
            if exc.status is None:
                # Offline: keep the session and let the next call retry.
                logger.warning("Token refresh failed: %s", exc.message)
                return session
            logger.warning("Token refresh rejected (%s): %s", exc.status, exc.message)
            with self._lock:
                self._store(None)
            self._emit(SIGNED_OUT, None)
            return None
        refreshed = Session.from_token_response(resp.json())
        with self._lock:
            self._store(refreshed)
        self._emit(TOKEN_REFRESHED, refreshed)
        return refreshed

    def sign_in(self, email: str, password: str) -> Session:
        try:
            resp = self.client.request(
                "POST",
                "/auth/v1/token",
                params={"grant_type": "password"},
                json_body={"email": email, "password": password},
            )
        except BackendError as exc:
            raise AuthError(exc.message, exc.status) from exc
        session = Session.from_token_response(resp.json())
        with self._lock:
            self._store(session)
        self._emit(SIGNED_IN, session)
        return session

    def sign_up(self, email: str, password: str) -> Optional[Session]:
        """Register; returns a session only when no email confirmation is required."""
        try:
            resp = self.client.request(
                "POST",
                "/auth/v1/signup",
                json_body={"email": email, "password": password},
            )
        except BackendError as exc:
            raise AuthError(exc.message, exc.status) from exc
        body = resp.json()
        if not body.get("access_token"):
            return None
        session = Session.from_token_response(body)
        with self._lock:
            self._store(session)
        self._emit(SIGNED_IN, session)
        return session

    def sign_out(self):
        with self._lock:
            session = self._session
            self._store(None)
        if session is not None:
            try:
                self.client.request("POST", "/auth/v1/logout", token=session.access_token)
            except BackendError as exc:
                logger.warning("Remote sign-out failed: %s", exc.message)
        self._emit(SIGNED_OUT, None)

    def access_token(self) -> Optional[str]:
        session = self.get_session()
        return session.access_token if session else None

    def current_user_id(self) -> Optional[str]:
        session = self.get_session()
        return session.user_id if session else None
