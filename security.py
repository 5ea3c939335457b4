import hmac
import re
import secrets
import threading
from collections import defaultdict, deque
from time import monotonic

from fastapi import Request

from config import CSRF_COOKIE_NAME, MIN_PASSWORD_LENGTH

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class RateLimiter:
    """Sliding-window attempt counter per client IP. In-memory; resets on restart."""

    def __init__(self, window: float, max_attempts: int):
        self.window = window
        self.max_attempts = max_attempts
        self._hits: dict[str, deque] = defaultdict(deque)
        self._lock = threading.Lock()

    def allow(self, ip: str) -> bool:
        now = monotonic()
        with self._lock:
            hits = self._hits[ip]
            while hits and now - hits[0] >= self.window:
                hits.popleft()
            if len(hits) >= self.max_attempts:
                return False
            hits.append(now)
            return True

    def reset(self):
        with self._lock:
            self._hits.clear()


_login_limiter = RateLimiter(window=300, max_attempts=10)
_signup_limiter = RateLimiter(window=900, max_attempts=5)


def _is_login_allowed(ip: str) -> bool:
    return _login_limiter.allow(ip)


def _is_signup_allowed(ip: str) -> bool:
    return _signup_limiter.allow(ip)


def _reset_rate_limits():
    _login_limiter.reset()
    _signup_limiter.reset()


def _request_origin_host(request: Request) -> str:
    header = request.headers.get("origin") or request.headers.get("referer") or ""
    if "://" not in header:
        return ""
    return header.split("://", 1)[1].split("/", 1)[0].lower()


def _is_same_origin(request: Request) -> bool:
    origin_host = _request_origin_host(request)
    if not origin_host:
        return False
    return origin_host == request.url.netloc.lower()


def _ensure_csrf_cookie(request: Request, response):
    if request.cookies.get(CSRF_COOKIE_NAME):
        return response
    response.set_cookie(
        CSRF_COOKIE_NAME,
        secrets.token_urlsafe(32),
        httponly=False,
        samesite="lax",
        secure=request.url.scheme == "https",
    )
    return response


def _csrf_header_valid(request: Request) -> bool:
    cookie_token = request.cookies.get(CSRF_COOKIE_NAME, "")
    header_token = request.headers.get("x-csrf-token", "")
    return bool(cookie_token) and hmac.compare_digest(cookie_token, header_token)


def _validate_credentials(email: str, password: str) -> str:
    """Return an error message, or '' when the pair is worth sending to the backend."""
    if not _EMAIL_RE.match(email.strip()):
        return "Please enter a valid email address"
    if len(password) < MIN_PASSWORD_LENGTH:
        return f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return ""
