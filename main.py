import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse

from auth_gate import AuthGate, AuthState
from backend import BackendAuth, SupabaseClient
from config import (
    AUTH_SESSION_PATH,
    HTTP_TIMEOUT_SECONDS,
    PUBLIC_PATHS,
    SUPABASE_ANON_KEY,
    SUPABASE_URL,
    TZ_OFFSET_COOKIE_NAME,
    _set_client_clock,
)
from routers.auth import router as auth_router
from routers.dashboard import router as dashboard_router
from routers.episodes import router as episodes_router
from routers.history import router as history_router
from routers.reports import router as reports_router
from security import _csrf_header_valid, _ensure_csrf_cookie, _is_same_origin
from store import RecordStore
from ui import _page

logger = logging.getLogger(__name__)

UNSAFE_METHODS = {"POST", "PUT", "PATCH", "DELETE"}


def _error_page() -> str:
    body = """
  <div class="container" style="text-align:center; padding-top:60px;">
    <h1>Something went wrong.</h1>
    <p style="color:#555;">Your data is safe.</p>
    <div style="display:flex; gap:10px; justify-content:center; margin-top:20px;">
      <button class="btn-primary" onclick="location.reload()">Reload</button>
      <a href="/" class="btn-edit" style="padding:10px 22px; font-size:15px;">Reset</a>
    </div>
  </div>"""
    return _page("Error", body, nav=False)


def _loading_page() -> str:
    body = """
  <div class="container" style="text-align:center; padding-top:60px;">
    <p class="empty">Loading&hellip;</p>
    <script>setTimeout(function () { location.reload(); }, 1000);</script>
  </div>"""
    return _page("Loading", body, nav=False)


def create_app(auth: Optional[BackendAuth] = None, store: Optional[RecordStore] = None) -> FastAPI:
    """Build the app; tests pass an ``auth``/``store`` wired to a fake backend."""
    if auth is None:
        client = SupabaseClient(SUPABASE_URL, SUPABASE_ANON_KEY, timeout=HTTP_TIMEOUT_SECONDS)
        auth = BackendAuth(client, AUTH_SESSION_PATH)
    if store is None:
        store = RecordStore(auth.client, auth)
    gate = AuthGate(auth)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        gate.start()
        logger.info("Auth state on startup: %s", gate.state.value)
        try:
            yield
        finally:
            gate.stop()

    app = FastAPI(lifespan=lifespan)
    app.state.auth = auth
    app.state.store = store
    app.state.gate = gate

    @app.middleware("http")
    async def auth_middleware(request: Request, call_next):
        path = request.url.path
        _set_client_clock(request.cookies.get(TZ_OFFSET_COOKIE_NAME, ""))
        if request.method in UNSAFE_METHODS:
            if not _is_same_origin(request):
                if path.startswith("/api/"):
                    return JSONResponse({"error": "forbidden"}, status_code=403)
                return RedirectResponse(url="/login?error=Forbidden+request", status_code=303)
            if path.startswith("/api/") and not _csrf_header_valid(request):
                return JSONResponse({"error": "forbidden"}, status_code=403)

        if path in PUBLIC_PATHS:
            return _ensure_csrf_cookie(request, await call_next(request))

        if gate.state == AuthState.CHECKING:
            if path.startswith("/api/"):
                return JSONResponse({"error": "unavailable"}, status_code=503)
            return _ensure_csrf_cookie(request, HTMLResponse(_loading_page()))
        if not gate.is_authenticated:
            if path.startswith("/api/"):
                return JSONResponse({"error": "unauthorized"}, status_code=401)
            return RedirectResponse(url="/login", status_code=303)
        return _ensure_csrf_cookie(request, await call_next(request))

    @app.exception_handler(Exception)
    async def error_boundary(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        if request.url.path.startswith("/api/"):
            return JSONResponse({"error": "internal"}, status_code=500)
        return HTMLResponse(_error_page(), status_code=500)

    app.include_router(auth_router)
    app.include_router(dashboard_router)
    app.include_router(episodes_router)
    app.include_router(history_router)
    app.include_router(reports_router)
    return app


app = create_app()
