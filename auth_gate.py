import logging
import threading
from enum import Enum
from typing import Callable, Optional

from backend import BackendAuth, BackendError, Session

logger = logging.getLogger(__name__)


class AuthState(str, Enum):
    CHECKING = "checking"
    AUTHENTICATED = "authenticated"
    UNAUTHENTICATED = "unauthenticated"


class AuthGate:
    """Process-wide view of who is signed in.

    Starts in ``CHECKING``, resolves once from the stored session, then
    follows the backend's auth events for the life of the app.
    """

    def __init__(self, auth: BackendAuth):
        self.auth = auth
        self.state = AuthState.CHECKING
        self.session: Optional[Session] = None
        self._lock = threading.Lock()
        self._unsubscribe: Optional[Callable[[], None]] = None

    def start(self):
        self.stop()
        self._unsubscribe = self.auth.on_auth_state_change(self._on_change)
        try:
            session = self.auth.get_session()
        except BackendError:
            logger.exception("Session check failed")
            session = None
        self._apply(session)

    def stop(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_change(self, event: str, session: Optional[Session]):
        logger.info("Auth event %s", event)
        self._apply(session)

    def _apply(self, session: Optional[Session]):
        with self._lock:
            self.session = session
            self.state = AuthState.AUTHENTICATED if session else AuthState.UNAUTHENTICATED

    @property
    def is_authenticated(self) -> bool:
        return self.state == AuthState.AUTHENTICATED
