"""Authentication collaborator: current auth state plus change notifications."""
import logging
import threading
from dataclasses import dataclass
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthUser:
    id: str


@dataclass(frozen=True)
class AuthState:
    user: Optional[AuthUser] = None
    loading: bool = False


AuthCallback = Callable[[AuthState], None]


class AuthNotifier:
    """Holds the latest AuthState and fans out changes to subscribers."""

    def __init__(self, initial: Optional[AuthState] = None):
        self._state = initial or AuthState(user=None, loading=True)
        self._subscribers: list[AuthCallback] = []
        self._lock = threading.Lock()

    @property
    def state(self) -> AuthState:
        return self._state

    def subscribe(self, callback: AuthCallback) -> Callable[[], None]:
        """Register ``callback``, call it with the current state, return an unsubscribe function."""
        with self._lock:
            self._subscribers.append(callback)
        callback(self._state)

        def _unsubscribe() -> None:
            with self._lock:
                if callback in self._subscribers:
                    self._subscribers.remove(callback)

        return _unsubscribe

    def publish(self, state: AuthState) -> None:
        with self._lock:
            self._state = state
            subscribers = list(self._subscribers)
        logger.info(
            "Auth state changed: user=%s loading=%s",
            state.user.id if state.user else None, state.loading,
        )
        for callback in subscribers:
            callback(state)

    def sign_in(self, user_id: str) -> None:
        self.publish(AuthState(user=AuthUser(id=user_id), loading=False))

    def sign_out(self) -> None:
        self.publish(AuthState(user=None, loading=False))
