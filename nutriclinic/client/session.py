from dataclasses import dataclass
from enum import Enum
from typing import Callable, List, Optional
import logging

logger = logging.getLogger(__name__)

class SessionEvent(str, Enum):
    INITIAL_SESSION = "INITIAL_SESSION"
    SIGNED_IN = "SIGNED_IN"
    TOKEN_REFRESHED = "TOKEN_REFRESHED"
    USER_UPDATED = "USER_UPDATED"
    SIGNED_OUT = "SIGNED_OUT"

@dataclass(frozen=True)
class Session:
    user_id: str
    email: Optional[str] = None
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    expires_at: Optional[int] = None

Listener = Callable[[SessionEvent, Optional[Session]], None]

class SessionContext:
    """Holds the current session and tells subscribers when the identity changes.

    State is replaced on every event, but listeners only hear about events
    that change who is signed in. A token refresh for the same user is
    silent.
    """

    def __init__(self, session: Optional[Session] = None):
        self._session = session
        self._listeners: List[Listener] = []

    @property
    def session(self) -> Optional[Session]:
        return self._session

    @property
    def user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns a callable that removes it again."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def apply(self, event: SessionEvent, session: Optional[Session]) -> bool:
        """Replace local state. Returns True if listeners were notified."""
        previous = self.user_id
        self._session = None if event == SessionEvent.SIGNED_OUT else session

        if self.user_id == previous:
            return False

        logger.debug(f"Session identity changed on {event.value}: {previous} -> {self.user_id}")
        for listener in list(self._listeners):
            listener(event, self._session)
        return True
