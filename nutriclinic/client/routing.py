"""Client-side route guard.

Mirrors the web app's routing table: auth-only pages bounce signed-in users
to their profile, protected pages bounce anonymous users to the login page,
and anything unknown falls back to the root.
"""
from typing import Callable, Optional
import re

from .session import Session, SessionContext, SessionEvent

LOGIN = "/login"
PROFILE = "/profile"
ROOT = "/"

AUTH_ONLY_ROUTES = ("/login", "/register", "/reset-password")

PROTECTED_ROUTES = (
    re.compile(r"^/profile$"),
    re.compile(r"^/profile/customize$"),
    re.compile(r"^/admin(/.*)?$"),
    re.compile(r"^/nutritionist(/.*)?$"),
    re.compile(r"^/meal-plans/new$"),
    re.compile(r"^/meal-plans/[^/]+$"),
)

MAX_REDIRECTS = 5

def _normalize(path: str) -> str:
    path = path.split("?", 1)[0].split("#", 1)[0]
    if len(path) > 1:
        path = path.rstrip("/")
    return path or ROOT

def is_protected(path: str) -> bool:
    return any(pattern.fullmatch(path) for pattern in PROTECTED_ROUTES)

def resolve(path: str, session: Optional[Session]) -> str:
    """One routing step: the path itself if it may render, else where to redirect."""
    path = _normalize(path)

    if path == ROOT:
        return PROFILE if session else LOGIN
    if path in AUTH_ONLY_ROUTES:
        return PROFILE if session else path
    if is_protected(path):
        return path if session else LOGIN
    return ROOT

class RouteGuard:
    """Tracks the current location and re-checks it whenever the identity changes."""

    def __init__(self, context: SessionContext, on_navigate: Optional[Callable[[str], None]] = None):
        self.context = context
        self.on_navigate = on_navigate
        self.location: Optional[str] = None
        self._unsubscribe = context.subscribe(self._on_session_change)

    def navigate(self, path: str) -> str:
        """Follow redirects until the route may render, then go there."""
        target = _normalize(path)
        for _ in range(MAX_REDIRECTS):
            next_target = resolve(target, self.context.session)
            if next_target == target:
                break
            target = next_target

        self.location = target
        if self.on_navigate:
            self.on_navigate(target)
        return target

    def _on_session_change(self, event: SessionEvent, session: Optional[Session]) -> None:
        if self.location is not None:
            self.navigate(self.location)

    def close(self) -> None:
        self._unsubscribe()
