from .api import ClientError, NutriClinicClient
from .routing import RouteGuard, resolve
from .session import Session, SessionContext, SessionEvent

__all__ = [
    "ClientError",
    "NutriClinicClient",
    "RouteGuard",
    "Session",
    "SessionContext",
    "SessionEvent",
    "resolve",
]
