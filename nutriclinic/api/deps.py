from fastapi import BackgroundTasks, Depends, HTTPException, status, Request
from fastapi.security import HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Optional

from ..core.config import settings
from ..core.database import get_db, get_redis
from ..core.security import (
    security, optional_security, verify_token, AuthenticationError,
    AuthorizationError, TokenPayload
)
from ..models.user import User
from ..services.outbox import OutboxDispatcher
from ..services.role_resolver import RoleResolver, UserKind

async def get_current_user_token(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> TokenPayload:
    """Extract and verify JWT token from Authorization header."""
    token = credentials.credentials

    # Verify token
    token_payload = verify_token(token)
    if not token_payload:
        raise AuthenticationError("Invalid or expired token")

    # Check if token is access token
    if token_payload.token_type != "access":
        raise AuthenticationError("Invalid token type")

    return token_payload

async def get_optional_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(optional_security)
) -> Optional[TokenPayload]:
    """Access token payload if a valid one was sent, None otherwise."""
    if not credentials:
        return None

    token_payload = verify_token(credentials.credentials)
    if not token_payload or token_payload.token_type != "access" or not token_payload.sub:
        return None
    return token_payload

async def get_current_user(
    token_payload: TokenPayload = Depends(get_current_user_token),
    db: Session = Depends(get_db)
) -> User:
    """Get current authenticated user from database."""
    if not token_payload.sub:
        raise AuthenticationError("Invalid token payload")

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is deactivated")

    return user

def require_kind(*allowed_kinds: UserKind):
    """Create a dependency that requires the user to resolve to one of the kinds."""
    async def kind_checker(
        current_user: User = Depends(get_current_user),
        db: Session = Depends(get_db)
    ) -> User:
        kind = RoleResolver(db).resolve(current_user.id)
        if kind not in allowed_kinds:
            raise AuthorizationError(
                f"Access denied. Required roles: {[k.value for k in allowed_kinds]}"
            )
        return current_user

    return kind_checker

async def get_admin_user(
    current_user: User = Depends(require_kind(UserKind.ADMIN))
) -> User:
    """Require admin or super admin role."""
    return current_user

async def get_staff_user(
    current_user: User = Depends(require_kind(UserKind.ADMIN, UserKind.NUTRITIONIST))
) -> User:
    """Require nutritionist or admin role."""
    return current_user

# Rate limiting dependency
async def rate_limit_check(
    request: Request,
    redis_client = Depends(get_redis)
) -> None:
    """Basic rate limiting for unauthenticated endpoints."""
    client_ip = request.client.host if request.client else "unknown"
    key = f"rate_limit:{request.url.path}:{client_ip}"

    current_requests = redis_client.get(key)
    if current_requests is None:
        redis_client.setex(key, settings.RATE_LIMIT_WINDOW_SECONDS, 1)
    else:
        if int(current_requests) >= settings.RATE_LIMIT_MAX_REQUESTS:
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail="Too many requests. Please try again later."
            )
        redis_client.incr(key)

async def outbox_dispatch(background_tasks: BackgroundTasks) -> None:
    """Deliver queued side effects once the response has been sent."""
    background_tasks.add_task(OutboxDispatcher().dispatch_pending)
