from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import Optional

from ...core.database import get_db
from ...core.security import TokenPayload
from ...api.deps import (
    get_current_user, get_current_user_token, get_optional_token, rate_limit_check
)
from ...services.auth_service import AuthService
from ...services.profile_service import ProfileBootstrapper
from ...services.role_resolver import RoleResolver, destination_for
from ...schemas.auth import (
    UserLogin, UserRegister, TokenResponse, UserResponse,
    RefreshTokenRequest, PasswordReset, PasswordResetConfirm,
    ChangePassword, SessionInfo, SessionResponse, DestinationResponse
)
from ...models.user import User

router = APIRouter(prefix="/auth", tags=["Authentication"])

def resolve_destination(db: Session, user: User):
    """Role first; patients go through the profile bootstrap."""
    kind = RoleResolver(db).resolve(user.id)
    destination = destination_for(kind)
    if destination is None:
        destination = ProfileBootstrapper(db).destination(user)
    return kind, destination

def _token_response(db: Session, user: User, tokens) -> TokenResponse:
    _, destination = resolve_destination(db, user)
    return TokenResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        user=UserResponse.model_validate(user),
        destination=destination.value,
    )

@router.post("/register", response_model=UserResponse)
async def register(
    user_data: UserRegister,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Register a new user."""
    auth_service = AuthService(db)
    user = auth_service.register_user(user_data)

    return UserResponse.model_validate(user)

@router.post("/login", response_model=TokenResponse)
async def login(
    login_data: UserLogin,
    db: Session = Depends(get_db),
):
    """Authenticate user and return access tokens with the landing route."""
    auth_service = AuthService(db)
    user, tokens = auth_service.authenticate_user(login_data)
    return _token_response(db, user, tokens)

@router.post("/refresh", response_model=TokenResponse)
async def refresh_token(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Refresh access token using refresh token."""
    auth_service = AuthService(db)
    user, tokens = auth_service.refresh_access_token(refresh_data.refresh_token)
    return _token_response(db, user, tokens)

@router.post("/logout")
async def logout(
    refresh_data: RefreshTokenRequest,
    db: Session = Depends(get_db)
):
    """Logout user by revoking refresh token."""
    auth_service = AuthService(db)
    success = auth_service.logout_user(refresh_data.refresh_token)

    return {"message": "Successfully logged out" if success else "Logout completed"}

@router.get("/session", response_model=SessionResponse)
async def get_session(
    token_payload: Optional[TokenPayload] = Depends(get_optional_token),
    db: Session = Depends(get_db)
):
    """Current session, or null. Never answers with an error."""
    if token_payload is None:
        return SessionResponse(session=None)

    user = db.query(User).filter(User.id == token_payload.sub).first()
    if not user or not user.is_active:
        return SessionResponse(session=None)

    return SessionResponse(session=SessionInfo(
        user_id=user.id,
        email=user.email,
        expires_at=token_payload.exp,
    ))

@router.get("/me", response_model=UserResponse)
async def get_current_user_info(
    current_user: User = Depends(get_current_user)
):
    """Get current user information."""
    return UserResponse.model_validate(current_user)

@router.get("/destination", response_model=DestinationResponse)
async def get_destination(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Where the signed-in user should land."""
    kind, destination = resolve_destination(db, current_user)
    return DestinationResponse(role=kind.value, destination=destination.value)

@router.post("/change-password")
async def change_password(
    password_data: ChangePassword,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Change user password."""
    auth_service = AuthService(db)
    auth_service.change_password(
        current_user, password_data.current_password, password_data.new_password
    )

    return {"message": "Password changed successfully"}

@router.post("/forgot-password")
async def forgot_password(
    reset_data: PasswordReset,
    db: Session = Depends(get_db),
    _: None = Depends(rate_limit_check)
):
    """Request password reset."""
    auth_service = AuthService(db)
    auth_service.request_password_reset(reset_data.email)

    return {"message": "If the email exists, a password reset link has been sent"}

@router.post("/reset-password")
async def reset_password(
    reset_data: PasswordResetConfirm,
    db: Session = Depends(get_db)
):
    """Reset password using reset token."""
    auth_service = AuthService(db)
    auth_service.reset_password(reset_data)

    return {"message": "Password reset successfully"}

@router.post("/verify-token")
async def verify_token_endpoint(
    token_payload: TokenPayload = Depends(get_current_user_token)
):
    """Verify if token is valid."""
    return {
        "valid": True,
        "user_id": token_payload.sub,
        "email": token_payload.email,
        "expires": token_payload.exp
    }
