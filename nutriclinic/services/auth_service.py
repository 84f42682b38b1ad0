from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError
from fastapi import HTTPException, status
from datetime import datetime, timedelta
from typing import Optional, Tuple
import logging

from ..core.config import settings
from ..models.user import User, RefreshToken
from ..models.profile import Profile, default_notifications
from ..core.security import (
    verify_password, get_password_hash, create_token_pair, hash_token,
    verify_token, Token, ConflictError, generate_password_reset_token
)
from ..schemas.auth import UserLogin, UserRegister, PasswordResetConfirm

logger = logging.getLogger(__name__)

class AuthService:
    def __init__(self, db: Session):
        self.db = db

    def sign_up(
        self, email: str, password: str, metadata: Optional[dict] = None, commit: bool = True
    ) -> User:
        """Create an authentication identity without any profile.

        With ``commit=False`` the identity is only flushed, so the caller can
        add the profile and role in the same transaction.
        """
        # Check if user already exists
        existing_user = self.db.query(User).filter(
            User.email == email
        ).first()

        if existing_user:
            raise ConflictError("Email already registered")

        new_user = User(
            email=email,
            password_hash=get_password_hash(password),
            user_metadata=metadata or {},
            is_active=True
        )

        self.db.add(new_user)
        if not commit:
            self.db.flush()
            return new_user

        self.db.commit()
        self.db.refresh(new_user)

        return new_user

    def register_user(self, user_data: UserRegister) -> User:
        """Register a new user together with their profile."""
        user = self.sign_up(
            user_data.email,
            user_data.password,
            {"full_name": user_data.full_name}
        )

        profile = Profile(
            id=user.id,
            full_name=user_data.full_name,
            email=user.email,
            birth_date=user_data.birth_date,
            phone=user_data.phone or "",
            tutorial_shown=False,
            is_public=True,
            theme="light",
            notifications=default_notifications(),
        )
        self.db.add(profile)
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating profile during registration: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to create user profile"
            )

        return user

    def authenticate_user(self, login_data: UserLogin) -> Tuple[User, Token]:
        """Authenticate user and return tokens."""
        user = self.db.query(User).filter(
            User.email == login_data.email
        ).first()

        if not user:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        # Check account lockout
        if user.locked_until and user.locked_until > datetime.utcnow():
            raise HTTPException(
                status_code=status.HTTP_423_LOCKED,
                detail="Account is temporarily locked"
            )

        # Verify password
        if not user.password_hash or not verify_password(
            login_data.password, user.password_hash
        ):
            self._handle_failed_login(user)
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid email or password"
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Account is deactivated"
            )

        # Reset failed login attempts
        user.failed_login_attempts = 0
        user.locked_until = None
        user.last_login = datetime.utcnow()

        tokens = create_token_pair(user.id, user.email)
        self._store_refresh_token(user.id, tokens.refresh_token)

        self.db.commit()
        self.db.refresh(user)

        return user, tokens

    def refresh_access_token(self, refresh_token: str) -> Tuple[User, Token]:
        """Refresh access token using refresh token."""
        token_payload = verify_token(refresh_token)
        if not token_payload or token_payload.token_type != "refresh":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid refresh token"
            )

        # Check if refresh token exists in database
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token),
            RefreshToken.is_revoked == False,
            RefreshToken.expires_at > datetime.utcnow()
        ).first()

        if not stored_token:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Invalid or expired refresh token"
            )

        user = self.db.query(User).filter(
            User.id == token_payload.sub
        ).first()

        if not user or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="User not found or inactive"
            )

        new_tokens = create_token_pair(user.id, user.email)

        # Revoke old refresh token and store new one
        stored_token.is_revoked = True
        self._store_refresh_token(user.id, new_tokens.refresh_token)

        self.db.commit()

        return user, new_tokens

    def logout_user(self, refresh_token: str) -> bool:
        """Logout user by revoking refresh token."""
        stored_token = self.db.query(RefreshToken).filter(
            RefreshToken.token_hash == hash_token(refresh_token)
        ).first()

        if not stored_token:
            return False

        stored_token.is_revoked = True
        self.db.commit()
        return True

    def change_password(self, user: User, current_password: str, new_password: str) -> None:
        if not user.password_hash or not verify_password(current_password, user.password_hash):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Current password is incorrect"
            )

        user.password_hash = get_password_hash(new_password)
        self.db.commit()

    def set_password(self, user: User, new_password: str) -> None:
        """Replace a password and sign the user out everywhere."""
        user.password_hash = get_password_hash(new_password)
        user.failed_login_attempts = 0
        user.locked_until = None
        self._revoke_all(user.id)
        self.db.commit()

    def request_password_reset(self, email: str) -> bool:
        """Generate password reset token."""
        user = self.db.query(User).filter(User.email == email).first()
        if not user:
            # Don't reveal if email exists
            return True

        user.password_reset_token = generate_password_reset_token()
        user.password_reset_expires = datetime.utcnow() + timedelta(
            minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES
        )

        self.db.commit()

        # TODO: deliver the reset link by email once an SMTP relay is configured
        logger.info(f"Password reset requested for user {user.id}")
        return True

    def reset_password(self, reset_data: PasswordResetConfirm) -> bool:
        """Reset password using reset token."""
        user = self.db.query(User).filter(
            User.password_reset_token == reset_data.token,
            User.password_reset_expires > datetime.utcnow()
        ).first()

        if not user:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid or expired reset token"
            )

        user.password_reset_token = None
        user.password_reset_expires = None
        self.set_password(user, reset_data.new_password)
        return True

    def _handle_failed_login(self, user: User):
        """Handle failed login attempt."""
        user.failed_login_attempts = (user.failed_login_attempts or 0) + 1

        # Lock account after too many failed attempts
        if user.failed_login_attempts >= settings.MAX_FAILED_LOGINS:
            user.locked_until = datetime.utcnow() + timedelta(minutes=settings.LOCKOUT_MINUTES)
            logger.warning(f"Account {user.id} locked after {user.failed_login_attempts} failed logins")

        self.db.commit()

    def _revoke_all(self, user_id: str):
        self.db.query(RefreshToken).filter(
            RefreshToken.user_id == user_id
        ).update({"is_revoked": True})

    def _store_refresh_token(self, user_id: str, refresh_token: str):
        """Store refresh token in database."""
        token_payload = verify_token(refresh_token)
        expires_at = datetime.utcfromtimestamp(token_payload.exp) if token_payload and token_payload.exp else datetime.utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)

        # One live refresh token per user
        self._revoke_all(user_id)

        self.db.add(RefreshToken(
            user_id=user_id,
            token_hash=hash_token(refresh_token),
            expires_at=expires_at
        ))
