from typing import Optional, Tuple
import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.security import ConflictError, ProfileBootstrapError
from ..core.storage import Bucket, FileStorage, StoredFile
from ..models.profile import Profile, default_notifications
from ..models.user import User
from ..schemas.profile import ProfileCustomize, ProfileUpdate
from .role_resolver import Destination

logger = logging.getLogger(__name__)

def display_name_for(user: User) -> str:
    metadata = user.user_metadata or {}
    return metadata.get("full_name") or user.email.split("@")[0]

class ProfileBootstrapper:
    """Guarantee exactly one profile per identity, created on first login."""

    def __init__(self, db: Session):
        self.db = db

    def ensure_profile(self, user: User) -> Tuple[Profile, bool]:
        """Return the user's profile and whether it was created just now."""
        profile = self.db.query(Profile).filter(Profile.id == user.id).first()
        if profile:
            return profile, False

        profile = Profile(
            id=user.id,
            full_name=display_name_for(user),
            email=user.email,
            phone="",
            theme="light",
            notifications=default_notifications(),
            is_public=True,
            tutorial_shown=False,
            is_active=True,
            is_profile_completed=False,
        )
        self.db.add(profile)
        try:
            self.db.commit()
        except IntegrityError:
            # A concurrent first login may have inserted it already
            self.db.rollback()
            existing = self.db.query(Profile).filter(Profile.id == user.id).first()
            if existing:
                return existing, False
            logger.error(f"Error creating profile for {user.id}")
            raise ProfileBootstrapError()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating profile for {user.id}: {str(e)}")
            raise ProfileBootstrapError()

        self.db.refresh(profile)
        logger.info(f"Created profile for {user.id}")
        return profile, True

    def destination(self, user: User) -> Destination:
        profile, _ = self.ensure_profile(user)
        if not profile.is_profile_completed:
            return Destination.PROFILE_CUSTOMIZE
        return Destination.PROFILE

class ProfileService:
    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: str) -> Profile:
        profile = self.db.query(Profile).filter(Profile.id == user_id).first()
        if not profile:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Profile not found"
            )
        return profile

    def update_profile(self, user_id: str, data: ProfileUpdate) -> Profile:
        """Apply the settings form."""
        profile = self.get_profile(user_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("username"):
            self._ensure_username_free(changes["username"], user_id)

        for field, value in changes.items():
            setattr(profile, field, value)

        self._commit(user_id)
        self.db.refresh(profile)
        return profile

    def customize(self, user_id: str, data: ProfileCustomize) -> Profile:
        """Save the first-run customization and mark the profile completed."""
        profile = self.get_profile(user_id)
        self._ensure_username_free(data.username, user_id)

        profile.full_name = data.full_name
        profile.username = data.username
        profile.bio = data.bio
        profile.social_links = [link.model_dump() for link in data.social_links]
        profile.interests = list(data.interests)
        if data.avatar_url is not None:
            profile.avatar_url = data.avatar_url
        profile.is_profile_completed = True

        self._commit(user_id)
        self.db.refresh(profile)
        logger.info(f"Profile {user_id} customized")
        return profile

    def upload_image(
        self,
        storage: FileStorage,
        user_id: str,
        kind: str,
        filename: str,
        content: bytes,
        content_type: Optional[str],
    ) -> StoredFile:
        """Store an avatar or cover image and point the profile at it."""
        if kind not in ("avatar", "cover"):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Image kind must be 'avatar' or 'cover'"
            )

        profile = self.get_profile(user_id)
        stored = storage.upload(Bucket.PROFILE_IMAGES, user_id, filename, content, content_type)

        if kind == "avatar":
            profile.avatar_url = stored.public_url
        else:
            profile.cover_image_url = stored.public_url
        self.db.commit()
        return stored

    def _commit(self, user_id: str) -> None:
        try:
            self.db.commit()
        except IntegrityError as e:
            # Lost a race for the same username after the pre-check
            self.db.rollback()
            logger.warning(f"Profile {user_id} update rejected: {str(e)}")
            raise ConflictError("Username already taken")

    def _ensure_username_free(self, username: str, user_id: str) -> None:
        taken = self.db.query(Profile.id).filter(
            Profile.username == username,
            Profile.id != user_id
        ).first()
        if taken:
            raise ConflictError("Username already taken")
