from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.storage import FileStorage, get_storage
from ...api.deps import get_current_user
from ...services.profile_service import ProfileBootstrapper, ProfileService
from ...schemas.profile import ProfileCustomize, ProfileResponse, ProfileUpdate, UploadResponse
from ...models.user import User

router = APIRouter(prefix="/profiles", tags=["Profiles"])

@router.get("/me", response_model=ProfileResponse)
async def get_my_profile(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Get the signed-in user's profile, creating it on first access."""
    profile, _ = ProfileBootstrapper(db).ensure_profile(current_user)
    return ProfileResponse.model_validate(profile)

@router.patch("/me", response_model=ProfileResponse)
async def update_my_profile(
    profile_data: ProfileUpdate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Update profile settings."""
    profile_service = ProfileService(db)
    return ProfileResponse.model_validate(
        profile_service.update_profile(current_user.id, profile_data)
    )

@router.post("/me/customize", response_model=ProfileResponse)
async def customize_my_profile(
    customize_data: ProfileCustomize,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Complete first-run profile customization."""
    ProfileBootstrapper(db).ensure_profile(current_user)
    profile_service = ProfileService(db)
    return ProfileResponse.model_validate(
        profile_service.customize(current_user.id, customize_data)
    )

@router.post("/me/images/{kind}", response_model=UploadResponse)
async def upload_profile_image(
    kind: str,
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    """Upload an avatar or cover image."""
    content = await file.read()
    profile_service = ProfileService(db)
    stored = profile_service.upload_image(
        storage, current_user.id, kind, file.filename or "image", content, file.content_type
    )
    return UploadResponse(
        name=stored.name,
        path=stored.path,
        size=stored.size,
        type=stored.content_type,
        public_url=stored.public_url,
    )
