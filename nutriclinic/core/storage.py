from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple
import logging
import uuid

from fastapi import HTTPException, status

from .config import settings
from .security import ConflictError

logger = logging.getLogger(__name__)

MB = 1024 * 1024

class Bucket(str, Enum):
    PROFILE_IMAGES = "profile_images"
    MEAL_PLAN_IMAGES = "meal_plan_images"
    APPOINTMENT_FILES = "appointment_files"

# (max size in bytes, accepted content types)
BUCKET_RULES: Dict[Bucket, Tuple[int, Tuple[str, ...]]] = {
    Bucket.PROFILE_IMAGES: (2 * MB, ("image/jpeg", "image/png")),
    Bucket.MEAL_PLAN_IMAGES: (5 * MB, ("image/jpeg", "image/png", "image/webp")),
    Bucket.APPOINTMENT_FILES: (10 * MB, ("application/pdf", "image/jpeg", "image/png")),
}

@dataclass
class StoredFile:
    bucket: Bucket
    path: str
    public_url: str
    name: str
    size: int
    content_type: str

def check_upload(bucket: Bucket, size: int, content_type: Optional[str]) -> None:
    """Reject a file before it is written anywhere."""
    max_size, allowed_types = BUCKET_RULES[bucket]
    if size > max_size:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File too large. Limit is {max_size // MB}MB"
        )
    if content_type not in allowed_types:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"File type not allowed. Accepted: {', '.join(allowed_types)}"
        )

class FileStorage:
    """Filesystem-backed buckets with identity-prefixed object keys."""

    def __init__(self, root: Optional[str] = None, public_url: Optional[str] = None):
        self.root = Path(root or settings.STORAGE_ROOT)
        self.public_url = (public_url or settings.STORAGE_PUBLIC_URL).rstrip("/")

    def object_key(self, owner_id: str, filename: str) -> str:
        extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else "bin"
        return f"{owner_id}/{uuid.uuid4()}.{extension}"

    def get_public_url(self, bucket: Bucket, key: str) -> str:
        return f"{self.public_url}/{bucket.value}/{key}"

    def upload(
        self,
        bucket: Bucket,
        owner_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str],
    ) -> StoredFile:
        """Validate and store one file; existing objects are never overwritten."""
        check_upload(bucket, len(content), content_type)

        key = self.object_key(owner_id, filename)
        target = self.root / bucket.value / key
        target.parent.mkdir(parents=True, exist_ok=True)

        try:
            with open(target, "xb") as handle:
                handle.write(content)
        except FileExistsError:
            raise ConflictError(f"Object {key} already exists in {bucket.value}")

        logger.info(f"Stored {bucket.value}/{key} ({len(content)} bytes)")
        return StoredFile(
            bucket=bucket,
            path=key,
            public_url=self.get_public_url(bucket, key),
            name=filename,
            size=len(content),
            content_type=content_type,
        )

def get_storage() -> FileStorage:
    """Get file storage."""
    return FileStorage()
