from enum import Enum
from typing import Optional
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.roles import ADMIN_ROLES, AdminRole, AdminUser, Nutritionist

logger = logging.getLogger(__name__)

class UserKind(str, Enum):
    ADMIN = "admin"
    NUTRITIONIST = "nutritionist"
    PATIENT = "patient"

class Destination(str, Enum):
    ADMIN_DASHBOARD = "/admin/dashboard"
    NUTRITIONIST_DASHBOARD = "/nutritionist/dashboard"
    PROFILE = "/profile"
    PROFILE_CUSTOMIZE = "/profile/customize"

class RoleResolver:
    """Decide which dashboard an identity lands on.

    Admin roles win over nutritionist membership; anything else is a patient
    and goes through profile bootstrapping. Lookup errors are logged and
    treated as "no row", so they degrade to the patient path.
    """

    def __init__(self, db: Session):
        self.db = db

    def resolve(self, user_id: str) -> UserKind:
        admin_role = self._admin_role(user_id)
        if admin_role in ADMIN_ROLES:
            return UserKind.ADMIN

        if admin_role == AdminRole.NUTRITIONIST or self._is_nutritionist(user_id):
            return UserKind.NUTRITIONIST

        return UserKind.PATIENT

    def _admin_role(self, user_id: str) -> Optional[AdminRole]:
        try:
            admin = self.db.query(AdminUser).filter(AdminUser.id == user_id).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error checking admin role for {user_id}: {str(e)}")
            return None
        return admin.role if admin else None

    def _is_nutritionist(self, user_id: str) -> bool:
        try:
            row = self.db.query(Nutritionist.id).filter(Nutritionist.id == user_id).first()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error checking nutritionist membership for {user_id}: {str(e)}")
            return False
        return row is not None

    def is_admin(self, user_id: str) -> bool:
        return self.resolve(user_id) == UserKind.ADMIN

    def is_staff(self, user_id: str) -> bool:
        return self.resolve(user_id) in (UserKind.ADMIN, UserKind.NUTRITIONIST)

def destination_for(kind: UserKind) -> Optional[Destination]:
    """Dashboard for elevated users; None means the profile bootstrap decides."""
    if kind == UserKind.ADMIN:
        return Destination.ADMIN_DASHBOARD
    if kind == UserKind.NUTRITIONIST:
        return Destination.NUTRITIONIST_DASHBOARD
    return None
