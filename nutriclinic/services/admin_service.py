from typing import List, Optional
import logging

from fastapi import HTTPException, status
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.config import settings
from ..core.security import ConflictError
from ..models.audit import AdminSettings, AuditLog, OutboxStatus, OutboxTask
from ..models.profile import Profile
from ..models.roles import AdminRole, AdminUser, permissions_for
from ..models.user import User
from ..schemas.admin import AdminCreate, AdminUserItem, SecuritySettingsUpdate, UserEdit
from .audit import AuditLogger
from .auth_service import AuthService

logger = logging.getLogger(__name__)

GLOBAL_SETTINGS_ID = "global"

class AdminService:
    def __init__(self, db: Session, audit: Optional[AuditLogger] = None):
        self.db = db
        self.audit = audit or AuditLogger()

    # Users

    def list_users(self, search: Optional[str] = None, status_filter: str = "all") -> List[AdminUserItem]:
        query = self.db.query(Profile, User, AdminUser).join(
            User, User.id == Profile.id
        ).outerjoin(AdminUser, AdminUser.id == Profile.id)

        if search:
            pattern = f"%{search.lower()}%"
            query = query.filter(or_(
                Profile.full_name.ilike(pattern),
                User.email.ilike(pattern),
            ))
        if status_filter == "active":
            query = query.filter(Profile.is_active == True)
        elif status_filter == "inactive":
            query = query.filter(Profile.is_active == False)

        rows = query.order_by(Profile.created_at.desc()).all()
        return [self._to_item(profile, user, admin) for profile, user, admin in rows]

    def get_user(self, user_id: str) -> AdminUserItem:
        profile, user = self._load(user_id)
        admin = self.db.query(AdminUser).filter(AdminUser.id == user_id).first()
        return self._to_item(profile, user, admin)

    def edit_user(self, user_id: str, data: UserEdit, actor_id: str) -> AdminUserItem:
        """Update profile fields and upsert the role unless it is plain 'user'."""
        profile, user = self._load(user_id)
        status_changed = profile.is_active != data.is_active
        current = self.db.query(AdminUser.role).filter(AdminUser.id == user_id).scalar()
        role_changed = data.role != "user" and current != AdminRole(data.role)

        profile.full_name = data.full_name
        profile.phone = data.phone
        profile.city = data.city
        profile.state = data.state
        profile.is_active = data.is_active
        user.is_active = data.is_active
        if role_changed:
            self._upsert_role(user_id, AdminRole(data.role))
        self.db.commit()

        self.audit.log("user_update", f"Profile information updated for user {user_id}", actor_id)
        if status_changed:
            self._log_status(user_id, data.is_active, actor_id)
        if role_changed:
            self.audit.log("role_change", f"Role changed to {data.role} for user {user_id}", actor_id)
        return self.get_user(user_id)

    def set_status(self, user_id: str, is_active: bool, actor_id: str) -> AdminUserItem:
        """Activate or deactivate a user; deactivated users cannot sign in."""
        profile, user = self._load(user_id)
        profile.is_active = is_active
        user.is_active = is_active
        self.db.commit()

        self._log_status(user_id, is_active, actor_id)
        return self.get_user(user_id)

    def change_role(self, user_id: str, role: AdminRole, actor_id: str) -> AdminUserItem:
        self._load(user_id)
        self._upsert_role(user_id, role)
        self.db.commit()

        self.audit.log("role_change", f"Role changed to {role.value} for user {user_id}", actor_id)
        return self.get_user(user_id)

    def reset_password(self, user_id: str, new_password: str, actor_id: str) -> None:
        _, user = self._load(user_id)
        AuthService(self.db).set_password(user, new_password)
        self.audit.log("password_reset", f"Password reset for user {user_id}", actor_id)

    def create_admin(self, data: AdminCreate, actor_id: Optional[str]) -> User:
        """Create an administrative identity with a profile and role."""
        if self.db.query(Profile.id).filter(Profile.username == data.username).first():
            raise ConflictError("Username already exists")

        email = f"{data.username}@{settings.ADMIN_EMAIL_DOMAIN}".lower()
        user = self._create_account(
            email, data.password, {"is_admin": True, "username": data.username},
            data.role, full_name=data.username, username=data.username
        )

        self.audit.log("admin_created", f"Admin account {data.username} created with role {data.role.value}", actor_id)
        return user

    def ensure_super_admin(self, email: str, password: str) -> bool:
        """Create the configured super admin once. Returns True if created."""
        if self.db.query(User.id).filter(User.email == email).first():
            return False

        self._create_account(
            email, password, {"full_name": "Administrator", "is_admin": True},
            AdminRole.SUPER_ADMIN, full_name="Administrator"
        )
        logger.info(f"Super admin {email} created")
        return True

    def _create_account(
        self,
        email: str,
        password: str,
        metadata: dict,
        role: AdminRole,
        full_name: str,
        username: Optional[str] = None,
    ) -> User:
        """Identity, profile and role in a single transaction."""
        try:
            user = AuthService(self.db).sign_up(email, password, metadata, commit=False)
            self.db.add(Profile(
                id=user.id,
                full_name=full_name,
                username=username,
                email=email,
                is_active=True,
                is_profile_completed=True,
            ))
            self._upsert_role(user.id, role)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning(f"Account {email} not created: {str(e)}")
            raise ConflictError("Username already exists")
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Error creating account {email}: {str(e)}")
            raise
        return user

    def _upsert_role(self, user_id: str, role: AdminRole) -> None:
        admin = self.db.query(AdminUser).filter(AdminUser.id == user_id).first()
        if admin is None:
            admin = AdminUser(id=user_id)
            self.db.add(admin)
        admin.role = role
        admin.permissions = permissions_for(role)

    def _log_status(self, user_id: str, is_active: bool, actor_id: str) -> None:
        verb = "activated" if is_active else "deactivated"
        self.audit.log(f"user_{verb}", f"User {user_id} {verb}", actor_id)

    def _load(self, user_id: str):
        row = self.db.query(Profile, User).join(User, User.id == Profile.id).filter(
            Profile.id == user_id
        ).first()
        if not row:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        return row

    @staticmethod
    def _to_item(profile: Profile, user: User, admin: Optional[AdminUser]) -> AdminUserItem:
        return AdminUserItem(
            id=profile.id,
            full_name=profile.full_name,
            email=user.email,
            username=profile.username,
            phone=profile.phone,
            city=profile.city,
            state=profile.state,
            role=admin.role.value if admin else "user",
            is_active=profile.is_active,
            created_at=profile.created_at,
            last_login=user.last_login,
        )

    # Security settings

    def get_settings(self) -> AdminSettings:
        current = self.db.get(AdminSettings, GLOBAL_SETTINGS_ID)
        if current is None:
            current = AdminSettings(id=GLOBAL_SETTINGS_ID, two_factor_enabled=False, session_timeout=30, allowed_ips=[])
            self.db.add(current)
            self.db.commit()
            self.db.refresh(current)
        return current

    def update_settings(self, data: SecuritySettingsUpdate, actor_id: str) -> AdminSettings:
        current = self.get_settings()
        changes = data.model_dump(exclude_unset=True, exclude_none=True)
        for field, value in changes.items():
            setattr(current, field, value)
        self.db.commit()
        self.db.refresh(current)

        if changes:
            summary = ", ".join(f"{key}={value}" for key, value in sorted(changes.items()))
            self.audit.log("security_settings_updated", summary, actor_id)
        return current

    def add_allowed_ip(self, ip: str, actor_id: str) -> AdminSettings:
        current = self.get_settings()
        if ip in (current.allowed_ips or []):
            raise ConflictError("IP address already allowed")

        # Reassign so the JSON column is flagged dirty
        current.allowed_ips = [*(current.allowed_ips or []), ip]
        self.db.commit()
        self.db.refresh(current)
        self.audit.log("security_settings_updated", f"Allowed IP {ip} added", actor_id)
        return current

    def remove_allowed_ip(self, ip: str, actor_id: str) -> AdminSettings:
        current = self.get_settings()
        if ip not in (current.allowed_ips or []):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="IP address not in allow list"
            )

        current.allowed_ips = [item for item in current.allowed_ips if item != ip]
        self.db.commit()
        self.db.refresh(current)
        self.audit.log("security_settings_updated", f"Allowed IP {ip} removed", actor_id)
        return current

    # Audit trail

    def list_audit_logs(self, limit: int = 100, action: Optional[str] = None) -> List[AuditLog]:
        query = self.db.query(AuditLog)
        if action:
            query = query.filter(AuditLog.action == action)
        return query.order_by(AuditLog.id.desc()).limit(limit).all()

    def list_outbox(self, status_filter: Optional[OutboxStatus] = None, limit: int = 100) -> List[OutboxTask]:
        query = self.db.query(OutboxTask)
        if status_filter:
            query = query.filter(OutboxTask.status == status_filter)
        return query.order_by(OutboxTask.id.desc()).limit(limit).all()
