from sqlalchemy import Column, String, ForeignKey, DateTime, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base, enum_values

class AdminRole(str, enum.Enum):
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"
    NUTRITIONIST = "nutritionist"

ADMIN_ROLES = (AdminRole.ADMIN, AdminRole.SUPER_ADMIN)

def permissions_for(role: AdminRole) -> dict:
    """Permission flags granted alongside a role."""
    is_admin = role in ADMIN_ROLES
    permissions = {
        "users": is_admin,
        "appointments": True,
        "meal_plans": True,
        "settings": is_admin,
    }
    if role == AdminRole.SUPER_ADMIN:
        permissions["system"] = True
    return permissions

class AdminUser(Base):
    __tablename__ = "admin_users"

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    role = Column(
        SQLEnum(AdminRole, values_callable=enum_values, native_enum=False, length=20),
        nullable=False
    )
    permissions = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="admin_role")

    def __repr__(self):
        return f"<AdminUser(id={self.id}, role='{self.role}')>"

class Nutritionist(Base):
    __tablename__ = "nutritionists"

    id = Column(String(36), ForeignKey("users.id"), primary_key=True)
    crn = Column(String(50), nullable=True, unique=True)
    specialties = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime, server_default=func.now())

    user = relationship("User", back_populates="nutritionist")

    def __repr__(self):
        return f"<Nutritionist(id={self.id}, crn='{self.crn}')>"
