from sqlalchemy import Column, String, ForeignKey, DateTime, Date, Boolean, Text, JSON
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from ..core.database import Base

def default_notifications():
    return {"email": True, "push": True}

class Profile(Base):
    __tablename__ = "profiles"

    # One profile per identity, sharing its id
    id = Column(String(36), ForeignKey("users.id"), primary_key=True)

    # Personal information
    full_name = Column(String(200), nullable=False, default="")
    username = Column(String(50), unique=True, nullable=True, index=True)
    email = Column(String(255), nullable=True)
    bio = Column(Text, nullable=True)
    birth_date = Column(Date, nullable=True)
    gender = Column(String(20), nullable=True)

    # Contact information
    phone = Column(String(20), nullable=True)
    city = Column(String(100), nullable=True)
    state = Column(String(100), nullable=True)

    # Presentation
    avatar_url = Column(String(500), nullable=True)
    cover_image_url = Column(String(500), nullable=True)
    social_links = Column(JSON, nullable=False, default=list)
    interests = Column(JSON, nullable=False, default=list)
    theme = Column(String(20), default="light")
    notifications = Column(JSON, nullable=False, default=default_notifications)
    is_public = Column(Boolean, default=True)
    tutorial_shown = Column(Boolean, default=False)

    # State
    is_active = Column(Boolean, default=True)
    is_profile_completed = Column(Boolean, default=False)
    nutritionist_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    # Timestamps
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    user = relationship("User", back_populates="profile", foreign_keys=[id])

    def __repr__(self):
        return f"<Profile(id={self.id}, name='{self.full_name}')>"
