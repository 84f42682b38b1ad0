from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
import enum

from ..core.database import Base, enum_values

class AuditLog(Base):
    """Append-only record of a privileged mutation."""

    __tablename__ = "audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    action = Column(String(100), nullable=False, index=True)
    details = Column(Text, nullable=True)
    performed_by = Column(String(36), nullable=True, index=True)
    created_at = Column(DateTime, server_default=func.now())

    def __repr__(self):
        return f"<AuditLog(id={self.id}, action='{self.action}')>"

class AdminSettings(Base):
    __tablename__ = "admin_settings"

    id = Column(String(20), primary_key=True, default="global")
    two_factor_enabled = Column(Boolean, default=False)
    session_timeout = Column(Integer, default=30)  # minutes
    allowed_ips = Column(JSON, nullable=False, default=list)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

class OutboxStatus(str, enum.Enum):
    PENDING = "pending"
    DELIVERED = "delivered"
    FAILED = "failed"

class OutboxTask(Base):
    """Queued side effect delivered independently of the write that produced it."""

    __tablename__ = "outbox_tasks"

    id = Column(Integer, primary_key=True, index=True)
    kind = Column(String(50), nullable=False)
    payload = Column(JSON, nullable=False, default=dict)
    status = Column(
        SQLEnum(OutboxStatus, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=OutboxStatus.PENDING,
        index=True
    )
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    processed_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<OutboxTask(id={self.id}, kind='{self.kind}', status='{self.status}')>"
