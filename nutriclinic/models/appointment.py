from sqlalchemy import (
    Column, Integer, String, ForeignKey, DateTime, Date, Boolean, Text, Float,
    Index, Enum as SQLEnum, text
)
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from ..core.database import Base, generate_id, enum_values

class AppointmentStatus(str, enum.Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    RESCHEDULED = "rescheduled"

class AppointmentType(str, enum.Enum):
    FIRST_VISIT = "first_visit"
    FOLLOW_UP = "follow_up"

class Modality(str, enum.Enum):
    ONLINE = "online"
    IN_PERSON = "in_person"

class AppointmentSlot(Base):
    """Weekly template slot a nutritionist offers."""

    __tablename__ = "appointment_slots"

    id = Column(Integer, primary_key=True, index=True)
    nutritionist_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(String(5), nullable=False)
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index("uq_slot_template", "nutritionist_id", "day_of_week", "start_time", unique=True),
    )

    def __repr__(self):
        return f"<AppointmentSlot(day={self.day_of_week}, start='{self.start_time}')>"

class Appointment(Base):
    __tablename__ = "appointments"

    id = Column(String(36), primary_key=True, default=generate_id)

    # Relationships
    patient_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    nutritionist_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    # Appointment details
    date = Column(Date, nullable=False, index=True)
    start_time = Column(String(5), nullable=False)
    end_time = Column(String(5), nullable=False)
    type = Column(SQLEnum(AppointmentType, values_callable=enum_values, native_enum=False, length=20), nullable=False)
    modality = Column(SQLEnum(Modality, values_callable=enum_values, native_enum=False, length=20), nullable=False)
    status = Column(
        SQLEnum(AppointmentStatus, values_callable=enum_values, native_enum=False, length=20),
        default=AppointmentStatus.SCHEDULED,
        nullable=False
    )
    price = Column(Float, nullable=False, default=0.0)
    notes = Column(Text, nullable=True)

    # Tracking
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    # Relationships
    patient = relationship("User", foreign_keys=[patient_id])
    nutritionist = relationship("User", foreign_keys=[nutritionist_id])
    files = relationship("AppointmentFile", back_populates="appointment")

    __table_args__ = (
        # One live booking per nutritionist slot; cancelled rows free the slot
        Index(
            "uq_appointment_active_slot",
            "nutritionist_id", "date", "start_time",
            unique=True,
            sqlite_where=text("status != 'cancelled'"),
            postgresql_where=text("status != 'cancelled'"),
        ),
    )

    def __repr__(self):
        return f"<Appointment(id={self.id}, patient_id={self.patient_id}, nutritionist_id={self.nutritionist_id}, date='{self.date}', start='{self.start_time}')>"

class AppointmentFile(Base):
    __tablename__ = "appointment_files"

    id = Column(Integer, primary_key=True, index=True)
    appointment_id = Column(String(36), ForeignKey("appointments.id"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    file_path = Column(String(500), nullable=False)
    uploaded_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())

    appointment = relationship("Appointment", back_populates="files")

    def __repr__(self):
        return f"<AppointmentFile(id={self.id}, appointment_id={self.appointment_id})>"
