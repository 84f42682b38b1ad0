"""Appointment slot planning and booking.

Availability is the nutritionist's weekly template for the day minus the
start times already booked on that date. Slots are compared as ``HH:MM``
strings, which is why every time stored here is zero padded.
"""
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Set
import csv
import io
import logging

from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..core.config import settings
from ..core.security import AuthorizationError, ConflictError
from ..core.storage import Bucket, FileStorage, StoredFile
from ..models.appointment import (
    Appointment, AppointmentFile, AppointmentSlot,
    AppointmentStatus, AppointmentType
)
from ..models.profile import Profile
from ..models.user import User
from ..schemas.appointment import AppointmentCreate, SlotAvailability, SlotTemplateCreate

logger = logging.getLogger(__name__)

TIME_FORMAT = "%H:%M"

# Allowed status changes; completed and cancelled are terminal
STATUS_TRANSITIONS: Dict[AppointmentStatus, Set[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: {
        AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED, AppointmentStatus.COMPLETED,
    },
    AppointmentStatus.CONFIRMED: {
        AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED,
        AppointmentStatus.RESCHEDULED,
    },
    AppointmentStatus.RESCHEDULED: {
        AppointmentStatus.SCHEDULED, AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
    },
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}

def day_of_week(day: date) -> int:
    """Weekday number with Sunday as 0."""
    return (day.weekday() + 1) % 7

def compute_end_time(start_time: str, minutes: Optional[int] = None) -> str:
    """Add the appointment duration to an ``HH:MM`` start time.

    Raises ValueError when the appointment would run past midnight.
    """
    duration = minutes if minutes is not None else settings.APPOINTMENT_DURATION_MINUTES
    start = datetime.strptime(start_time, TIME_FORMAT)
    end = start + timedelta(minutes=duration)
    if end.date() != start.date():
        raise ValueError(f"An appointment starting at {start_time} would end after midnight")
    return end.strftime(TIME_FORMAT)

def price_for(appointment_type: AppointmentType) -> float:
    if appointment_type == AppointmentType.FIRST_VISIT:
        return settings.FIRST_VISIT_PRICE
    return settings.FOLLOW_UP_PRICE

class SlotPlanner:
    def __init__(self, db: Session):
        self.db = db

    def template_slots(self, nutritionist_id: str, weekday: int) -> List[str]:
        rows = self.db.query(AppointmentSlot.start_time).filter(
            AppointmentSlot.nutritionist_id == nutritionist_id,
            AppointmentSlot.day_of_week == weekday,
            AppointmentSlot.is_active == True
        ).all()
        return sorted({row.start_time for row in rows})

    def booked_slots(self, nutritionist_id: str, day: date) -> Set[str]:
        rows = self.db.query(Appointment.start_time).filter(
            Appointment.nutritionist_id == nutritionist_id,
            Appointment.date == day,
            Appointment.status != AppointmentStatus.CANCELLED
        ).all()
        return {row.start_time for row in rows}

    def available_slots(self, nutritionist_id: str, day: date) -> List[SlotAvailability]:
        """Every template slot of the day, flagged free or taken."""
        booked = self.booked_slots(nutritionist_id, day)
        return [
            SlotAvailability(time=slot, available=slot not in booked)
            for slot in self.template_slots(nutritionist_id, day_of_week(day))
        ]

    def add_template_slot(self, nutritionist_id: str, data: SlotTemplateCreate) -> AppointmentSlot:
        slot = AppointmentSlot(
            nutritionist_id=nutritionist_id,
            day_of_week=data.day_of_week,
            start_time=data.start_time,
        )
        self.db.add(slot)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise ConflictError("Slot already exists in the weekly template")
        self.db.refresh(slot)
        return slot

    def list_template_slots(self, nutritionist_id: str) -> List[AppointmentSlot]:
        return self.db.query(AppointmentSlot).filter(
            AppointmentSlot.nutritionist_id == nutritionist_id
        ).order_by(AppointmentSlot.day_of_week, AppointmentSlot.start_time).all()

class AppointmentService:
    def __init__(self, db: Session):
        self.db = db
        self.planner = SlotPlanner(db)

    def upload_attachments(self, storage: FileStorage, user_id: str, files) -> List[StoredFile]:
        """Store files one at a time.

        The first failure aborts the rest; files already stored stay stored.
        ``files`` yields (filename, content, content_type) tuples.
        """
        stored = []
        for filename, content, content_type in files:
            stored.append(
                storage.upload(Bucket.APPOINTMENT_FILES, user_id, filename, content, content_type)
            )
        return stored

    def book(self, patient: User, data: AppointmentCreate) -> Appointment:
        """Book a free template slot for the patient."""
        try:
            end_time = compute_end_time(data.start_time)
        except ValueError as e:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

        if data.start_time not in self.planner.template_slots(data.nutritionist_id, day_of_week(data.date)):
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Selected time is not offered on that day"
            )

        if data.start_time in self.planner.booked_slots(data.nutritionist_id, data.date):
            raise ConflictError("Selected time slot is already booked")

        appointment = Appointment(
            patient_id=patient.id,
            nutritionist_id=data.nutritionist_id,
            date=data.date,
            start_time=data.start_time,
            end_time=end_time,
            type=data.type,
            modality=data.modality,
            status=AppointmentStatus.SCHEDULED,
            price=price_for(data.type),
            notes=data.notes,
        )
        self.db.add(appointment)
        try:
            self.db.commit()
        except IntegrityError:
            # Lost a race with a concurrent booking of the same slot
            self.db.rollback()
            raise ConflictError("Selected time slot is already booked")
        self.db.refresh(appointment)
        logger.info(
            f"Appointment {appointment.id} booked with {data.nutritionist_id} "
            f"on {data.date} {data.start_time}-{end_time}"
        )

        if data.attachments:
            self._record_attachments(appointment, patient.id, data)

        return appointment

    def _record_attachments(self, appointment: Appointment, user_id: str, data: AppointmentCreate) -> None:
        # Separate commit: the appointment stands even if this fails
        for attachment in data.attachments:
            self.db.add(AppointmentFile(
                appointment_id=appointment.id,
                file_name=attachment.name,
                file_path=attachment.path,
                uploaded_by=user_id,
            ))
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Appointment {appointment.id} saved without attachment records: {str(e)}")
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Appointment booked but attachments could not be recorded"
            )
        self.db.refresh(appointment)

    def get(self, appointment_id: str) -> Appointment:
        appointment = self.db.query(Appointment).options(
            selectinload(Appointment.files)
        ).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Appointment not found"
            )
        return appointment

    def list_for_patient(self, patient_id: str) -> List[Appointment]:
        return self.db.query(Appointment).options(
            selectinload(Appointment.files)
        ).filter(
            Appointment.patient_id == patient_id
        ).order_by(Appointment.date, Appointment.start_time).all()

    def search(
        self,
        day: Optional[date] = None,
        status_filter: Optional[AppointmentStatus] = None,
        nutritionist_id: Optional[str] = None,
    ) -> List[Appointment]:
        query = self.db.query(Appointment).options(selectinload(Appointment.files))
        if day:
            query = query.filter(Appointment.date == day)
        if status_filter:
            query = query.filter(Appointment.status == status_filter)
        if nutritionist_id:
            query = query.filter(Appointment.nutritionist_id == nutritionist_id)
        return query.order_by(Appointment.date, Appointment.start_time).all()

    def change_status(
        self,
        appointment_id: str,
        new_status: AppointmentStatus,
        actor_id: str,
        actor_is_admin: bool,
    ) -> Appointment:
        """Move an appointment to a new status. Rows are never deleted."""
        appointment = self.get(appointment_id)

        if not actor_is_admin and appointment.nutritionist_id != actor_id:
            raise AuthorizationError("Only the assigned nutritionist or an admin can update this appointment")

        if new_status not in STATUS_TRANSITIONS[appointment.status]:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Cannot change status from {appointment.status.value} to {new_status.value}"
            )

        appointment.status = new_status
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def export_csv(self, appointments: List[Appointment]) -> str:
        """Render appointments as CSV with patient and nutritionist names."""
        people = {}
        ids = {a.patient_id for a in appointments} | {a.nutritionist_id for a in appointments}
        if ids:
            people = {
                profile.id: profile
                for profile in self.db.query(Profile).filter(Profile.id.in_(ids)).all()
            }

        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow([
            "date", "time", "patient", "email", "phone", "nutritionist",
            "type", "modality", "status", "price", "notes",
        ])
        for appointment in appointments:
            patient = people.get(appointment.patient_id)
            nutritionist = people.get(appointment.nutritionist_id)
            writer.writerow([
                appointment.date.isoformat(),
                f"{appointment.start_time} - {appointment.end_time}",
                patient.full_name if patient else "",
                patient.email if patient else "",
                patient.phone if patient else "",
                nutritionist.full_name if nutritionist else "",
                appointment.type.value,
                appointment.modality.value,
                appointment.status.value,
                f"{appointment.price:.2f}",
                appointment.notes or "",
            ])
        return buffer.getvalue()
