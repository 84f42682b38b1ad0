from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.storage import FileStorage, get_storage
from ...api.deps import get_current_user, get_staff_user, outbox_dispatch
from ...services.audit import AuditLogger
from ...services.role_resolver import RoleResolver
from ...services.scheduling import AppointmentService, SlotPlanner, day_of_week
from ...schemas.appointment import (
    AppointmentCreate, AppointmentResponse, AppointmentStatusUpdate,
    AvailabilityResponse, SlotTemplateCreate, SlotTemplateResponse
)
from ...schemas.profile import UploadResponse
from ...models.appointment import AppointmentStatus
from ...models.user import User

router = APIRouter(prefix="/appointments", tags=["Appointments"])

@router.get("/availability", response_model=AvailabilityResponse)
async def get_availability(
    nutritionist_id: str,
    day: date,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Template slots for the day, each flagged free or taken."""
    planner = SlotPlanner(db)
    return AvailabilityResponse(
        nutritionist_id=nutritionist_id,
        date=day,
        day_of_week=day_of_week(day),
        slots=planner.available_slots(nutritionist_id, day),
    )

@router.post("/slots", response_model=SlotTemplateResponse, status_code=201)
async def add_template_slot(
    slot_data: SlotTemplateCreate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Add a weekly slot to the signed-in nutritionist's template."""
    planner = SlotPlanner(db)
    return planner.add_template_slot(current_user.id, slot_data)

@router.get("/slots/mine", response_model=List[SlotTemplateResponse])
async def list_my_template_slots(
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    planner = SlotPlanner(db)
    return planner.list_template_slots(current_user.id)

@router.post("/files", response_model=List[UploadResponse])
async def upload_appointment_files(
    files: List[UploadFile] = File(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    """Store files to attach to a booking, one at a time."""
    contents = []
    for upload in files:
        contents.append((upload.filename or "file", await upload.read(), upload.content_type))

    appointment_service = AppointmentService(db)
    stored = appointment_service.upload_attachments(storage, current_user.id, contents)
    return [
        UploadResponse(
            name=item.name,
            path=item.path,
            size=item.size,
            type=item.content_type,
            public_url=item.public_url,
        )
        for item in stored
    ]

@router.post("", response_model=AppointmentResponse, status_code=201)
async def book_appointment(
    appointment_data: AppointmentCreate,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Book a free slot."""
    appointment_service = AppointmentService(db)
    return appointment_service.book(current_user, appointment_data)

@router.get("/mine", response_model=List[AppointmentResponse])
async def list_my_appointments(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    appointment_service = AppointmentService(db)
    return appointment_service.list_for_patient(current_user.id)

@router.get("/schedule", response_model=List[AppointmentResponse])
async def list_my_schedule(
    day: Optional[date] = None,
    status_filter: Optional[AppointmentStatus] = None,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Appointments booked with the signed-in nutritionist."""
    appointment_service = AppointmentService(db)
    return appointment_service.search(day, status_filter, current_user.id)

@router.patch("/{appointment_id}/status", response_model=AppointmentResponse)
async def update_appointment_status(
    appointment_id: str,
    status_data: AppointmentStatusUpdate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db),
    _: None = Depends(outbox_dispatch)
):
    """Move an appointment along its status workflow."""
    appointment_service = AppointmentService(db)
    appointment = appointment_service.change_status(
        appointment_id,
        status_data.status,
        current_user.id,
        RoleResolver(db).is_admin(current_user.id),
    )

    AuditLogger().log(
        "appointment_status_changed",
        f"Appointment {appointment_id} status changed to {status_data.status.value}",
        current_user.id,
    )
    return appointment
