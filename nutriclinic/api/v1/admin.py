from datetime import date
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...api.deps import get_admin_user, outbox_dispatch
from ...services.admin_service import AdminService
from ...services.outbox import OutboxDispatcher
from ...services.scheduling import AppointmentService
from ...schemas.admin import (
    AdminCreate, AdminPasswordReset, AdminUserItem, AllowedIP, AuditLogResponse,
    DispatchResult, OutboxTaskResponse, RoleUpdate, SecuritySettingsResponse,
    SecuritySettingsUpdate, UserEdit, UserStatusUpdate
)
from ...schemas.appointment import AppointmentResponse
from ...models.appointment import AppointmentStatus
from ...models.audit import OutboxStatus
from ...models.user import User

router = APIRouter(
    prefix="/admin",
    tags=["Administration"],
    dependencies=[Depends(outbox_dispatch)]
)

# Users

@router.get("/users", response_model=List[AdminUserItem])
async def list_users(
    search: Optional[str] = None,
    status_filter: str = Query("all", pattern="^(all|active|inactive)$"),
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """List users with their role, newest first."""
    admin_service = AdminService(db)
    return admin_service.list_users(search, status_filter)

@router.get("/users/{user_id}", response_model=AdminUserItem)
async def get_user(
    user_id: str,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    admin_service = AdminService(db)
    return admin_service.get_user(user_id)

@router.put("/users/{user_id}", response_model=AdminUserItem)
async def edit_user(
    user_id: str,
    user_data: UserEdit,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    admin_service = AdminService(db)
    return admin_service.edit_user(user_id, user_data, current_user.id)

@router.patch("/users/{user_id}/status", response_model=AdminUserItem)
async def update_user_status(
    user_id: str,
    status_data: UserStatusUpdate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Activate or deactivate a user."""
    admin_service = AdminService(db)
    return admin_service.set_status(user_id, status_data.is_active, current_user.id)

@router.patch("/users/{user_id}/role", response_model=AdminUserItem)
async def update_user_role(
    user_id: str,
    role_data: RoleUpdate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    admin_service = AdminService(db)
    return admin_service.change_role(user_id, role_data.role, current_user.id)

@router.post("/users/{user_id}/password")
async def reset_user_password(
    user_id: str,
    password_data: AdminPasswordReset,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Set a new password for a user and revoke their sessions."""
    admin_service = AdminService(db)
    admin_service.reset_password(user_id, password_data.new_password, current_user.id)
    return {"message": "Password reset successfully"}

@router.post("/admins", response_model=AdminUserItem, status_code=201)
async def create_admin(
    admin_data: AdminCreate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Create an administrative account."""
    admin_service = AdminService(db)
    user = admin_service.create_admin(admin_data, current_user.id)
    return admin_service.get_user(user.id)

# Appointments

@router.get("/appointments", response_model=List[AppointmentResponse])
async def list_appointments(
    day: Optional[date] = None,
    status_filter: Optional[AppointmentStatus] = None,
    nutritionist_id: Optional[str] = None,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    appointment_service = AppointmentService(db)
    return appointment_service.search(day, status_filter, nutritionist_id)

@router.get("/appointments/export")
async def export_appointments(
    day: Optional[date] = None,
    status_filter: Optional[AppointmentStatus] = None,
    nutritionist_id: Optional[str] = None,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Download the filtered appointment list as CSV."""
    appointment_service = AppointmentService(db)
    appointments = appointment_service.search(day, status_filter, nutritionist_id)
    filename = f"appointments-{(day or date.today()).isoformat()}.csv"
    return Response(
        content=appointment_service.export_csv(appointments),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'}
    )

# Security settings

@router.get("/security", response_model=SecuritySettingsResponse)
async def get_security_settings(
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    admin_service = AdminService(db)
    return admin_service.get_settings()

@router.patch("/security", response_model=SecuritySettingsResponse)
async def update_security_settings(
    settings_data: SecuritySettingsUpdate,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Toggle two-factor authentication or change the session timeout."""
    admin_service = AdminService(db)
    return admin_service.update_settings(settings_data, current_user.id)

@router.post("/security/allowed-ips", response_model=SecuritySettingsResponse, status_code=201)
async def add_allowed_ip(
    ip_data: AllowedIP,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    admin_service = AdminService(db)
    return admin_service.add_allowed_ip(ip_data.ip, current_user.id)

@router.delete("/security/allowed-ips", response_model=SecuritySettingsResponse)
async def remove_allowed_ip(
    ip: str,
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    admin_service = AdminService(db)
    return admin_service.remove_allowed_ip(ip, current_user.id)

# Audit trail and outbox

@router.get("/audit-logs", response_model=List[AuditLogResponse])
async def list_audit_logs(
    action: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    admin_service = AdminService(db)
    return admin_service.list_audit_logs(limit, action)

@router.get("/outbox", response_model=List[OutboxTaskResponse])
async def list_outbox_tasks(
    status_filter: Optional[OutboxStatus] = None,
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(get_admin_user),
    db: Session = Depends(get_db)
):
    """Queued side effects, newest first, with their delivery state."""
    admin_service = AdminService(db)
    return admin_service.list_outbox(status_filter, limit)

@router.post("/outbox/dispatch", response_model=DispatchResult)
async def dispatch_outbox(
    retry_failed: bool = False,
    current_user: User = Depends(get_admin_user)
):
    """Deliver pending tasks now, optionally giving failed ones another try."""
    dispatcher = OutboxDispatcher()
    if retry_failed:
        dispatcher.requeue_failed()
    stats = dispatcher.dispatch_pending()
    return DispatchResult(delivered=stats.delivered, failed=stats.failed, retried=stats.retried)
