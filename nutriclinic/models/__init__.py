from .user import User, RefreshToken
from .profile import Profile
from .roles import AdminUser, AdminRole, Nutritionist
from .appointment import (
    Appointment, AppointmentFile, AppointmentSlot,
    AppointmentStatus, AppointmentType, Modality
)
from .meal_plan import MealPlan, MealPlanCategory, MealPlanStatus, Notification
from .audit import AuditLog, AdminSettings, OutboxTask, OutboxStatus
