from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from sqlalchemy.orm import Session

from ...core.database import get_db
from ...core.storage import FileStorage, get_storage
from ...api.deps import get_current_user, get_staff_user, outbox_dispatch
from ...services.meal_plan_service import MealPlanService
from ...services.role_resolver import RoleResolver
from ...schemas.meal_plan import (
    MealPlanCreate, MealPlanResponse, MealPlanUpdate, NutritionistDashboard
)
from ...schemas.profile import ProfileResponse, UploadResponse
from ...models.user import User

router = APIRouter(prefix="/meal-plans", tags=["Meal Plans"])
dashboard_router = APIRouter(prefix="/nutritionist", tags=["Nutritionist"])

@router.post("", response_model=MealPlanResponse, status_code=201)
async def create_meal_plan(
    plan_data: MealPlanCreate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Create a draft meal plan."""
    meal_plan_service = MealPlanService(db)
    return MealPlanResponse.from_model(meal_plan_service.create(current_user.id, plan_data))

@router.get("/mine", response_model=List[MealPlanResponse])
async def list_my_meal_plans(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """Published meal plans addressed to the signed-in patient."""
    meal_plan_service = MealPlanService(db)
    return [MealPlanResponse.from_model(plan) for plan in meal_plan_service.list_for_patient(current_user.id)]

@router.post("/images", response_model=UploadResponse)
async def upload_meal_plan_image(
    file: UploadFile = File(...),
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db),
    storage: FileStorage = Depends(get_storage)
):
    content = await file.read()
    meal_plan_service = MealPlanService(db)
    stored = meal_plan_service.upload_image(
        storage, current_user.id, file.filename or "image", content, file.content_type
    )
    return UploadResponse(
        name=stored.name,
        path=stored.path,
        size=stored.size,
        type=stored.content_type,
        public_url=stored.public_url,
    )

@router.get("/{plan_id}", response_model=MealPlanResponse)
async def get_meal_plan(
    plan_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    meal_plan_service = MealPlanService(db)
    plan = meal_plan_service.get_for_viewer(
        plan_id, current_user.id, RoleResolver(db).is_staff(current_user.id)
    )
    return MealPlanResponse.from_model(plan)

@router.put("/{plan_id}", response_model=MealPlanResponse)
async def update_meal_plan(
    plan_id: str,
    plan_data: MealPlanUpdate,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Replace a meal plan's content; totals are recomputed."""
    meal_plan_service = MealPlanService(db)
    plan = meal_plan_service.update(
        plan_id, current_user.id, RoleResolver(db).is_admin(current_user.id), plan_data
    )
    return MealPlanResponse.from_model(plan)

@router.post("/{plan_id}/publish", response_model=MealPlanResponse)
async def publish_meal_plan(
    plan_id: str,
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db),
    _: None = Depends(outbox_dispatch)
):
    """Publish a meal plan and notify its recipient groups."""
    meal_plan_service = MealPlanService(db)
    plan = meal_plan_service.publish(
        plan_id, current_user.id, RoleResolver(db).is_admin(current_user.id)
    )
    return MealPlanResponse.from_model(plan)

@router.post("/{plan_id}/viewed", response_model=MealPlanResponse)
async def mark_meal_plan_viewed(
    plan_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    meal_plan_service = MealPlanService(db)
    return MealPlanResponse.from_model(meal_plan_service.mark_viewed(plan_id, current_user.id))

@dashboard_router.get("/dashboard", response_model=NutritionistDashboard)
async def nutritionist_dashboard(
    current_user: User = Depends(get_staff_user),
    db: Session = Depends(get_db)
):
    """Assigned patients and the most recent meal plans."""
    meal_plan_service = MealPlanService(db)
    patients, recent = meal_plan_service.dashboard(current_user.id)
    return NutritionistDashboard(
        patients=[ProfileResponse.model_validate(profile) for profile in patients],
        recent_meal_plans=[MealPlanResponse.from_model(plan) for plan in recent],
    )
