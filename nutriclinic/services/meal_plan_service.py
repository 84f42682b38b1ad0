from datetime import datetime
from typing import Iterable, List, Optional
import logging

from fastapi import HTTPException, status
from sqlalchemy.orm import Session

from ..core.database import SessionLocal
from ..core.security import AuthorizationError
from ..core.storage import Bucket, FileStorage, StoredFile
from ..models.meal_plan import MealPlan, MealPlanStatus
from ..models.profile import Profile
from ..schemas.meal_plan import Meal, MealPlanBase, NutrientTotals
from .outbox import NOTIFICATION, enqueue

logger = logging.getLogger(__name__)

RECENT_PLANS_LIMIT = 5

def compute_nutrient_totals(meals: Iterable[Meal]) -> NutrientTotals:
    """Sum every food item's macros across all meals."""
    totals = NutrientTotals()
    for meal in meals:
        for food in meal.foods:
            totals.calories += food.calories
            totals.protein += food.protein
            totals.carbs += food.carbs
            totals.fats += food.fats
    return totals

class MealPlanService:
    def __init__(self, db: Session, session_factory=SessionLocal):
        self.db = db
        self.session_factory = session_factory

    def get(self, plan_id: str) -> MealPlan:
        plan = self.db.query(MealPlan).filter(MealPlan.id == plan_id).first()
        if not plan:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Meal plan not found"
            )
        return plan

    def get_for_viewer(self, plan_id: str, viewer_id: str, viewer_is_staff: bool) -> MealPlan:
        plan = self.get(plan_id)
        if viewer_is_staff or plan.patient_id == viewer_id:
            return plan
        raise AuthorizationError("You cannot view this meal plan")

    def create(self, nutritionist_id: str, data: MealPlanBase) -> MealPlan:
        plan = MealPlan(nutritionist_id=nutritionist_id, status=MealPlanStatus.DRAFT)
        self._apply(plan, data)
        self.db.add(plan)
        self.db.commit()
        self.db.refresh(plan)
        logger.info(f"Meal plan {plan.id} created by {nutritionist_id}")
        return plan

    def update(self, plan_id: str, editor_id: str, editor_is_admin: bool, data: MealPlanBase) -> MealPlan:
        plan = self.get(plan_id)
        if not editor_is_admin and plan.nutritionist_id != editor_id:
            raise AuthorizationError("Only the authoring nutritionist can edit this meal plan")

        self._apply(plan, data)
        self.db.commit()
        self.db.refresh(plan)
        return plan

    def _apply(self, plan: MealPlan, data: MealPlanBase) -> None:
        totals = compute_nutrient_totals(data.meals)

        plan.title = data.title
        plan.category = data.category
        plan.patient_id = data.patient_id
        plan.content = [meal.model_dump() for meal in data.meals]
        plan.scheduled_date = data.scheduled_date
        plan.scheduled_time = data.scheduled_time
        plan.selected_groups = list(data.selected_groups)
        plan.total_calories = totals.calories
        plan.total_protein = totals.protein
        plan.total_carbs = totals.carbs
        plan.total_fats = totals.fats

    def publish(self, plan_id: str, editor_id: str, editor_is_admin: bool) -> MealPlan:
        """Publish a plan, then queue one notification per selected group.

        Notifications are best-effort and never undo the publish.
        """
        plan = self.get(plan_id)
        if not editor_is_admin and plan.nutritionist_id != editor_id:
            raise AuthorizationError("Only the authoring nutritionist can publish this meal plan")

        plan.status = MealPlanStatus.PUBLISHED
        self.db.commit()
        self.db.refresh(plan)

        queued = 0
        for group in plan.selected_groups or []:
            task_id = enqueue(NOTIFICATION, {
                "recipient": group,
                "type": "new_meal_plan",
                "title": "New meal plan available",
                "content": f'A new meal plan "{plan.title}" was published.',
                "meal_plan_id": plan.id,
            }, session_factory=self.session_factory)
            if task_id is not None:
                queued += 1

        logger.info(f"Meal plan {plan.id} published, {queued}/{len(plan.selected_groups or [])} notifications queued")
        return plan

    def list_for_patient(self, patient_id: str) -> List[MealPlan]:
        return self.db.query(MealPlan).filter(
            MealPlan.patient_id == patient_id,
            MealPlan.status == MealPlanStatus.PUBLISHED
        ).order_by(MealPlan.updated_at.desc(), MealPlan.created_at.desc()).all()

    def mark_viewed(self, plan_id: str, patient_id: str) -> MealPlan:
        """Record the first time the patient opened the plan."""
        plan = self.get(plan_id)
        if plan.patient_id != patient_id:
            raise AuthorizationError("You cannot view this meal plan")

        if plan.viewed_at is None:
            plan.viewed_at = datetime.utcnow()
            self.db.commit()
            self.db.refresh(plan)
        return plan

    def upload_image(
        self,
        storage: FileStorage,
        user_id: str,
        filename: str,
        content: bytes,
        content_type: Optional[str],
    ) -> StoredFile:
        return storage.upload(Bucket.MEAL_PLAN_IMAGES, user_id, filename, content, content_type)

    def dashboard(self, nutritionist_id: str):
        patients = self.db.query(Profile).filter(
            Profile.nutritionist_id == nutritionist_id
        ).order_by(Profile.created_at.desc()).all()

        recent = self.db.query(MealPlan).filter(
            MealPlan.nutritionist_id == nutritionist_id
        ).order_by(MealPlan.created_at.desc()).limit(RECENT_PLANS_LIMIT).all()

        return patients, recent
