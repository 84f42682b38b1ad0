from datetime import date, datetime
from typing import List, Optional
import uuid

from pydantic import BaseModel, Field, field_validator

from ..core.validators import validate_time
from ..models.meal_plan import MealPlanCategory, MealPlanStatus
from .profile import ProfileResponse

class FoodItem(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    portion: str = ""
    calories: float = Field(0, ge=0)
    protein: float = Field(0, ge=0)
    carbs: float = Field(0, ge=0)
    fats: float = Field(0, ge=0)
    notes: Optional[str] = None

class Meal(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    time: str = ""
    name: str = ""
    foods: List[FoodItem] = []
    notes: Optional[str] = None
    image_url: Optional[str] = None

class NutrientTotals(BaseModel):
    calories: float = 0
    protein: float = 0
    carbs: float = 0
    fats: float = 0

class MealPlanBase(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    category: Optional[MealPlanCategory] = None
    patient_id: Optional[str] = None
    meals: List[Meal] = []
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    selected_groups: List[str] = []

    @field_validator("scheduled_time")
    @classmethod
    def time_format(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not validate_time(value):
            raise ValueError("Time must use the HH:MM format")
        return value

class MealPlanCreate(MealPlanBase):
    pass

class MealPlanUpdate(MealPlanBase):
    pass

class MealPlanResponse(BaseModel):
    id: str
    nutritionist_id: str
    patient_id: Optional[str] = None
    title: str
    category: Optional[MealPlanCategory] = None
    meals: List[Meal] = []
    totals: NutrientTotals
    scheduled_date: Optional[date] = None
    scheduled_time: Optional[str] = None
    selected_groups: List[str] = []
    status: MealPlanStatus
    viewed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, plan) -> "MealPlanResponse":
        return cls(
            id=plan.id,
            nutritionist_id=plan.nutritionist_id,
            patient_id=plan.patient_id,
            title=plan.title,
            category=plan.category,
            meals=plan.content or [],
            totals=NutrientTotals(
                calories=plan.total_calories,
                protein=plan.total_protein,
                carbs=plan.total_carbs,
                fats=plan.total_fats,
            ),
            scheduled_date=plan.scheduled_date,
            scheduled_time=plan.scheduled_time,
            selected_groups=plan.selected_groups or [],
            status=plan.status,
            viewed_at=plan.viewed_at,
            created_at=plan.created_at,
            updated_at=plan.updated_at,
        )

class NutritionistDashboard(BaseModel):
    patients: List[ProfileResponse]
    recent_meal_plans: List[MealPlanResponse]
