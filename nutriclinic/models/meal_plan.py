from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Date, Float, JSON, Enum as SQLEnum
from sqlalchemy.sql import func
import enum

from ..core.database import Base, generate_id, enum_values

class MealPlanStatus(str, enum.Enum):
    DRAFT = "draft"
    PUBLISHED = "published"

class MealPlanCategory(str, enum.Enum):
    BREAKFAST = "breakfast"
    LUNCH = "lunch"
    SNACK = "snack"
    DINNER = "dinner"

class MealPlan(Base):
    __tablename__ = "meal_plans"

    id = Column(String(36), primary_key=True, default=generate_id)
    nutritionist_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    patient_id = Column(String(36), ForeignKey("users.id"), nullable=True, index=True)

    title = Column(String(200), nullable=False)
    category = Column(SQLEnum(MealPlanCategory, values_callable=enum_values, native_enum=False, length=20), nullable=True)
    # List of meals, each holding an ordered list of food items
    content = Column(JSON, nullable=False, default=list)

    # Nutrient totals, recomputed from content on every save
    total_calories = Column(Float, nullable=False, default=0.0)
    total_protein = Column(Float, nullable=False, default=0.0)
    total_carbs = Column(Float, nullable=False, default=0.0)
    total_fats = Column(Float, nullable=False, default=0.0)

    scheduled_date = Column(Date, nullable=True)
    scheduled_time = Column(String(5), nullable=True)
    selected_groups = Column(JSON, nullable=False, default=list)
    status = Column(
        SQLEnum(MealPlanStatus, values_callable=enum_values, native_enum=False, length=20),
        nullable=False,
        default=MealPlanStatus.DRAFT
    )
    viewed_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, server_default=func.now(), index=True)
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<MealPlan(id={self.id}, title='{self.title}', status='{self.status}')>"

class Notification(Base):
    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, index=True)
    recipient = Column(String(100), nullable=False, index=True)
    type = Column(String(50), nullable=False)
    title = Column(String(200), nullable=False)
    content = Column(String(500), nullable=True)
    meal_plan_id = Column(String(36), ForeignKey("meal_plans.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    read_at = Column(DateTime, nullable=True)

    def __repr__(self):
        return f"<Notification(id={self.id}, recipient='{self.recipient}', type='{self.type}')>"
