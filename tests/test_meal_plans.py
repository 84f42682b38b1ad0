import pytest

from nutriclinic.models.meal_plan import Notification
from nutriclinic.models.profile import Profile
from nutriclinic.schemas.meal_plan import FoodItem, Meal
from nutriclinic.services.meal_plan_service import compute_nutrient_totals

from .conftest import auth_headers, create_user

def sample_meals():
    return [
        {
            "time": "07:30",
            "name": "Breakfast",
            "foods": [
                {"name": "Oats", "portion": "40g", "calories": 150, "protein": 5, "carbs": 27, "fats": 3},
                {"name": "Banana", "portion": "1 unit", "calories": 105, "protein": 1.3, "carbs": 27, "fats": 0.4},
            ],
        },
        {
            "time": "12:30",
            "name": "Lunch",
            "foods": [
                {"name": "Rice", "portion": "100g", "calories": 130, "protein": 2.7, "carbs": 28, "fats": 0.3},
                {"name": "Chicken", "portion": "120g", "calories": 198, "protein": 37, "carbs": 0, "fats": 4.3},
            ],
        },
    ]

def plan_payload(patient_id=None, **overrides):
    data = {
        "title": "Week 1",
        "category": "lunch",
        "patient_id": patient_id,
        "meals": sample_meals(),
        "scheduled_date": "2030-01-07",
        "scheduled_time": "08:00",
        "selected_groups": ["all_patients", "weight_loss_group"],
    }
    data.update(overrides)
    return data

class TestNutrientTotals:

    def test_sums_every_food(self):
        meals = [Meal(**meal) for meal in sample_meals()]
        totals = compute_nutrient_totals(meals)

        assert totals.calories == pytest.approx(583)
        assert totals.protein == pytest.approx(46)
        assert totals.carbs == pytest.approx(82)
        assert totals.fats == pytest.approx(8)

    def test_idempotent(self):
        meals = [Meal(**meal) for meal in sample_meals()]
        assert compute_nutrient_totals(meals) == compute_nutrient_totals(meals)

    def test_empty_plan(self):
        totals = compute_nutrient_totals([Meal(name="Snack", foods=[])])
        assert totals.calories == 0

    def test_negative_macros_rejected(self):
        with pytest.raises(ValueError):
            FoodItem(name="Bad", calories=-1)

class TestMealPlanEndpoints:

    def test_create_computes_totals(self, client, patient, nutritionist_headers):
        response = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=nutritionist_headers)
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "draft"
        assert data["totals"]["calories"] == pytest.approx(583)
        assert len(data["meals"]) == 2
        assert all(food["id"] for meal in data["meals"] for food in meal["foods"])

    def test_patient_cannot_create(self, client, patient, patient_headers):
        response = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=patient_headers)
        assert response.status_code == 403

    def test_update_recomputes_totals(self, client, patient, nutritionist_headers):
        plan = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=nutritionist_headers).json()

        meals = sample_meals()[:1]
        response = client.put(
            f"/api/v1/meal-plans/{plan['id']}",
            json=plan_payload(patient.id, meals=meals, title="Week 1 (light)"),
            headers=nutritionist_headers
        )
        assert response.status_code == 200
        assert response.json()["title"] == "Week 1 (light)"
        assert response.json()["totals"]["calories"] == pytest.approx(255)

    def test_only_author_updates(self, client, db, patient, nutritionist_headers, admin_headers):
        plan = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=nutritionist_headers).json()
        create_user(db, "other.nutri@example.com", nutritionist=True)

        response = client.put(
            f"/api/v1/meal-plans/{plan['id']}",
            json=plan_payload(patient.id),
            headers=auth_headers(client, "other.nutri@example.com")
        )
        assert response.status_code == 403

        response = client.put(f"/api/v1/meal-plans/{plan['id']}", json=plan_payload(patient.id), headers=admin_headers)
        assert response.status_code == 200

    def test_invalid_scheduled_time(self, client, nutritionist_headers):
        response = client.post(
            "/api/v1/meal-plans", json=plan_payload(scheduled_time="25:00"), headers=nutritionist_headers
        )
        assert response.status_code == 422

    def test_publish_notifies_each_group(self, client, db, patient, nutritionist_headers):
        plan = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=nutritionist_headers).json()

        response = client.post(f"/api/v1/meal-plans/{plan['id']}/publish", headers=nutritionist_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "published"

        notifications = db.query(Notification).filter(Notification.meal_plan_id == plan["id"]).all()
        assert sorted(n.recipient for n in notifications) == ["all_patients", "weight_loss_group"]
        assert all(n.type == "new_meal_plan" for n in notifications)

    def test_publish_survives_notification_failure(self, client, monkeypatch, patient, nutritionist_headers):
        """A failing outbox never undoes the publish."""
        plan = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=nutritionist_headers).json()
        monkeypatch.setattr("nutriclinic.services.meal_plan_service.enqueue", lambda *args, **kwargs: None)

        response = client.post(f"/api/v1/meal-plans/{plan['id']}/publish", headers=nutritionist_headers)
        assert response.status_code == 200
        assert response.json()["status"] == "published"

    def test_patient_sees_published_plans_only(self, client, patient, patient_headers, nutritionist_headers):
        draft = client.post("/api/v1/meal-plans", json=plan_payload(patient.id, title="Draft"), headers=nutritionist_headers).json()
        published = client.post("/api/v1/meal-plans", json=plan_payload(patient.id, title="Live"), headers=nutritionist_headers).json()
        client.post(f"/api/v1/meal-plans/{published['id']}/publish", headers=nutritionist_headers)

        mine = client.get("/api/v1/meal-plans/mine", headers=patient_headers).json()
        assert [plan["id"] for plan in mine] == [published["id"]]
        assert draft["id"] not in [plan["id"] for plan in mine]

    def test_mark_viewed_once(self, client, patient, patient_headers, nutritionist_headers):
        plan = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=nutritionist_headers).json()

        first = client.post(f"/api/v1/meal-plans/{plan['id']}/viewed", headers=patient_headers).json()
        second = client.post(f"/api/v1/meal-plans/{plan['id']}/viewed", headers=patient_headers).json()

        assert first["viewed_at"] is not None
        assert second["viewed_at"] == first["viewed_at"]

    def test_viewing_other_patients_plan(self, client, db, patient, nutritionist_headers):
        plan = client.post("/api/v1/meal-plans", json=plan_payload(patient.id), headers=nutritionist_headers).json()
        create_user(db, "nosy@example.com")
        headers = auth_headers(client, "nosy@example.com")

        assert client.get(f"/api/v1/meal-plans/{plan['id']}", headers=headers).status_code == 403
        assert client.post(f"/api/v1/meal-plans/{plan['id']}/viewed", headers=headers).status_code == 403

    def test_missing_plan(self, client, nutritionist_headers):
        response = client.get("/api/v1/meal-plans/does-not-exist", headers=nutritionist_headers)
        assert response.status_code == 404

    def test_upload_image(self, client, nutritionist_headers):
        response = client.post(
            "/api/v1/meal-plans/images",
            files={"file": ("bowl.webp", b"RIFF0000WEBP", "image/webp")},
            headers=nutritionist_headers
        )
        assert response.status_code == 200
        assert "/meal_plan_images/" in response.json()["public_url"]

class TestNutritionistDashboard:

    def test_dashboard(self, client, db, patient, nutritionist, nutritionist_headers):
        db.add(Profile(id=patient.id, full_name="Paula Patient", email=patient.email, nutritionist_id=nutritionist.id))
        db.commit()
        for week in range(7):
            client.post(
                "/api/v1/meal-plans", json=plan_payload(patient.id, title=f"Week {week}"), headers=nutritionist_headers
            )

        response = client.get("/api/v1/nutritionist/dashboard", headers=nutritionist_headers)
        assert response.status_code == 200
        data = response.json()
        assert [p["id"] for p in data["patients"]] == [patient.id]
        assert len(data["recent_meal_plans"]) == 5

    def test_patients_cannot_open_dashboard(self, client, patient_headers):
        response = client.get("/api/v1/nutritionist/dashboard", headers=patient_headers)
        assert response.status_code == 403
