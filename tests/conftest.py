import os

# Must be set before the application modules read their settings
os.environ["TESTING"] = "1"
os.environ["TEST_DATABASE_URL"] = "sqlite://"

import pytest
from fastapi.testclient import TestClient

from nutriclinic.main import app
from nutriclinic.core.database import Base, SessionLocal, engine, get_redis
from nutriclinic.core.storage import FileStorage, get_storage
from nutriclinic.models.profile import Profile
from nutriclinic.models.roles import AdminRole, AdminUser, Nutritionist, permissions_for
from nutriclinic.services.auth_service import AuthService

PATIENT_PASSWORD = "Patient#2024"
STAFF_PASSWORD = "Staff#Secure2024"

class FakeRedis:
    """In-memory stand-in for the handful of redis commands the app uses."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def setex(self, key, seconds, value):
        self.store[key] = str(value)
        return True

    def incr(self, key):
        self.store[key] = str(int(self.store.get(key, 0)) + 1)
        return int(self.store[key])

@pytest.fixture(scope="function")
def test_db():
    # Create tables
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)

@pytest.fixture
def fake_redis():
    redis_client = FakeRedis()
    app.dependency_overrides[get_redis] = lambda: redis_client
    yield redis_client
    app.dependency_overrides.pop(get_redis, None)

@pytest.fixture
def storage(tmp_path):
    file_storage = FileStorage(str(tmp_path), "http://testserver/storage")
    app.dependency_overrides[get_storage] = lambda: file_storage
    yield file_storage
    app.dependency_overrides.pop(get_storage, None)

@pytest.fixture
def client(test_db, fake_redis, storage):
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client

@pytest.fixture
def db(test_db):
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

def create_user(
    db,
    email,
    password=PATIENT_PASSWORD,
    full_name=None,
    role=None,
    nutritionist=False,
    with_profile=False,
    profile_completed=False,
):
    """Create an identity, optionally with a profile, admin role or nutritionist row."""
    metadata = {"full_name": full_name} if full_name else {}
    user = AuthService(db).sign_up(email, password, metadata)

    if with_profile:
        db.add(Profile(
            id=user.id,
            full_name=full_name or email.split("@")[0],
            email=email,
            is_profile_completed=profile_completed,
        ))
    if role is not None:
        db.add(AdminUser(id=user.id, role=role, permissions=permissions_for(role)))
    if nutritionist:
        db.add(Nutritionist(id=user.id, specialties=["sports"]))
    db.commit()
    db.refresh(user)
    return user

def login(client, email, password=PATIENT_PASSWORD):
    response = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    assert response.status_code == 200, response.text
    return response.json()

def auth_headers(client, email, password=PATIENT_PASSWORD):
    tokens = login(client, email, password)
    return {"Authorization": f"Bearer {tokens['access_token']}"}

@pytest.fixture
def patient(db):
    return create_user(db, "patient@example.com", full_name="Paula Patient")

@pytest.fixture
def nutritionist(db):
    return create_user(
        db, "nutri@example.com", STAFF_PASSWORD,
        full_name="Nina Nutri", nutritionist=True, with_profile=True, profile_completed=True
    )

@pytest.fixture
def admin(db):
    return create_user(
        db, "boss@example.com", STAFF_PASSWORD,
        full_name="Ada Admin", role=AdminRole.ADMIN, with_profile=True, profile_completed=True
    )

@pytest.fixture
def patient_headers(client, patient):
    return auth_headers(client, patient.email)

@pytest.fixture
def nutritionist_headers(client, nutritionist):
    return auth_headers(client, nutritionist.email, STAFF_PASSWORD)

@pytest.fixture
def admin_headers(client, admin):
    return auth_headers(client, admin.email, STAFF_PASSWORD)

@pytest.fixture
def anyio_backend():
    return "asyncio"
