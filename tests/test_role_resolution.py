from sqlalchemy.exc import OperationalError

from nutriclinic.models.profile import Profile
from nutriclinic.models.roles import AdminRole
from nutriclinic.services.role_resolver import Destination, RoleResolver, UserKind, destination_for

from .conftest import STAFF_PASSWORD, create_user, login

class TestRoleResolver:

    def test_plain_identity_is_patient(self, db):
        user = create_user(db, "plain@example.com")
        assert RoleResolver(db).resolve(user.id) == UserKind.PATIENT

    def test_admin_roles_resolve_to_admin(self, db):
        admin = create_user(db, "a@example.com", role=AdminRole.ADMIN)
        super_admin = create_user(db, "s@example.com", role=AdminRole.SUPER_ADMIN)

        resolver = RoleResolver(db)
        assert resolver.resolve(admin.id) == UserKind.ADMIN
        assert resolver.resolve(super_admin.id) == UserKind.ADMIN

    def test_admin_wins_over_nutritionist_row(self, db):
        user = create_user(db, "both@example.com", role=AdminRole.SUPER_ADMIN, nutritionist=True)
        assert RoleResolver(db).resolve(user.id) == UserKind.ADMIN

    def test_nutritionist_membership(self, db):
        user = create_user(db, "n@example.com", nutritionist=True)
        assert RoleResolver(db).resolve(user.id) == UserKind.NUTRITIONIST

    def test_nutritionist_admin_role(self, db):
        user = create_user(db, "nrole@example.com", role=AdminRole.NUTRITIONIST)
        resolver = RoleResolver(db)
        assert resolver.resolve(user.id) == UserKind.NUTRITIONIST
        assert resolver.is_staff(user.id)
        assert not resolver.is_admin(user.id)

    def test_lookup_errors_fall_through_to_patient(self, db, monkeypatch):
        """A failing role query is treated as no row."""
        user = create_user(db, "flaky@example.com", role=AdminRole.ADMIN, nutritionist=True)

        def broken_query(*args, **kwargs):
            raise OperationalError("SELECT", {}, Exception("connection lost"))

        monkeypatch.setattr(db, "query", broken_query)
        assert RoleResolver(db).resolve(user.id) == UserKind.PATIENT

    def test_destinations(self):
        assert destination_for(UserKind.ADMIN) == Destination.ADMIN_DASHBOARD
        assert destination_for(UserKind.NUTRITIONIST) == Destination.NUTRITIONIST_DASHBOARD
        assert destination_for(UserKind.PATIENT) is None

class TestLoginDestination:

    def test_admin_lands_on_admin_dashboard(self, client, db):
        create_user(db, "admin@example.com", STAFF_PASSWORD, role=AdminRole.ADMIN, nutritionist=True)
        assert login(client, "admin@example.com", STAFF_PASSWORD)["destination"] == "/admin/dashboard"

    def test_admin_login_does_not_create_profile(self, client, db):
        user = create_user(db, "admin@example.com", STAFF_PASSWORD, role=AdminRole.ADMIN)
        login(client, "admin@example.com", STAFF_PASSWORD)
        assert db.query(Profile).filter(Profile.id == user.id).count() == 0

    def test_nutritionist_lands_on_nutritionist_dashboard(self, client, db):
        create_user(db, "nutri@example.com", STAFF_PASSWORD, nutritionist=True)
        assert login(client, "nutri@example.com", STAFF_PASSWORD)["destination"] == "/nutritionist/dashboard"

    def test_completed_patient_lands_on_profile(self, client, db):
        create_user(db, "done@example.com", with_profile=True, profile_completed=True)
        assert login(client, "done@example.com")["destination"] == "/profile"

    def test_destination_endpoint(self, client, db):
        create_user(db, "nutri@example.com", STAFF_PASSWORD, nutritionist=True)
        tokens = login(client, "nutri@example.com", STAFF_PASSWORD)

        response = client.get(
            "/api/v1/auth/destination",
            headers={"Authorization": f"Bearer {tokens['access_token']}"}
        )
        assert response.status_code == 200
        assert response.json() == {"role": "nutritionist", "destination": "/nutritionist/dashboard"}
