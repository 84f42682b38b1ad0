import httpx
import pytest
from pydantic import ValidationError

from nutriclinic.client import ClientError, NutriClinicClient, RouteGuard, Session, SessionContext, SessionEvent, resolve
from nutriclinic.main import app
from nutriclinic.models.roles import AdminRole
from nutriclinic.schemas.profile import ProfileCustomize

from .conftest import PATIENT_PASSWORD, STAFF_PASSWORD, create_user

ANA = Session(user_id="user-1", email="ana@example.com", access_token="a1")

@pytest.fixture
def api_client(test_db, fake_redis, storage):
    return NutriClinicClient("http://testserver", transport=httpx.ASGITransport(app=app))

class TestSessionContext:

    def test_listeners_hear_identity_changes_only(self):
        context = SessionContext()
        events = []
        context.subscribe(lambda event, session: events.append(event))

        assert context.apply(SessionEvent.INITIAL_SESSION, None) is False
        assert context.apply(SessionEvent.SIGNED_IN, ANA) is True
        refreshed = Session(user_id="user-1", email="ana@example.com", access_token="a2")
        assert context.apply(SessionEvent.TOKEN_REFRESHED, refreshed) is False
        assert context.apply(SessionEvent.USER_UPDATED, refreshed) is False
        assert context.apply(SessionEvent.SIGNED_OUT, refreshed) is True

        assert events == [SessionEvent.SIGNED_IN, SessionEvent.SIGNED_OUT]

    def test_state_is_replaced_even_without_notification(self):
        context = SessionContext(ANA)
        refreshed = Session(user_id="user-1", access_token="a2")
        context.apply(SessionEvent.TOKEN_REFRESHED, refreshed)
        assert context.session.access_token == "a2"

    def test_unsubscribe(self):
        context = SessionContext()
        events = []
        unsubscribe = context.subscribe(lambda event, session: events.append(event))
        unsubscribe()
        unsubscribe()

        context.apply(SessionEvent.SIGNED_IN, ANA)
        assert events == []

    def test_switching_users_notifies(self):
        context = SessionContext(ANA)
        seen = []
        context.subscribe(lambda event, session: seen.append(session.user_id))

        context.apply(SessionEvent.SIGNED_IN, Session(user_id="user-2"))
        assert seen == ["user-2"]

class TestRouting:

    @pytest.mark.parametrize("path", ["/login", "/register", "/reset-password"])
    def test_auth_only_routes(self, path):
        assert resolve(path, None) == path
        assert resolve(path, ANA) == "/profile"

    @pytest.mark.parametrize("path", [
        "/profile", "/profile/customize", "/admin/dashboard", "/admin/users",
        "/nutritionist/dashboard", "/meal-plans/new", "/meal-plans/abc-123",
    ])
    def test_protected_routes(self, path):
        assert resolve(path, None) == "/login"
        assert resolve(path, ANA) == path

    def test_root_and_unknown(self):
        assert resolve("/", None) == "/login"
        assert resolve("/", ANA) == "/profile"
        assert resolve("/nowhere", ANA) == "/"
        assert resolve("/profile/", ANA) == "/profile"

    def test_guard_follows_redirects(self):
        context = SessionContext()
        guard = RouteGuard(context)
        assert guard.navigate("/nowhere") == "/login"

    def test_guard_reevaluates_on_sign_out(self):
        context = SessionContext(ANA)
        visited = []
        guard = RouteGuard(context, on_navigate=visited.append)
        guard.navigate("/admin/dashboard")

        context.apply(SessionEvent.SIGNED_OUT, None)
        assert guard.location == "/login"
        assert visited == ["/admin/dashboard", "/login"]

    def test_guard_ignores_token_refresh(self):
        context = SessionContext(ANA)
        visited = []
        guard = RouteGuard(context, on_navigate=visited.append)
        guard.navigate("/profile")

        context.apply(SessionEvent.TOKEN_REFRESHED, Session(user_id="user-1", access_token="a2"))
        assert visited == ["/profile"]

    def test_closed_guard_stops_listening(self):
        context = SessionContext(ANA)
        guard = RouteGuard(context)
        guard.navigate("/profile")
        guard.close()

        context.apply(SessionEvent.SIGNED_OUT, None)
        assert guard.location == "/profile"

class TestClient:

    @pytest.mark.anyio
    async def test_initialize_without_tokens(self, api_client):
        assert await api_client.initialize() is None
        assert api_client.context.session is None
        await api_client.aclose()

    @pytest.mark.anyio
    async def test_initialize_with_stale_token(self, test_db, fake_redis):
        client = NutriClinicClient(
            "http://testserver", transport=httpx.ASGITransport(app=app), access_token="expired"
        )
        assert await client.initialize() is None
        await client.aclose()

    @pytest.mark.anyio
    async def test_initialize_transport_failure(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        client = NutriClinicClient(
            "http://testserver", transport=httpx.MockTransport(refuse), access_token="token"
        )
        assert await client.initialize() is None
        await client.aclose()

    @pytest.mark.anyio
    async def test_sign_in_routes_by_role(self, api_client, db):
        create_user(db, "boss@example.com", STAFF_PASSWORD, role=AdminRole.ADMIN)

        destination = await api_client.sign_in("boss@example.com", STAFF_PASSWORD)

        assert destination == "/admin/dashboard"
        assert api_client.guard.location == "/admin/dashboard"
        assert api_client.context.session.email == "boss@example.com"
        await api_client.aclose()

    @pytest.mark.anyio
    async def test_bad_credentials(self, api_client, db):
        create_user(db, "ana@example.com")
        with pytest.raises(ClientError) as exc_info:
            await api_client.sign_in("ana@example.com", "Wrong#Pass1")
        assert exc_info.value.status_code == 401
        assert api_client.context.session is None
        await api_client.aclose()

    @pytest.mark.anyio
    async def test_sign_up_validates_before_sending(self, test_db):
        def unreachable(request):
            raise AssertionError("request should not be sent")

        client = NutriClinicClient("http://testserver", transport=httpx.MockTransport(unreachable))
        with pytest.raises(ValidationError):
            await client.sign_up("Ana", "ana@example.com", "short", "short")
        await client.aclose()

    @pytest.mark.anyio
    async def test_refresh_keeps_route(self, api_client, db):
        create_user(db, "ana@example.com", with_profile=True, profile_completed=True)
        await api_client.sign_in("ana@example.com", PATIENT_PASSWORD)
        before = api_client.context.session

        session = await api_client.refresh()

        assert session.user_id == before.user_id
        assert session.refresh_token != before.refresh_token
        assert api_client.guard.location == "/profile"
        await api_client.aclose()

    @pytest.mark.anyio
    async def test_sign_out_redirects_to_login(self, api_client, db):
        create_user(db, "ana@example.com", with_profile=True, profile_completed=True)
        await api_client.sign_in("ana@example.com", PATIENT_PASSWORD)

        await api_client.sign_out()

        assert api_client.context.session is None
        assert api_client.guard.location == "/login"
        await api_client.aclose()

    @pytest.mark.anyio
    async def test_onboarding_end_to_end(self, api_client):
        """Sign up, land on customization, customize, land on the profile."""
        await api_client.sign_up("Ana", "ana.silva@example.com", "ana12345!", "ana12345!")
        assert await api_client.initialize() is None

        destination = await api_client.sign_in("ana.silva@example.com", "ana12345!")
        assert destination == "/profile/customize"

        destination = await api_client.customize_profile(
            ProfileCustomize(full_name="Ana Silva", username="ana123", interests=["vegan"])
        )
        assert destination == "/profile"

        profile = await api_client.get_profile()
        assert profile["full_name"] == "Ana Silva"
        assert profile["is_profile_completed"] is True
        await api_client.aclose()
