from datetime import date
from typing import Any, Dict, Optional
import logging

import httpx

from ..schemas.auth import UserRegister
from ..schemas.profile import ProfileCustomize
from .routing import RouteGuard
from .session import Session, SessionContext, SessionEvent

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

class ClientError(Exception):
    def __init__(self, status_code: int, detail: Any):
        super().__init__(f"{status_code}: {detail}")
        self.status_code = status_code
        self.detail = detail

class NutriClinicClient:
    """Async API client that keeps a SessionContext and a RouteGuard in step.

    Inputs are validated with the same models the server uses before any
    request is sent.
    """

    def __init__(
        self,
        base_url: str,
        context: Optional[SessionContext] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        access_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ):
        self.context = context or SessionContext()
        self.guard = RouteGuard(self.context)
        self._access_token = access_token
        self._refresh_token = refresh_token
        self._http = httpx.AsyncClient(base_url=base_url.rstrip("/") + API_PREFIX, transport=transport)

    async def _request(self, method: str, url: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self._access_token:
            headers["Authorization"] = f"Bearer {self._access_token}"

        response = await self._http.request(method, url, headers=headers, **kwargs)
        if response.status_code >= 400:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = response.text
            raise ClientError(response.status_code, detail)
        return response.json()

    def _session_from_tokens(self, data: Dict[str, Any]) -> Session:
        self._access_token = data["access_token"]
        self._refresh_token = data["refresh_token"]
        return Session(
            user_id=data["user"]["id"],
            email=data["user"]["email"],
            access_token=self._access_token,
            refresh_token=self._refresh_token,
        )

    async def initialize(self) -> Optional[Session]:
        """Restore the current session. Never raises; failures mean no session."""
        session = None
        if self._access_token:
            try:
                data = await self._request("GET", "/auth/session")
            except (httpx.HTTPError, ClientError) as e:
                logger.error(f"Error retrieving session: {str(e)}")
                data = {}

            info = data.get("session")
            if info:
                session = Session(
                    user_id=info["user_id"],
                    email=info.get("email"),
                    access_token=self._access_token,
                    refresh_token=self._refresh_token,
                    expires_at=info.get("expires_at"),
                )

        self.context.apply(SessionEvent.INITIAL_SESSION, session)
        return session

    async def sign_in(self, email: str, password: str) -> str:
        """Sign in and navigate to the role-specific landing route."""
        data = await self._request("POST", "/auth/login", json={"email": email, "password": password})
        self.context.apply(SessionEvent.SIGNED_IN, self._session_from_tokens(data))
        return self.guard.navigate(data["destination"])

    async def sign_up(
        self,
        full_name: str,
        email: str,
        password: str,
        confirm_password: str,
        birth_date: Optional[date] = None,
        phone: Optional[str] = None,
    ) -> Dict[str, Any]:
        registration = UserRegister(
            full_name=full_name,
            email=email,
            password=password,
            confirm_password=confirm_password,
            birth_date=birth_date,
            phone=phone,
        )
        return await self._request("POST", "/auth/register", json=registration.model_dump(mode="json"))

    async def refresh(self) -> Session:
        data = await self._request("POST", "/auth/refresh", json={"refresh_token": self._refresh_token})
        session = self._session_from_tokens(data)
        self.context.apply(SessionEvent.TOKEN_REFRESHED, session)
        return session

    async def sign_out(self) -> None:
        """Revoke the refresh token and drop the local session."""
        if self._refresh_token:
            try:
                await self._request("POST", "/auth/logout", json={"refresh_token": self._refresh_token})
            except (httpx.HTTPError, ClientError) as e:
                logger.warning(f"Logout request failed, clearing local session anyway: {str(e)}")

        self._access_token = None
        self._refresh_token = None
        self.context.apply(SessionEvent.SIGNED_OUT, None)

    async def destination(self) -> str:
        data = await self._request("GET", "/auth/destination")
        return data["destination"]

    async def get_profile(self) -> Dict[str, Any]:
        return await self._request("GET", "/profiles/me")

    async def customize_profile(self, customization: ProfileCustomize) -> str:
        """Submit the first-run customization and go to the resulting route."""
        await self._request("POST", "/profiles/me/customize", json=customization.model_dump(mode="json"))
        self.context.apply(SessionEvent.USER_UPDATED, self.context.session)
        return self.guard.navigate(await self.destination())

    async def aclose(self) -> None:
        self.guard.close()
        await self._http.aclose()
