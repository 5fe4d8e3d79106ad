"""Identity provider integration for accounts, roles and sign-in."""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from threading import Lock
from typing import Any, Dict, Optional, Protocol

import httpx

from models.errors import AlreadyExists, BadRequest, Forbidden, InternalError, NotFound
from models.users import Credentials, Token, User
from settings import get_settings

logger = logging.getLogger(__name__)

_PASSWORD_REALM_GRANT = "http://auth0.com/oauth/grant-type/password-realm"
_CONNECTION = "Username-Password-Authentication"
# Refresh the management token this many seconds before it expires.
_TOKEN_LEEWAY = 30.0


class IdentityProvider(Protocol):
    def create_account(self, account: User) -> None:
        ...

    def get_user(self, email: str) -> User:
        ...

    def assign_role(self, role_id: str, user_id: str) -> None:
        ...

    def get_role_permissions(self, role_id: str) -> str:
        ...

    def sign_in(self, credentials: Credentials) -> Token:
        ...

    def close(self) -> None:
        ...


class Auth0IdentityProvider:
    """Talks to the Auth0 management and authentication APIs over HTTP.

    Management calls authenticate with a client-credentials token that is
    fetched lazily and reused until shortly before it expires.
    """

    def __init__(
        self,
        domain: str,
        client_id: str,
        client_secret: str,
        audience: Optional[str] = None,
        realm: str = _CONNECTION,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ) -> None:
        base_url = domain if domain.startswith("http") else f"https://{domain}"
        self.base_url = base_url.rstrip("/")
        self.client_id = client_id
        self.client_secret = client_secret
        self.audience = audience
        self.realm = realm
        self._client = client or httpx.Client(base_url=self.base_url, timeout=timeout)
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = Lock()

    def create_account(self, account: User) -> None:
        try:
            self._management(
                "POST",
                "/api/v2/users",
                json={
                    "connection": _CONNECTION,
                    "name": account.name,
                    "email": account.email,
                    "password": account.password,
                    "verify_email": True,
                    "user_metadata": {"role": account.role},
                },
            )
        except httpx.HTTPStatusError as exc:
            if exc.response.status_code == 409:
                raise AlreadyExists().with_details(email=account.email).with_err(exc) from exc
            raise InternalError().with_msg("failed to create account").with_details(
                status=exc.response.status_code
            ).with_err(exc) from exc

    def get_user(self, email: str) -> User:
        try:
            response = self._management(
                "GET", "/api/v2/users-by-email", params={"email": email.lower()}
            )
        except httpx.HTTPStatusError as exc:
            raise InternalError().with_msg(
                "failed retrieving users with provided email"
            ).with_err(exc) from exc

        users = response.json()
        if not users:
            raise NotFound().with_msg("user not found").with_details(email=email)
        found = users[0]
        return User(
            id=found.get("user_id", ""),
            name=found.get("name", ""),
            email=found.get("email", ""),
            role=(found.get("user_metadata") or {}).get("role", ""),
            email_verified=bool(found.get("email_verified", False)),
        )

    def assign_role(self, role_id: str, user_id: str) -> None:
        try:
            self._management("POST", f"/api/v2/roles/{role_id}/users", json={"users": [user_id]})
        except httpx.HTTPStatusError as exc:
            raise InternalError().with_msg("failed to assign role to user").with_details(
                role_id=role_id, user_id=user_id
            ).with_err(exc) from exc

    def get_role_permissions(self, role_id: str) -> str:
        try:
            response = self._management("GET", f"/api/v2/roles/{role_id}/permissions")
        except httpx.HTTPStatusError as exc:
            raise InternalError().with_msg("failed to retrieve role permissions").with_details(
                role_id=role_id
            ).with_err(exc) from exc
        return " ".join(item["permission_name"] for item in response.json())

    def sign_in(self, credentials: Credentials) -> Token:
        body: Dict[str, Any] = {
            "grant_type": _PASSWORD_REALM_GRANT,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
            "username": credentials.email,
            "password": credentials.password,
            "scope": credentials.scope,
            "realm": self.realm,
        }
        if self.audience:
            body["audience"] = self.audience
        try:
            response = self._client.post("/oauth/token", json=body)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status == 400:
                raise BadRequest().with_err(exc) from exc
            if status == 403:
                raise Forbidden().with_err(exc) from exc
            raise InternalError().with_msg("failed to login").with_details(
                status=status
            ).with_err(exc) from exc
        except httpx.HTTPError as exc:
            raise InternalError().with_msg("failed to reach identity provider").with_err(
                exc
            ) from exc

        data = response.json()
        return Token(
            access_token=data["access_token"],
            id_token=data.get("id_token", ""),
            refresh_token=data.get("refresh_token", ""),
            expires_in=int(data.get("expires_in", 0)),
        )

    def close(self) -> None:
        self._client.close()

    def _management(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        headers = {"Authorization": f"Bearer {self._management_token()}"}
        try:
            response = self._client.request(method, path, headers=headers, **kwargs)
        except httpx.HTTPError as exc:
            raise InternalError().with_msg("failed to reach identity provider").with_err(
                exc
            ) from exc
        response.raise_for_status()
        return response

    def _management_token(self) -> str:
        with self._token_lock:
            if self._token and time.monotonic() < self._token_expires_at:
                return self._token
            try:
                response = self._client.post(
                    "/oauth/token",
                    json={
                        "grant_type": "client_credentials",
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                        "audience": f"{self.base_url}/api/v2/",
                    },
                )
                response.raise_for_status()
            except httpx.HTTPError as exc:
                raise InternalError().with_msg(
                    "failed to authenticate with identity provider"
                ).with_err(exc) from exc
            data = response.json()
            self._token = data["access_token"]
            expires_in = float(data.get("expires_in", 0))
            self._token_expires_at = time.monotonic() + max(expires_in - _TOKEN_LEEWAY, 0.0)
            logger.debug("Refreshed identity provider management token")
            return self._token


@lru_cache
def build_default_identity_provider() -> IdentityProvider:
    settings = get_settings()
    if not settings.auth0_domain or not settings.auth0_client_id:
        raise InternalError().with_msg("identity provider is not configured")
    return Auth0IdentityProvider(
        domain=settings.auth0_domain,
        client_id=settings.auth0_client_id,
        client_secret=settings.auth0_client_secret or "",
        audience=settings.auth_audience,
        realm=settings.auth_realm,
    )
