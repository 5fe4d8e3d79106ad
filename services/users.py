from __future__ import annotations

import dataclasses
import logging
from functools import lru_cache

from models.errors import BadRequest, Forbidden, InternalError
from models.users import Credentials, Token, User
from services.identity import IdentityProvider, build_default_identity_provider
from settings import get_settings

logger = logging.getLogger(__name__)


class UserService:
    """Account creation and sign-in on top of an :class:`IdentityProvider`."""

    def __init__(self, provider: IdentityProvider, role_id: str) -> None:
        self.provider = provider
        self.role_id = role_id

    def create_account(self, account: User) -> None:
        """Register ``account`` and grant it the default user role."""
        missing = [
            name for name in ("name", "email", "password") if not getattr(account, name).strip()
        ]
        if missing:
            raise BadRequest().with_msg("failed to validate request").with_details(fields=missing)

        self.provider.create_account(dataclasses.replace(account, role=self.role_id))
        user = self.provider.get_user(account.email)
        self.provider.assign_role(self.role_id, user.id)
        logger.info("Account created", extra={"user_id": user.id})

    def login(self, credentials: Credentials) -> Token:
        """Exchange credentials for a token scoped to the user's role."""
        user = self.provider.get_user(credentials.email)
        if not user.email_verified:
            raise Forbidden().with_msg("email is not verified").with_details(user_id=user.id)

        scope = self.provider.get_role_permissions(user.role)
        return self.provider.sign_in(dataclasses.replace(credentials, scope=scope))


@lru_cache
def build_default_user_service() -> UserService:
    settings = get_settings()
    if not settings.user_role_id:
        raise InternalError().with_msg("user role is not configured")
    return UserService(provider=build_default_identity_provider(), role_id=settings.user_role_id)
