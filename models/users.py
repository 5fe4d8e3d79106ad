"""Account and token models exchanged with the identity provider."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class User:
    name: str
    email: str
    password: str = ""
    id: str = ""
    role: str = ""
    email_verified: bool = False


@dataclass(slots=True)
class Credentials:
    email: str
    password: str
    scope: str = ""


@dataclass(frozen=True, slots=True)
class Token:
    access_token: str
    id_token: str = ""
    refresh_token: str = ""
    expires_in: int = 0
