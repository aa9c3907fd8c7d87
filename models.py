"""Authentication models.

Pydantic models for users, sign-up input, tokens and responses. These
define the data shapes used across the auth service. No business logic
lives here -- only structure.
"""
from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from rules import ONE_HOUR, TWO_HOURS

ACCESS = "access"
REFRESH = "refresh"

# Sign-up fields the caller may never set or persist.
RESERVED_FIELDS = frozenset({"id", "role", "password", "password_digest", "salt"})


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# User models
# ---------------------------------------------------------------------------

class User(BaseModel):
    """Public projection of an account, plus any extra attributes."""

    model_config = ConfigDict(extra="allow")

    id: str = Field(default_factory=_new_id)
    role: str
    email: str


class UserPrivate(User):
    """Stored account record, including the salted digest."""

    password_digest: bytes = Field(repr=False)
    salt: bytes = Field(repr=False)


class SignUpRequest(BaseModel):
    """Sign-up document. Unknown fields are kept as extra attributes."""

    model_config = ConfigDict(extra="allow")

    email: str
    password: str

    def attributes(self) -> dict:
        """Extra attributes that may be stored with the account."""
        extra = self.model_extra or {}
        return {k: v for k, v in extra.items() if k not in RESERVED_FIELDS}


# ---------------------------------------------------------------------------
# Token models
# ---------------------------------------------------------------------------

class TokenHeader(BaseModel):
    """Token header; times are epoch milliseconds."""

    typ: str
    iat: int
    exp: int
    kid: str


class TokenPayload(BaseModel):
    model_config = ConfigDict(extra="allow")

    subtype: str
    id: str
    role: str


class TokenContents(BaseModel):
    header: TokenHeader
    payload: TokenPayload


class TokenPair(BaseModel):
    """Response body for sign-in and refresh."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    access_token: str
    refresh_token: str


class TokenTTLOptions(BaseModel):
    """Token lifetimes in milliseconds."""

    access_token_ttl: int = ONE_HOUR
    refresh_token_ttl: int = TWO_HOURS
