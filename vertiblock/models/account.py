"""Account and refresh token models."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class Account(BaseModel):
    """A registered dashboard account (password hash excluded)."""

    id: UUID
    email: str
    name: Optional[str] = None
    profile_image: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class RefreshTokenRecord(BaseModel):
    """An active refresh token held by an account.

    ``id`` is the record's slot: rotation rewrites the token in place, so
    ascending ids always give the order in which records were attached.
    """

    id: Optional[int] = None
    account_id: UUID
    token: str
    expires_at: datetime
    device: str = "unknown"
    created_at: Optional[datetime] = None


class AccountView(BaseModel):
    """Client-safe view of an account, camelCase on the wire."""

    model_config = ConfigDict(populate_by_name=True)

    id: UUID
    name: Optional[str] = None
    email: str
    image: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")

    @classmethod
    def from_account(cls, account: Account) -> "AccountView":
        return cls(
            id=account.id,
            name=account.name,
            email=account.email,
            image=account.profile_image,
            created_at=account.created_at,
            updated_at=account.updated_at,
        )
