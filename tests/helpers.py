"""Shared builders for test data."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

from vertiblock.models.account import Account


def make_account(
    account_id: UUID | None = None,
    email: str = "grower@example.com",
    name: str = "Green Grower",
    profile_image: str | None = None,
) -> Account:
    """Create an Account model for tests."""
    now = datetime.now(timezone.utc)
    return Account(
        id=account_id or uuid4(),
        email=email,
        name=name,
        profile_image=profile_image,
        created_at=now,
        updated_at=now,
    )
