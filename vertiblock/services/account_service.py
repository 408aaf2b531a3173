"""Account persistence service."""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import asyncpg
import structlog

from vertiblock.database import get_pool
from vertiblock.errors import AccountExistsError, EmailAlreadyExistsError
from vertiblock.models.account import Account

logger = structlog.get_logger(__name__)

_ACCOUNT_COLUMNS = "id, email, name, profile_image, created_at, updated_at"


def _account_from_row(row) -> Account:
    return Account(
        id=row["id"],
        email=row["email"],
        name=row["name"],
        profile_image=row["profile_image"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class AccountService:
    """Service for account CRUD operations."""

    async def create_account(
        self,
        email: str,
        password_hash: str,
        name: Optional[str] = None,
        profile_image: Optional[str] = None,
    ) -> Account:
        """Insert a new account.

        Args:
            email: Unique email, stored exactly as given
            password_hash: Bcrypt hash of the account password
            name: Display name
            profile_image: Optional profile image reference

        Returns:
            Created Account model

        Raises:
            AccountExistsError: If the email is already registered
        """
        account_id = uuid4()
        now = datetime.now(timezone.utc)

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO accounts (id, email, password_hash, name, profile_image, created_at, updated_at)
                    VALUES ($1, $2, $3, $4, $5, $6, $7)
                    """,
                    account_id,
                    email,
                    password_hash,
                    name,
                    profile_image,
                    now,
                    now,
                )
        except asyncpg.UniqueViolationError:
            logger.warning("account_create_duplicate_email")
            raise AccountExistsError()

        logger.info("account_created", account_id=str(account_id))

        return Account(
            id=account_id,
            email=email,
            name=name,
            profile_image=profile_image,
            created_at=now,
            updated_at=now,
        )

    async def get_by_email(self, email: str) -> Optional[tuple[Account, str]]:
        """Get an account by exact email.

        Returns:
            Tuple of (Account, password_hash) or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_ACCOUNT_COLUMNS}, password_hash
                FROM accounts
                WHERE email = $1
                """,
                email,
            )

        if row is None:
            return None

        return _account_from_row(row), row["password_hash"]

    async def get_by_id(self, account_id: UUID) -> Optional[Account]:
        """Get an account by UUID.

        Returns:
            Account model or None if not found
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"SELECT {_ACCOUNT_COLUMNS} FROM accounts WHERE id = $1",
                account_id,
            )

        if row is None:
            return None

        return _account_from_row(row)

    async def email_taken_by_other(self, email: str, account_id: UUID) -> bool:
        """Check whether a different account already uses ``email``."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            other_id = await conn.fetchval(
                "SELECT id FROM accounts WHERE email = $1 AND id <> $2",
                email,
                account_id,
            )

        return other_id is not None

    async def update_account(
        self,
        account_id: UUID,
        name: Optional[str] = None,
        email: Optional[str] = None,
        profile_image: Optional[str] = None,
    ) -> Optional[Account]:
        """Update account fields that are not None.

        Returns:
            Updated Account model, or None if the account does not exist

        Raises:
            EmailAlreadyExistsError: If a concurrent update claimed the email first
        """
        # Build SET clause dynamically for non-None fields
        set_clauses = []
        params = []
        param_idx = 1

        for column, value in (
            ("name", name),
            ("email", email),
            ("profile_image", profile_image),
        ):
            if value is not None:
                set_clauses.append(f"{column} = ${param_idx}")
                params.append(value)
                param_idx += 1

        if not set_clauses:
            return await self.get_by_id(account_id)

        now = datetime.now(timezone.utc)
        set_clauses.append(f"updated_at = ${param_idx}")
        params.append(now)
        param_idx += 1

        params.append(account_id)

        query = f"""
            UPDATE accounts
            SET {', '.join(set_clauses)}
            WHERE id = ${param_idx}
            RETURNING {_ACCOUNT_COLUMNS}
        """

        pool = await get_pool()

        try:
            async with pool.acquire() as conn:
                row = await conn.fetchrow(query, *params)
        except asyncpg.UniqueViolationError:
            raise EmailAlreadyExistsError()

        if row is None:
            return None

        logger.info(
            "account_updated",
            account_id=str(account_id),
            fields_updated=[c.split(" = ")[0] for c in set_clauses if "updated_at" not in c],
        )

        return _account_from_row(row)
