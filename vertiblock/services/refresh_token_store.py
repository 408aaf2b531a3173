"""Per-account store of active refresh tokens."""

from datetime import datetime, timezone
from typing import Optional, Sequence
from uuid import UUID

import structlog

from vertiblock.config import get_settings
from vertiblock.database import get_pool
from vertiblock.errors import InvalidOrExpiredRefreshTokenError
from vertiblock.models.account import RefreshTokenRecord

logger = structlog.get_logger(__name__)

_RECORD_COLUMNS = "id, account_id, token, expires_at, device, created_at"


def select_evicted(slot_ids: Sequence[int], limit: int) -> list[int]:
    """Pick the records to drop so that at most ``limit`` remain.

    Slots are evicted oldest first (lowest id first).

    Args:
        slot_ids: Record ids of one account, in any order
        limit: Number of records to keep

    Returns:
        Ids to delete, oldest first
    """
    ordered = sorted(slot_ids)
    excess = len(ordered) - limit
    if excess <= 0:
        return []
    return ordered[:excess]


def _record_from_row(row) -> RefreshTokenRecord:
    return RefreshTokenRecord(
        id=row["id"],
        account_id=row["account_id"],
        token=row["token"],
        expires_at=row["expires_at"],
        device=row["device"],
        created_at=row["created_at"],
    )


class RefreshTokenStore:
    """Attach, look up, rotate and revoke an account's refresh tokens.

    Each account keeps at most ``refresh_token_limit`` records. A record is
    valid while it is still stored and its expiry lies in the future;
    rotated, expired and revoked tokens never become valid again.
    """

    def __init__(self, limit: Optional[int] = None):
        self.limit = limit if limit is not None else get_settings().refresh_token_limit

    async def attach(self, record: RefreshTokenRecord) -> RefreshTokenRecord:
        """Store a new record and evict the oldest beyond the retention bound.

        Args:
            record: Record to append to its account's collection

        Returns:
            The stored record with its slot id
        """
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            async with conn.transaction():
                slot_id = await conn.fetchval(
                    """
                    INSERT INTO refresh_tokens (account_id, token, expires_at, device, created_at)
                    VALUES ($1, $2, $3, $4, $5)
                    RETURNING id
                    """,
                    record.account_id,
                    record.token,
                    record.expires_at,
                    record.device,
                    now,
                )
                rows = await conn.fetch(
                    "SELECT id FROM refresh_tokens WHERE account_id = $1 FOR UPDATE",
                    record.account_id,
                )
                evicted = select_evicted([row["id"] for row in rows], self.limit)
                if evicted:
                    await conn.execute(
                        "DELETE FROM refresh_tokens WHERE id = ANY($1::bigint[])",
                        evicted,
                    )

        logger.info(
            "refresh_token_attached",
            account_id=str(record.account_id),
            record_id=slot_id,
            device=record.device,
            evicted=len(evicted),
        )

        return record.model_copy(update={"id": slot_id, "created_at": now})

    async def find_valid(self, account_id: UUID, token: str) -> Optional[RefreshTokenRecord]:
        """Find the stored, unexpired record holding ``token``.

        Returns:
            The record, or None when the token is unknown, expired or belongs
            to another account
        """
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM refresh_tokens
                WHERE account_id = $1 AND token = $2 AND expires_at > $3
                """,
                account_id,
                token,
                now,
            )

        if row is None:
            logger.warning("refresh_token_not_valid", account_id=str(account_id))
            return None

        return _record_from_row(row)

    async def rotate(
        self,
        record: RefreshTokenRecord,
        new_token: str,
        new_expires_at: datetime,
    ) -> RefreshTokenRecord:
        """Replace a record's token in its slot, keeping its device.

        The update only applies while the slot still holds the old, unexpired
        token, so a consumed token can never be rotated twice.

        Raises:
            InvalidOrExpiredRefreshTokenError: The old token was already
                rotated, revoked or evicted, or has expired
        """
        now = datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE refresh_tokens
                SET token = $1, expires_at = $2
                WHERE id = $3 AND account_id = $4 AND token = $5 AND expires_at > $6
                RETURNING {_RECORD_COLUMNS}
                """,
                new_token,
                new_expires_at,
                record.id,
                record.account_id,
                record.token,
                now,
            )

        if row is None:
            logger.warning(
                "refresh_token_rotation_lost",
                account_id=str(record.account_id),
                record_id=record.id,
            )
            raise InvalidOrExpiredRefreshTokenError()

        logger.info(
            "refresh_token_rotated",
            account_id=str(record.account_id),
            record_id=record.id,
        )
        return _record_from_row(row)

    async def revoke(self, account_id: UUID, token: str) -> bool:
        """Remove the record holding ``token``.

        Returns:
            True if a record was removed
        """
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM refresh_tokens WHERE account_id = $1 AND token = $2",
                account_id,
                token,
            )

        revoked = result != "DELETE 0"
        logger.info("refresh_token_revoked", account_id=str(account_id), removed=revoked)
        return revoked

    async def list_for_account(self, account_id: UUID) -> list[RefreshTokenRecord]:
        """Return an account's records, oldest slot first."""
        pool = await get_pool()

        async with pool.acquire() as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_RECORD_COLUMNS}
                FROM refresh_tokens
                WHERE account_id = $1
                ORDER BY id ASC
                """,
                account_id,
            )

        return [_record_from_row(row) for row in rows]

    async def purge_expired(self, now: Optional[datetime] = None) -> int:
        """Delete every record whose expiry has passed.

        Returns:
            Number of records removed
        """
        now = now or datetime.now(timezone.utc)
        pool = await get_pool()

        async with pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM refresh_tokens WHERE expires_at <= $1",
                now,
            )

        removed = int(result.split()[-1]) if result else 0
        logger.info("refresh_tokens_purged", removed=removed)
        return removed
