"""
SQL storage backend (SQLAlchemy async).

  - Consume-once: DELETE ... RETURNING on (namespace, key). Postgres and
    SQLite >= 3.35 both support it; only one transaction gets the row.
  - First-writer-wins: plain INSERT against the unique referee_id index.
    An IntegrityError means someone else got there first.
  - Expiry: lazy on read + sweep_expired() on an interval.
"""

from sqlalchemy import delete, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from deferlink.models.tables import Base, PendingLinkRow, ReferralRow
from deferlink.storage.base import LinkStorage, Namespace, PendingLink, Referral, StorageError, utcnow

import structlog

logger = structlog.get_logger()

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def _to_referral(row: ReferralRow) -> Referral:
    return Referral.from_dict({
        "referrer_id": row.referrer_id,
        "referee_id": row.referee_id,
        "referral_code": row.referral_code,
        "timestamp": row.timestamp,
        "metadata": row.extra,
    })


class SqlStorage(LinkStorage):
    def __init__(self, engine: AsyncEngine):
        self._engine = engine
        self._sessions = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def create_tables(self) -> None:
        """Create tables directly (tests / local dev). Production uses alembic."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    # --- Pending links ---

    async def _save_pending(self, namespace: Namespace, key: str, link: PendingLink) -> None:
        values = {
            "namespace": namespace.value,
            "key": key,
            "url": link.url,
            "params": link.params,
            "created_at": link.created_at,
            "expires_at": link.expires_at,
        }
        try:
            async with self._sessions() as session:
                insert = _UPSERT_DIALECTS.get(self._engine.dialect.name)
                if insert is not None:
                    stmt = insert(PendingLinkRow).values(**values)
                    stmt = stmt.on_conflict_do_update(
                        index_elements=["namespace", "key"],
                        set_={k: stmt.excluded[k] for k in ("url", "params", "created_at", "expires_at")},
                    )
                    await session.execute(stmt)
                else:
                    await session.execute(self._where(delete(PendingLinkRow), namespace, key))
                    session.add(PendingLinkRow(**values))
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Database write failed: {e}") from e

    async def _pop_pending(self, namespace: Namespace, key: str) -> PendingLink | None:
        stmt = self._where(delete(PendingLinkRow), namespace, key).returning(
            PendingLinkRow.url,
            PendingLinkRow.params,
            PendingLinkRow.created_at,
            PendingLinkRow.expires_at,
        )
        try:
            async with self._sessions() as session:
                row = (await session.execute(stmt)).first()
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Database read failed: {e}") from e
        if row is None:
            return None
        return PendingLink.from_dict({
            "url": row.url,
            "params": row.params,
            "created_at": row.created_at,
            "expires_at": row.expires_at,
        })

    async def _delete_pending(self, namespace: Namespace, key: str) -> None:
        try:
            async with self._sessions() as session:
                await session.execute(self._where(delete(PendingLinkRow), namespace, key))
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Database delete failed: {e}") from e

    @staticmethod
    def _where(stmt, namespace: Namespace, key: str):
        return stmt.where(PendingLinkRow.namespace == namespace.value, PendingLinkRow.key == key)

    async def sweep_expired(self) -> int:
        try:
            async with self._sessions() as session:
                result = await session.execute(
                    delete(PendingLinkRow).where(PendingLinkRow.expires_at <= utcnow())
                )
                await session.commit()
        except SQLAlchemyError as e:
            raise StorageError(f"Database sweep failed: {e}") from e
        return result.rowcount or 0

    # --- Referrals ---

    async def save_referral(self, referral: Referral) -> bool:
        try:
            async with self._sessions() as session:
                session.add(ReferralRow(
                    referrer_id=referral.referrer_id,
                    referee_id=referral.referee_id,
                    referral_code=referral.referral_code,
                    timestamp=referral.timestamp,
                    extra=referral.metadata,
                ))
                try:
                    await session.commit()
                except IntegrityError:
                    await session.rollback()
                    return False
        except SQLAlchemyError as e:
            raise StorageError(f"Database write failed: {e}") from e
        return True

    async def get_referrals_by_referrer(self, referrer_id: str) -> list[Referral]:
        stmt = (
            select(ReferralRow)
            .where(ReferralRow.referrer_id == referrer_id)
            .order_by(ReferralRow.id)
        )
        try:
            async with self._sessions() as session:
                rows = (await session.execute(stmt)).scalars().all()
        except SQLAlchemyError as e:
            raise StorageError(f"Database read failed: {e}") from e
        return [_to_referral(row) for row in rows]

    async def get_referral_by_referee(self, referee_id: str) -> Referral | None:
        stmt = select(ReferralRow).where(ReferralRow.referee_id == referee_id)
        try:
            async with self._sessions() as session:
                row = (await session.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError(f"Database read failed: {e}") from e
        return _to_referral(row) if row is not None else None

    async def close(self) -> None:
        await self._engine.dispose()
        logger.info("sql_storage_closed")
