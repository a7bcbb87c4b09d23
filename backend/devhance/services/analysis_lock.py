import logging
import uuid
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from devhance.core.config import settings
from devhance.core.errors import AnalysisInProgressError
from devhance.models.analysis_lock import AnalysisLock
from devhance.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class AnalysisLockManager:
    """
    Per-user lock around the "produce a case study" operation.

    Lock rows live in the database, so every worker process sees the same
    state; the unique constraint on owner_id makes acquisition atomic. Each
    operation runs in its own short session and commits immediately, so a
    lock is visible (and released) independently of the request transaction.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stale_after_seconds: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.stale_after = timedelta(
            seconds=stale_after_seconds
            if stale_after_seconds is not None
            else settings.ANALYSIS_LOCK_STALE_SECONDS
        )

    async def _insert(self, session: AsyncSession, owner_id: uuid.UUID, repo_url: str) -> bool:
        """Insert a fresh lock row; False if one already exists for the owner."""
        session.add(AnalysisLock(owner_id=owner_id, repo_url=repo_url, status="locked", created_at=utcnow()))
        try:
            await session.commit()
            return True
        except IntegrityError:
            await session.rollback()
            return False

    async def acquire(self, owner_id: uuid.UUID, repo_url: str) -> None:
        """
        Take the analysis lock for ``owner_id``.

        A lock younger than the staleness window blocks; an older one is
        treated as abandoned (its worker crashed or hung) and replaced.

        Raises:
            AnalysisInProgressError: If a live lock is held for this owner.
        """
        async with self._session_factory() as session:
            if await self._insert(session, owner_id, repo_url):
                logger.info(f"Analysis lock acquired for user {owner_id} ({repo_url})")
                return

            result = await session.execute(
                select(AnalysisLock).where(AnalysisLock.owner_id == owner_id)
            )
            existing = result.scalar_one_or_none()

            if existing is None:
                # Released between our insert and our read; try once more
                if await self._insert(session, owner_id, repo_url):
                    logger.info(f"Analysis lock acquired for user {owner_id} ({repo_url})")
                    return
                raise AnalysisInProgressError(repo_url, int(self.stale_after.total_seconds()))

            age = utcnow() - existing.created_at
            if age < self.stale_after:
                retry_after = max(1, int((self.stale_after - age).total_seconds()))
                logger.info(
                    f"Analysis already in progress for user {owner_id} "
                    f"({existing.repo_url}, age {age})"
                )
                raise AnalysisInProgressError(existing.repo_url, retry_after)

            # Stale: delete only the row we inspected, so two reclaimers cannot
            # both succeed
            logger.warning(
                f"Reclaiming stale analysis lock for user {owner_id} "
                f"({existing.repo_url}, age {age})"
            )
            await session.execute(
                delete(AnalysisLock).where(
                    AnalysisLock.owner_id == owner_id,
                    AnalysisLock.created_at == existing.created_at,
                )
            )
            await session.commit()
            session.expunge_all()

            if not await self._insert(session, owner_id, repo_url):
                raise AnalysisInProgressError(repo_url, int(self.stale_after.total_seconds()))
            logger.info(f"Analysis lock acquired for user {owner_id} ({repo_url}) after reclaim")

    async def release(self, owner_id: uuid.UUID) -> None:
        """Delete the lock for ``owner_id`` unconditionally."""
        async with self._session_factory() as session:
            await session.execute(delete(AnalysisLock).where(AnalysisLock.owner_id == owner_id))
            await session.commit()
        logger.info(f"Analysis lock released for user {owner_id}")

    async def is_locked(self, owner_id: uuid.UUID) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(AnalysisLock.id).where(AnalysisLock.owner_id == owner_id)
            )
            return result.first() is not None

    @asynccontextmanager
    async def hold(self, owner_id: uuid.UUID, repo_url: str) -> AsyncIterator[None]:
        """
        Hold the lock for the duration of the block.

        The lock is released on every exit path, whatever terminated the block.
        """
        await self.acquire(owner_id, repo_url)
        try:
            yield
        finally:
            await self.release(owner_id)
