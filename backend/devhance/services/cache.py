import logging
from typing import Any, Dict, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.models.repo_context import RepoContext
from devhance.utils.timeutils import utcnow

logger = logging.getLogger(__name__)


class RepoContextCache:
    """
    Shared store of compacted repository contexts, keyed by normalized URL.

    Written on every analysis and read back when a VC report is generated.
    Writes are idempotent overwrites, so concurrent analyses of the same
    repository can race safely.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_context(self, repo_url: str) -> Optional[RepoContext]:
        """
        Retrieve the stored context for a repository.

        Args:
            repo_url: The normalized repository URL.

        Returns:
            The RepoContext row, or None if the repository was never analyzed.
        """
        stmt = select(RepoContext).where(RepoContext.repo_url == repo_url)
        result = await self.session.execute(stmt)
        entry = result.scalar_one_or_none()
        if entry is None:
            logger.debug(f"No stored context for {repo_url}")
        return entry

    async def set_context(
        self,
        repo_url: str,
        owner_login: str,
        repo_name: str,
        context_text: str,
        star_count: int = 0,
        default_branch: Optional[str] = None,
        repo_metadata: Optional[Dict[str, Any]] = None,
    ) -> RepoContext:
        """
        Insert or overwrite the context for a repository.

        Note:
            This method does NOT commit the session. Losing an insert race
            rolls the session back before retrying as an update, so call it
            before staging other changes.
        """
        values = {
            "owner_login": owner_login,
            "repo_name": repo_name,
            "context_text": context_text,
            "star_count": star_count,
            "default_branch": default_branch,
            "repo_metadata": repo_metadata or {},
            "updated_at": utcnow(),
        }

        entry = await self.get_context(repo_url)
        if entry is not None:
            for key, value in values.items():
                setattr(entry, key, value)
            await self.session.flush()
            logger.info(f"Updated stored context for {repo_url}")
            return entry

        entry = RepoContext(repo_url=repo_url, **values)
        self.session.add(entry)
        try:
            await self.session.flush()
        except IntegrityError:
            # Another analysis inserted the same repository first; overwrite it
            logger.info(f"Concurrent context insert for {repo_url}, updating instead")
            await self.session.rollback()
            entry = await self.get_context(repo_url)
            if entry is None:
                raise
            for key, value in values.items():
                setattr(entry, key, value)
            await self.session.flush()
            return entry

        logger.info(f"Created stored context for {repo_url}")
        return entry

    async def delete_context(self, repo_url: str) -> bool:
        """Administrative reset of one repository's context. Returns True if a row was removed."""
        result = await self.session.execute(delete(RepoContext).where(RepoContext.repo_url == repo_url))
        return result.rowcount > 0
