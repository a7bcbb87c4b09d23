import asyncio
import logging
import secrets
import uuid
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from devhance.core.errors import DuplicateEntryError
from devhance.models.case_study import CaseStudy
from devhance.services.analysis_lock import AnalysisLockManager
from devhance.services.cache import RepoContextCache
from devhance.services.case_study_writer import CaseStudyWriter, make_slug
from devhance.services.context_compactor import FALLBACK_BRANCH, PRIMARY_BRANCH, ContextCompactor
from devhance.services.generation import GenerationService
from devhance.services.github_service import GitHubService, get_github_service
from devhance.utils.url_helpers import require_github_repo

logger = logging.getLogger(__name__)

# Slug collisions are retried with a random tail before surfacing the error
SLUG_ATTEMPTS = 3


@dataclass
class AnalysisResult:
    case_study: CaseStudy
    degraded: bool = False
    degraded_reasons: List[str] = field(default_factory=list)


# Service responsible for turning a repository URL into a stored case study
class AnalysisService:
    def __init__(
        self,
        session: AsyncSession,
        lock_manager: AnalysisLockManager,
        generator: GenerationService,
        github_service: Optional[GitHubService] = None,
        compactor: Optional[ContextCompactor] = None,
    ) -> None:
        self.session = session
        self.lock_manager = lock_manager
        self.generator = generator
        self.github = github_service or get_github_service()
        self.compactor = compactor or ContextCompactor(self.github)

    async def create_case_study(self, user_id: uuid.UUID, repo_url: str) -> AnalysisResult:
        """
        Analyze a GitHub repository and store the generated case study.

        Steps: validate and normalize the URL, take the user's analysis lock,
        reject repositories that already have a case study, resolve metadata
        and compact the repository in parallel, store the context, generate,
        persist. The lock is released whatever happens.

        Args:
            user_id: The requesting user's UUID
            repo_url: The repository URL as submitted

        Returns:
            AnalysisResult with the stored case study and degradation info

        Raises:
            InvalidInputError: Not a GitHub repository URL.
            AnalysisInProgressError: The user already has an analysis running.
            DuplicateRepoError: The repository already has a case study.
            GenerationServiceError / GenerationParseError: The model failed.
        """
        normalized_url, owner, repo = require_github_repo(repo_url)
        logger.info(f"Analysis requested by user {user_id} for {normalized_url}")

        async with self.lock_manager.hold(user_id, normalized_url):
            writer = CaseStudyWriter(self.session)
            await writer.ensure_not_duplicate(normalized_url)

            metadata_outcome, context = await asyncio.gather(
                self.github.resolve_metadata(normalized_url),
                self.compactor.build(owner, repo),
            )
            metadata = metadata_outcome.value

            # The tree is read before the default branch is known
            default_branch = metadata.default_branch
            if context.degraded and default_branch and default_branch not in (PRIMARY_BRANCH, FALLBACK_BRANCH):
                logger.info(f"Retrying file tree for {normalized_url} on default branch {default_branch}")
                context = await self.compactor.build(owner, repo, branch=default_branch)

            reasons = []
            if metadata_outcome.degraded:
                reasons.append(f"metadata: {metadata_outcome.reason}")
            if context.degraded:
                reasons.append(f"context: {context.reason}")
            if reasons:
                logger.warning(f"Proceeding with degraded inputs for {normalized_url}: {'; '.join(reasons)}")

            cache = RepoContextCache(self.session)
            await cache.set_context(
                normalized_url,
                owner_login=metadata.owner,
                repo_name=metadata.name,
                context_text=context.text,
                star_count=metadata.star_count,
                default_branch=metadata.default_branch or context.branch,
                repo_metadata=metadata.model_dump(),
            )
            await self.session.commit()

            content = await self.generator.generate_case_study(context.text, metadata.model_dump())

            case_study = None
            for attempt in range(SLUG_ATTEMPTS):
                slug = make_slug(repo) if attempt == 0 else make_slug(repo, secrets.randbelow(10000))
                try:
                    case_study = await writer.create(
                        owner_id=user_id,
                        repo_url=normalized_url,
                        repo_name=repo,
                        content=content,
                        total_commits=metadata.total_commits,
                        active_period=metadata.active_period,
                        slug=slug,
                    )
                    break
                except DuplicateEntryError:
                    if attempt == SLUG_ATTEMPTS - 1:
                        raise
                    logger.info(f"Retrying case study write for {normalized_url} with a new slug")

        return AnalysisResult(case_study=case_study, degraded=bool(reasons), degraded_reasons=reasons)
