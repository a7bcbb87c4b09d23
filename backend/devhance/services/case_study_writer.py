import logging
import re
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import and_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.core.errors import DuplicateEntryError, DuplicateRepoError, NotFoundError
from devhance.models.case_study import CaseStudy
from devhance.models.vc_report import VCReport
from devhance.schemas.generation import CaseStudyContent

logger = logging.getLogger(__name__)

_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")


def make_slug(repo_name: str, suffix: Optional[int] = None) -> str:
    """
    Build a URL slug from a repository name.

    Lower-cases the name, collapses every run of non-alphanumeric characters
    into one "-" and appends a numeric tail (by default the last four digits
    of the millisecond clock). Uniqueness is NOT guaranteed; the unique index
    on case_studies.slug is the authority.

    Examples:
        >>> make_slug("My_Cool.Repo", suffix=42)
        'my-cool-repo-0042'
    """
    base = _NON_ALNUM_RE.sub("-", repo_name.lower()).strip("-") or "project"
    if suffix is None:
        suffix = int(time.time() * 1000) % 10000
    return f"{base[:80]}-{suffix:04d}"


def apply_defaults(content: CaseStudyContent, repo_name: str) -> Dict[str, Any]:
    """Map generated content onto column values, replacing missing fields with safe defaults."""
    return {
        "title": (content.title or repo_name)[:200],
        "summary": content.summary or "",
        "problem_summary": content.problem_summary or "",
        "solution_summary": content.solution_summary or "",
        "tech_stack": content.tech_stack or "",
        "architecture_overview": content.architecture_overview or "",
        "core_features": content.core_features or [],
        "challenges_and_solutions": content.challenges_and_solutions or "",
        "impact": content.impact or "",
        "proof_data": content.proof_data or {},
        "key_folders": content.key_folders or [],
    }


class CaseStudyWriter:
    """Reads and writes case studies; one case study per normalized repository URL."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_repo_url(self, repo_url: str) -> Optional[CaseStudy]:
        result = await self.session.execute(select(CaseStudy).where(CaseStudy.repo_url == repo_url))
        return result.scalar_one_or_none()

    async def ensure_not_duplicate(self, repo_url: str) -> None:
        """
        Fail fast when a case study already exists for ``repo_url``.

        Raises:
            DuplicateRepoError: Carrying the existing record's slug and id.
        """
        existing = await self.find_by_repo_url(repo_url)
        if existing is not None:
            logger.info(f"Case study already exists for {repo_url}: {existing.slug}")
            raise DuplicateRepoError(existing.slug, existing.id)

    async def get_by_slug(self, slug: str) -> CaseStudy:
        result = await self.session.execute(select(CaseStudy).where(CaseStudy.slug == slug))
        case_study = result.scalar_one_or_none()
        if case_study is None:
            raise NotFoundError("Case study")
        return case_study

    async def get_by_id(self, case_study_id: uuid.UUID) -> CaseStudy:
        case_study = await self.session.get(CaseStudy, case_study_id)
        if case_study is None:
            raise NotFoundError("Case study")
        return case_study

    async def list_for_owner(self, owner_id: uuid.UUID) -> List[Tuple[CaseStudy, Optional[uuid.UUID]]]:
        """
        List a user's case studies, newest first.

        Each case study comes with the id of its VC report when this user
        bought it (reports are only readable by their purchaser), else None.
        """
        result = await self.session.execute(
            select(CaseStudy, VCReport.id)
            .outerjoin(
                VCReport,
                and_(VCReport.case_study_id == CaseStudy.id, VCReport.user_id == owner_id),
            )
            .where(CaseStudy.owner_id == owner_id)
            .order_by(CaseStudy.created_at.desc(), CaseStudy.slug)
        )
        return [(case_study, report_id) for case_study, report_id in result.all()]

    async def create(
        self,
        owner_id: uuid.UUID,
        repo_url: str,
        repo_name: str,
        content: CaseStudyContent,
        total_commits: int = 0,
        active_period: str = "Unknown",
        slug: Optional[str] = None,
    ) -> CaseStudy:
        """
        Persist a generated case study and commit.

        Args:
            owner_id: The creating user
            repo_url: Normalized repository URL
            repo_name: Repository name, used for the slug and as fallback title
            content: Validated generation output
            total_commits: Commit count from the metadata resolver
            active_period: Active period from the metadata resolver
            slug: Explicit slug; derived from ``repo_name`` when omitted

        Returns:
            The stored CaseStudy

        Raises:
            DuplicateRepoError: Another request stored this repository first.
            DuplicateEntryError: The slug collided; retry with a new one.
        """
        slug = slug or make_slug(repo_name)
        case_study = CaseStudy(
            owner_id=owner_id,
            repo_url=repo_url,
            slug=slug,
            total_commits=total_commits or 0,
            active_period=active_period or "Unknown",
            **apply_defaults(content, repo_name),
        )
        self.session.add(case_study)

        try:
            await self.session.commit()
        except IntegrityError as e:
            await self.session.rollback()
            existing = await self.find_by_repo_url(repo_url)
            if existing is not None:
                raise DuplicateRepoError(existing.slug, existing.id) from e
            logger.warning(f"Slug collision for {slug}")
            raise DuplicateEntryError("Slug already taken, retry with a new slug", field="slug") from e

        logger.info(f"Stored case study {case_study.slug} for {repo_url}")
        return case_study
