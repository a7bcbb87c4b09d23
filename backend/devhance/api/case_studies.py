import logging

from typing import List

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.api.deps import get_analysis_service
from devhance.core.auth import get_current_user
from devhance.db.session import get_db
from devhance.models.user import User
from devhance.schemas.case_studies import (
    CaseStudyCreateRequest,
    CaseStudyListItem,
    CaseStudyCreateResponse,
    CaseStudyResponse,
    ContextResetResponse,
)
from devhance.services.analysis import AnalysisService
from devhance.services.cache import RepoContextCache
from devhance.services.case_study_writer import CaseStudyWriter
from devhance.utils.url_helpers import require_github_repo

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=CaseStudyCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_case_study(
    request: CaseStudyCreateRequest,
    current_user: User = Depends(get_current_user),
    analysis_service: AnalysisService = Depends(get_analysis_service),
):
    """
    Analyze a GitHub repository and store its case study.

    One analysis per user at a time (409 ANALYSIS_IN_PROGRESS) and one case
    study per repository (409 DUPLICATE_REPO with the existing slug).
    """
    logger.debug(f"Case study requested by user {current_user.id}: {request.repo_url}")
    result = await analysis_service.create_case_study(current_user.id, request.repo_url)
    return CaseStudyCreateResponse(
        id=str(result.case_study.id),
        slug=result.case_study.slug,
        degraded=result.degraded,
        degraded_reasons=result.degraded_reasons,
    )


@router.get("", response_model=List[CaseStudyListItem])
async def list_my_case_studies(
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """List the signed-in user's case studies, newest first, with their report status."""
    rows = await CaseStudyWriter(db).list_for_owner(current_user.id)
    return [
        CaseStudyListItem(
            id=case_study.id,
            slug=case_study.slug,
            repo_url=case_study.repo_url,
            title=case_study.title,
            summary=case_study.summary,
            total_commits=case_study.total_commits,
            active_period=case_study.active_period,
            created_at=case_study.created_at,
            report_id=report_id,
            has_report=report_id is not None,
        )
        for case_study, report_id in rows
    ]


@router.delete("/context", response_model=ContextResetResponse)
async def reset_repo_context(
    repo_url: str = Query(..., description="The GitHub repository URL whose stored context is removed"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    """
    Remove the stored repository context for one repository.

    NOTE: The context store is global and keyed by normalized repository URL.
    The next analysis (or report generation) reads the repository afresh.
    """
    normalized_url, _, _ = require_github_repo(repo_url)
    logger.info(f"Clearing stored context for {normalized_url} (requested by user {current_user.id})")

    deleted = await RepoContextCache(db).delete_context(normalized_url)
    await db.commit()
    return ContextResetResponse(repo_url=normalized_url, deleted=deleted)


@router.get("/{slug}", response_model=CaseStudyResponse)
async def get_case_study(slug: str, db: AsyncSession = Depends(get_db)):
    """Public read of a case study by slug."""
    return await CaseStudyWriter(db).get_by_slug(slug)
