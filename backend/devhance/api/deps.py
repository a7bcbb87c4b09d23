"""Shared FastAPI dependencies.

Tests replace these through ``app.dependency_overrides`` to inject fake
upstreams and a test database.
"""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.db.session import AsyncSessionLocal, get_db
from devhance.services.analysis import AnalysisService
from devhance.services.analysis_lock import AnalysisLockManager
from devhance.services.generation import GenerationService, get_generation_service
from devhance.services.github_service import GitHubService, get_github_service
from devhance.services.payments import PaymentService


def get_lock_manager() -> AnalysisLockManager:
    # Locks use their own sessions so they commit independently of the request
    return AnalysisLockManager(AsyncSessionLocal)


def get_analysis_service(
    db: AsyncSession = Depends(get_db),
    lock_manager: AnalysisLockManager = Depends(get_lock_manager),
    generator: GenerationService = Depends(get_generation_service),
    github: GitHubService = Depends(get_github_service),
) -> AnalysisService:
    return AnalysisService(db, lock_manager, generator, github_service=github)


def get_payment_service(
    db: AsyncSession = Depends(get_db),
    generator: GenerationService = Depends(get_generation_service),
) -> PaymentService:
    return PaymentService(db, generator)
