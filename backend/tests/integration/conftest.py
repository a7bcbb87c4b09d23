from typing import AsyncGenerator, Dict, List

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from devhance.api.deps import get_lock_manager
from devhance.core.auth import get_current_user
from devhance.db.session import get_db
from devhance.main import app
from devhance.models.user import User
from devhance.services.analysis_lock import AnalysisLockManager
from devhance.services.generation import GenerationService, get_generation_service
from devhance.services.github_service import GitHubService, get_github_service


@pytest.fixture
def github_routes(healthy_routes) -> Dict[str, httpx.Response]:
    """GitHub API responses served to the app; override per module."""
    return healthy_routes()


@pytest.fixture
def generation_replies(case_study_reply) -> List[str]:
    """Model replies served to the app in order; override per module."""
    return [case_study_reply]


@pytest.fixture
def generator(generator_factory, generation_replies) -> GenerationService:
    return generator_factory(*generation_replies)


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    session_factory,
    github_transport,
    github_routes,
    generator,
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an AsyncClient for the FastAPI app with DB and upstream overrides."""
    github = GitHubService(transport=github_transport(github_routes), max_retries=1)

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lock_manager] = lambda: AnalysisLockManager(session_factory)
    app.dependency_overrides[get_github_service] = lambda: github
    app.dependency_overrides[get_generation_service] = lambda: generator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers(user: User):
    """Authenticate requests as ``user`` by overriding get_current_user."""
    async def override_get_current_user():
        return user

    app.dependency_overrides[get_current_user] = override_get_current_user

    # The header is not checked once the dependency is overridden
    return {"Authorization": "Bearer mock-token"}


@pytest.fixture
def login_as():
    """Switch the authenticated user mid-test."""
    def switch(user: User):
        async def override_get_current_user():
            return user
        app.dependency_overrides[get_current_user] = override_get_current_user
    return switch
