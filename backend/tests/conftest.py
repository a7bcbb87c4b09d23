import os

# Set environment variables for tests before importing the app
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["AUTH_SECRET"] = "test-auth-secret-with-at-least-32-bytes"
os.environ["LEMON_SQUEEZY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["ENVIRONMENT"] = "test"
os.environ["REDIS_URL"] = ""

import json
from typing import AsyncGenerator, Callable, Dict
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from devhance.db.base import Base
from devhance.models import CaseStudy, User
from devhance.services.generation import GenerationService

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CASE_STUDY_REPLY = {
    "title": "Widget: a tiny job scheduler",
    "summary": "Widget schedules background jobs for small teams.",
    "problemSummary": "Cron is hard to observe.",
    "solutionSummary": "A single binary with a web dashboard.",
    "techStack": "Python, FastAPI, SQLite",
    "architectureOverview": "API server plus worker pool.",
    "coreFeatures": ["Scheduling", "Retries", "Dashboard"],
    "challengesAndSolutions": "Exactly-once delivery via leases.",
    "impact": "Used by three teams.",
    "proofData": {"stars": 120},
    "keyFolders": ["src", "app"],
}

SCORE_KEYS = [
    "problemClarity",
    "solutionStrength",
    "marketPotential",
    "technicalQuality",
    "defensibility",
    "tractionReadiness",
    "executionRisk",
    "overallStartupPotential",
]

VC_REPORT_REPLY = {
    "scores": {key: {"score": 7, "reason": f"{key} looks solid"} for key in SCORE_KEYS},
    "narrativeSections": {
        "problemAndUserPain": "Teams lose jobs silently.",
        "solutionAndProduct": "A small scheduler.",
        "marketAndCompetition": "Crowded but fragmented.",
        "technologyAndArchitecture": "Simple and sound.",
        "tractionAndValidation": "Early users.",
        "risksAndGaps": "No billing yet.",
        "growthPathAndNextSteps": "Hosted offering.",
    },
    "verdict": "Promising side project with a credible path to a product.",
}


def chat_completion(content: str) -> MagicMock:
    """Shape of an openai chat completion response, as far as the adapter reads it."""
    message = MagicMock()
    message.content = content
    return MagicMock(choices=[MagicMock(message=message)])


@pytest.fixture
def openai_client_factory() -> Callable[..., MagicMock]:
    """Build a fake AsyncOpenAI client returning the given replies in order."""
    def factory(*replies):
        client = MagicMock()
        side_effect = [
            reply if isinstance(reply, Exception) else chat_completion(reply)
            for reply in replies
        ]
        client.chat.completions.create = AsyncMock(side_effect=side_effect)
        return client
    return factory


@pytest.fixture
def case_study_reply() -> str:
    return json.dumps(CASE_STUDY_REPLY)


@pytest.fixture
def vc_report_reply() -> str:
    return json.dumps(VC_REPORT_REPLY)


@pytest.fixture
def generator_factory(openai_client_factory) -> Callable[..., GenerationService]:
    def factory(*replies):
        return GenerationService(client=openai_client_factory(*replies), model="test/model")
    return factory


@pytest.fixture
def github_transport() -> Callable[[Dict[str, httpx.Response]], httpx.MockTransport]:
    """
    Build an httpx.MockTransport serving fixed responses by URL path.

    Unknown paths get a 404, like GitHub does.
    """
    def factory(routes: Dict[str, httpx.Response]) -> httpx.MockTransport:
        def handler(request: httpx.Request) -> httpx.Response:
            route = routes.get(request.url.path)
            if route is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if callable(route):
                route = route(request)
            # Fresh copy so one canned response can serve repeated requests
            return httpx.Response(route.status_code, headers=route.headers, content=route.content)
        return httpx.MockTransport(handler)
    return factory


def healthy_repo_routes(owner: str = "acme", repo: str = "widget") -> Dict[str, httpx.Response]:
    """GitHub responses for a small, fully readable repository."""
    base = f"/repos/{owner}/{repo}"
    return {
        base: httpx.Response(200, json={
            "name": repo,
            "full_name": f"{owner}/{repo}",
            "html_url": f"https://github.com/{owner}/{repo}",
            "description": "A tiny job scheduler",
            "stargazers_count": 120,
            "forks_count": 8,
            "language": "Python",
            "topics": ["scheduler"],
            "default_branch": "main",
            "created_at": "2021-03-04T10:00:00Z",
            "pushed_at": "2024-01-02T00:00:00Z",
            "owner": {"login": owner},
        }),
        f"{base}/commits": httpx.Response(
            200,
            json=[{"sha": "abc"}],
            headers={
                "Link": (
                    f'<https://api.github.com/repositories/1/commits?per_page=1&page=2>; rel="next", '
                    f'<https://api.github.com/repositories/1/commits?per_page=1&page=342>; rel="last"'
                )
            },
        ),
        f"{base}/languages": httpx.Response(200, json={"Python": 750, "TypeScript": 250}),
        f"/users/{owner}": httpx.Response(200, json={
            "login": owner,
            "name": "Acme Inc",
            "avatar_url": "https://avatars.example/acme.png",
            "public_repos": 12,
            "followers": 40,
        }),
        f"{base}/git/trees/main": httpx.Response(200, json={
            "tree": [
                {"path": "README.md", "type": "blob"},
                {"path": "pyproject.toml", "type": "blob"},
                {"path": "src", "type": "tree"},
                {"path": "src/widget.py", "type": "blob"},
                {"path": "docs/guide.md", "type": "blob"},
            ],
            "truncated": False,
        }),
        f"{base}/contents/README.md": httpx.Response(200, text="# Widget\nSchedules jobs."),
        f"{base}/contents/pyproject.toml": httpx.Response(200, text='[project]\nname = "widget"\n'),
        f"{base}/contents/src/widget.py": httpx.Response(200, text="def run():\n    pass\n"),
    }


@pytest.fixture
def healthy_routes() -> Callable[..., Dict[str, httpx.Response]]:
    return healthy_repo_routes


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite shared by every session of one test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def file_session_factory(tmp_path):
    """File-backed SQLite so concurrent sessions use separate connections."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'devhance.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def user(db_session: AsyncSession) -> User:
    user = User(email="dev@example.com", name="Dev User", github_id="1001")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    user = User(email="other@example.com", name="Other User", github_id="1002")
    db_session.add(user)
    await db_session.commit()
    await db_session.refresh(user)
    return user


@pytest_asyncio.fixture
async def case_study(db_session: AsyncSession, user: User) -> CaseStudy:
    case_study = CaseStudy(
        owner_id=user.id,
        repo_url="https://github.com/acme/widget",
        slug="widget-0042",
        title="Widget",
        summary="A tiny job scheduler.",
    )
    db_session.add(case_study)
    await db_session.commit()
    await db_session.refresh(case_study)
    return case_study
