import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from urllib.parse import parse_qs, quote, urlparse

import httpx
import redis.asyncio as redis
from pydantic import BaseModel, Field
from redis.exceptions import RedisError

from devhance.core.config import settings
from devhance.services.outcome import Degraded, Outcome, Resolved
from devhance.utils.url_helpers import require_github_repo

logger = logging.getLogger(__name__)

# GitHub API constants
GITHUB_API_BASE = "https://api.github.com"
DEFAULT_TIMEOUT_SECONDS = 10.0
CACHE_TTL_SECONDS = 3600  # 1 hour
MAX_RETRIES = 2
BACKOFF_FACTOR = 2

UNKNOWN = "Unknown"


class GitHubAPIError(Exception):
    """A GitHub request failed after retries (or with a non-retryable status)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RepoMetadata(BaseModel):
    """Repository facts handed to the prompt and stored with the case study."""
    owner: str
    name: str
    full_name: str
    html_url: str
    description: str = ""
    star_count: int = 0
    fork_count: int = 0
    language: str = UNKNOWN
    languages: Dict[str, float] = Field(default_factory=dict)
    topics: List[str] = Field(default_factory=list)
    default_branch: Optional[str] = None
    total_commits: int = 0
    active_period: str = UNKNOWN
    created_at: Optional[str] = None
    pushed_at: Optional[str] = None
    owner_profile: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def fallback(cls, owner: str, repo: str, repo_url: str) -> "RepoMetadata":
        """Conservative record used when the repository request fails."""
        return cls(
            owner=owner,
            name=repo,
            full_name=f"{owner}/{repo}",
            html_url=repo_url,
            owner_profile={"login": owner},
        )


def format_active_period(created_at: Optional[str], pushed_at: Optional[str]) -> str:
    """
    Format the active period of a repository as "Mon YYYY - Mon YYYY".

    Examples:
    - ("2021-03-04T10:00:00Z", "2024-01-02T00:00:00Z") -> "Mar 2021 - Jan 2024"
    - (None, ...) -> "Unknown"
    """
    if not created_at or not pushed_at:
        return UNKNOWN
    try:
        start = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
        end = datetime.fromisoformat(pushed_at.replace("Z", "+00:00"))
    except ValueError:
        return UNKNOWN
    return f"{start.strftime('%b %Y')} - {end.strftime('%b %Y')}"


def language_mix(raw: Dict[str, int]) -> Dict[str, float]:
    """Convert GitHub's bytes-per-language map into rounded percentages."""
    total = sum(v for v in raw.values() if isinstance(v, (int, float)))
    if total <= 0:
        return {}
    return {
        lang: round(count * 100.0 / total, 1)
        for lang, count in sorted(raw.items(), key=lambda item: item[1], reverse=True)
    }


class GitHubService:
    """
    Service for reading repository information from the GitHub REST API.

    Features:
    - Metadata resolution with graceful degradation (never raises for upstream failures)
    - O(1)-request commit count estimate from pagination metadata
    - Recursive tree listing and raw file fetches for context compaction
    - Optional Redis cache for fully resolved metadata
    - Retries with exponential backoff for timeouts and 5xx responses
    """

    def __init__(
        self,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        token: Optional[str] = None,
        max_retries: int = MAX_RETRIES,
    ):
        self._transport = transport
        self._token = token if token is not None else settings.GITHUB_TOKEN
        self._max_retries = max(1, max_retries)
        self._redis_client: Optional[redis.Redis] = None
        self._redis_available = False

    async def _get_redis_client(self) -> Optional[redis.Redis]:
        """Get Redis client with connection validation."""
        if not settings.REDIS_URL:
            return None

        if self._redis_client is None:
            try:
                self._redis_client = redis.from_url(
                    settings.REDIS_URL,
                    decode_responses=True,
                    socket_timeout=5.0,
                    socket_connect_timeout=5.0,
                )
                # Test connection
                await self._redis_client.ping()
                self._redis_available = True
                logger.info("Redis connection established")
            except RedisError as e:
                logger.warning(f"Redis connection failed: {e}. Proceeding without cache.")
                self._redis_available = False
                self._redis_client = None

        return self._redis_client if self._redis_available else None

    def _headers(self, accept: str = "application/vnd.github+json") -> Dict[str, str]:
        headers = {
            "Accept": accept,
            "User-Agent": "DevHance/1.0",
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=GITHUB_API_BASE,
            timeout=httpx.Timeout(DEFAULT_TIMEOUT_SECONDS),
            transport=self._transport,
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        accept: str = "application/vnd.github+json",
    ) -> httpx.Response:
        """
        GET a GitHub API path with retry logic.

        Timeouts, transport errors and 5xx responses are retried; 4xx
        responses fail immediately (retrying a 404 or a rate limit is pointless).

        Raises:
            GitHubAPIError: If the request did not succeed.
        """
        last_error: Optional[GitHubAPIError] = None

        for attempt in range(self._max_retries):
            try:
                response = await client.get(path, params=params, headers=self._headers(accept))
            except httpx.TimeoutException:
                logger.warning(f"Timeout fetching {path} (attempt {attempt + 1})")
                last_error = GitHubAPIError(f"Timeout fetching {path}")
            except httpx.HTTPError as e:
                logger.warning(f"Transport error fetching {path}: {e} (attempt {attempt + 1})")
                last_error = GitHubAPIError(f"Transport error fetching {path}")
            else:
                if response.status_code < 400:
                    return response

                if response.status_code == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
                    logger.warning("GitHub API rate limit exceeded")
                    raise GitHubAPIError("GitHub API rate limit exceeded", 403)

                if response.status_code < 500:
                    raise GitHubAPIError(
                        f"GitHub returned {response.status_code} for {path}",
                        response.status_code,
                    )

                logger.warning(
                    f"GitHub returned {response.status_code} for {path} (attempt {attempt + 1})"
                )
                last_error = GitHubAPIError(
                    f"GitHub returned {response.status_code} for {path}",
                    response.status_code,
                )

            # Exponential backoff for retries
            if attempt < self._max_retries - 1:
                await asyncio.sleep(BACKOFF_FACTOR ** attempt)

        raise last_error or GitHubAPIError(f"Failed to fetch {path}")

    # ------------------------------------------------------------------
    # Metadata resolution
    # ------------------------------------------------------------------

    async def resolve_metadata(self, repo_url: str) -> Outcome[RepoMetadata]:
        """
        Resolve repository facts for a GitHub URL.

        Upstream failures never propagate: a failed repository request yields
        a ``Degraded`` fallback record, failed secondary lookups (commits,
        languages, owner profile) yield a ``Degraded`` partial record.

        Args:
            repo_url: GitHub repository URL

        Returns:
            Resolved(metadata) or Degraded(metadata, reason)

        Raises:
            InvalidInputError: If the URL is not a GitHub repository URL.
        """
        normalized_url, owner, repo = require_github_repo(repo_url)
        cache_key = f"github:metadata:{owner}/{repo}".lower()

        redis_client = await self._get_redis_client()
        if redis_client:
            try:
                cached = await redis_client.get(cache_key)
                if cached is not None:
                    logger.debug(f"Cache hit for {owner}/{repo} metadata")
                    return Resolved(RepoMetadata.model_validate_json(cached))
            except (RedisError, ValueError) as e:
                logger.warning(f"Cache read error for {owner}/{repo}: {e}")

        async with self._client() as client:
            try:
                response = await self._request(client, f"/repos/{owner}/{repo}")
                data = response.json()
            except (GitHubAPIError, ValueError) as e:
                logger.warning(f"Metadata fetch failed for {owner}/{repo}, using fallback: {e}")
                return Degraded(
                    RepoMetadata.fallback(owner, repo, normalized_url),
                    f"repository metadata unavailable: {e}",
                )

            metadata = RepoMetadata(
                owner=(data.get("owner") or {}).get("login") or owner,
                name=data.get("name") or repo,
                full_name=data.get("full_name") or f"{owner}/{repo}",
                html_url=data.get("html_url") or normalized_url,
                description=data.get("description") or "",
                star_count=data.get("stargazers_count") or 0,
                fork_count=data.get("forks_count") or 0,
                language=data.get("language") or UNKNOWN,
                topics=data.get("topics") or [],
                default_branch=data.get("default_branch"),
                created_at=data.get("created_at"),
                pushed_at=data.get("pushed_at"),
                active_period=format_active_period(data.get("created_at"), data.get("pushed_at")),
                owner_profile={"login": (data.get("owner") or {}).get("login") or owner},
            )

            commits, languages, profile = await asyncio.gather(
                self._count_commits(client, owner, repo),
                self._fetch_languages(client, owner, repo),
                self._fetch_owner_profile(client, metadata.owner),
                return_exceptions=True,
            )

        failures = []
        if isinstance(commits, Exception):
            failures.append(f"commit count: {commits}")
        else:
            metadata.total_commits = commits
        if isinstance(languages, Exception):
            failures.append(f"languages: {languages}")
        else:
            metadata.languages = languages
        if isinstance(profile, Exception):
            failures.append(f"owner profile: {profile}")
        else:
            metadata.owner_profile = profile

        if failures:
            reason = "; ".join(failures)
            logger.warning(f"Partial metadata for {owner}/{repo}: {reason}")
            return Degraded(metadata, reason)

        if redis_client:
            try:
                await redis_client.setex(cache_key, CACHE_TTL_SECONDS, metadata.model_dump_json())
            except RedisError as e:
                logger.warning(f"Cache write error for {owner}/{repo}: {e}")

        return Resolved(metadata)

    async def _count_commits(self, client: httpx.AsyncClient, owner: str, repo: str) -> int:
        """
        Approximate the commit count with a single request.

        Asks for one commit per page; the page number of the ``rel="last"``
        link is then the number of commits on the default branch.
        """
        response = await self._request(
            client, f"/repos/{owner}/{repo}/commits", params={"per_page": 1}
        )
        last = response.links.get("last")
        if last and last.get("url"):
            page = parse_qs(urlparse(last["url"]).query).get("page")
            if page and page[0].isdigit():
                return int(page[0])
        # No pagination: the repository has at most one commit
        body = response.json()
        return len(body) if isinstance(body, list) else 0

    async def _fetch_languages(self, client: httpx.AsyncClient, owner: str, repo: str) -> Dict[str, float]:
        response = await self._request(client, f"/repos/{owner}/{repo}/languages")
        body = response.json()
        return language_mix(body) if isinstance(body, dict) else {}

    async def _fetch_owner_profile(self, client: httpx.AsyncClient, login: str) -> Dict[str, Any]:
        response = await self._request(client, f"/users/{login}")
        data = response.json()
        return {
            "login": data.get("login") or login,
            "name": data.get("name"),
            "avatar_url": data.get("avatar_url"),
            "bio": data.get("bio"),
            "company": data.get("company"),
            "public_repos": data.get("public_repos") or 0,
            "followers": data.get("followers") or 0,
        }

    # ------------------------------------------------------------------
    # Tree and file contents
    # ------------------------------------------------------------------

    async def fetch_tree(self, owner: str, repo: str, branch: str) -> Optional[List[Dict[str, Any]]]:
        """
        Fetch the recursive file tree of a branch.

        Returns:
            List of tree entries (dicts with "path" and "type"), None if the
            branch could not be read.
        """
        async with self._client() as client:
            try:
                response = await self._request(
                    client,
                    f"/repos/{owner}/{repo}/git/trees/{quote(branch, safe='')}",
                    params={"recursive": 1},
                )
                data = response.json()
            except (GitHubAPIError, ValueError) as e:
                logger.info(f"Tree fetch failed for {owner}/{repo}@{branch}: {e}")
                return None

        tree = data.get("tree") if isinstance(data, dict) else None
        if not isinstance(tree, list):
            return None
        if data.get("truncated"):
            logger.debug(f"Tree listing for {owner}/{repo}@{branch} was truncated by GitHub")
        return tree

    async def fetch_file_contents(
        self, owner: str, repo: str, paths: List[str], ref: str
    ) -> Dict[str, Optional[str]]:
        """
        Fetch raw contents for several files concurrently.

        Returns:
            Mapping of path -> text, with None for files that failed.
        """
        async with self._client() as client:
            results = await asyncio.gather(
                *(self._fetch_file_content(client, owner, repo, path, ref) for path in paths)
            )
        return dict(zip(paths, results))

    async def _fetch_file_content(
        self, client: httpx.AsyncClient, owner: str, repo: str, path: str, ref: str
    ) -> Optional[str]:
        try:
            response = await self._request(
                client,
                f"/repos/{owner}/{repo}/contents/{quote(path)}",
                params={"ref": ref},
                accept="application/vnd.github.raw+json",
            )
            return response.text
        except GitHubAPIError as e:
            logger.debug(f"Skipping {owner}/{repo}:{path}: {e}")
            return None

    async def close(self):
        """Close Redis connection if open."""
        if self._redis_client:
            try:
                await self._redis_client.aclose()
                logger.debug("Redis connection closed")
            except RedisError as e:
                logger.warning(f"Error closing Redis connection: {e}")
            finally:
                self._redis_client = None
                self._redis_available = False


# Global service instance
_github_service: Optional[GitHubService] = None


def get_github_service() -> GitHubService:
    """Get the global GitHub service instance."""
    global _github_service
    if _github_service is None:
        _github_service = GitHubService()
    return _github_service
