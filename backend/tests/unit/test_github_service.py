import httpx
import pytest
from unittest.mock import AsyncMock, patch

from devhance.core.errors import InvalidInputError
from devhance.services.github_service import (
    CACHE_TTL_SECONDS,
    GitHubService,
    RepoMetadata,
    format_active_period,
    language_mix,
)


def test_format_active_period():
    assert format_active_period("2021-03-04T10:00:00Z", "2024-01-02T00:00:00Z") == "Mar 2021 - Jan 2024"
    assert format_active_period(None, "2024-01-02T00:00:00Z") == "Unknown"
    assert format_active_period("not-a-date", "2024-01-02T00:00:00Z") == "Unknown"


def test_language_mix():
    assert language_mix({"Python": 750, "TypeScript": 250}) == {"Python": 75.0, "TypeScript": 25.0}
    assert language_mix({}) == {}


class TestResolveMetadata:
    """Metadata resolution against a mocked GitHub API."""

    @pytest.mark.asyncio
    async def test_resolves_full_metadata(self, github_transport, healthy_routes):
        service = GitHubService(transport=github_transport(healthy_routes()), max_retries=1)

        outcome = await service.resolve_metadata("https://github.com/acme/widget.git")

        assert outcome.degraded is False
        metadata = outcome.value
        assert metadata.full_name == "acme/widget"
        assert metadata.star_count == 120
        assert metadata.total_commits == 342
        assert metadata.languages == {"Python": 75.0, "TypeScript": 25.0}
        assert metadata.active_period == "Mar 2021 - Jan 2024"
        assert metadata.owner_profile["name"] == "Acme Inc"
        assert metadata.default_branch == "main"

    @pytest.mark.asyncio
    async def test_server_error_yields_fallback(self, github_transport):
        transport = github_transport({"/repos/x/y": httpx.Response(500, json={"message": "boom"})})
        service = GitHubService(transport=transport, max_retries=1)

        outcome = await service.resolve_metadata("https://github.com/x/y")

        assert outcome.degraded is True
        assert "unavailable" in outcome.reason
        assert outcome.value.total_commits == 0
        assert outcome.value.active_period == "Unknown"
        assert outcome.value.star_count == 0
        assert outcome.value.owner == "x"

    @pytest.mark.asyncio
    async def test_secondary_lookup_failure_keeps_primary_fields(self, github_transport, healthy_routes):
        routes = healthy_routes()
        routes["/repos/acme/widget/commits"] = httpx.Response(500)
        service = GitHubService(transport=github_transport(routes), max_retries=1)

        outcome = await service.resolve_metadata("https://github.com/acme/widget")

        assert outcome.degraded is True
        assert "commit count" in outcome.reason
        assert outcome.value.star_count == 120
        assert outcome.value.total_commits == 0
        assert outcome.value.languages == {"Python": 75.0, "TypeScript": 25.0}

    @pytest.mark.asyncio
    async def test_single_commit_without_pagination(self, github_transport, healthy_routes):
        routes = healthy_routes()
        routes["/repos/acme/widget/commits"] = httpx.Response(200, json=[{"sha": "abc"}])
        service = GitHubService(transport=github_transport(routes), max_retries=1)

        outcome = await service.resolve_metadata("https://github.com/acme/widget")

        assert outcome.value.total_commits == 1

    @pytest.mark.asyncio
    async def test_server_errors_are_retried(self, github_transport, healthy_routes):
        routes = healthy_routes()
        repo_ok = routes["/repos/acme/widget"]
        calls = {"count": 0}

        def flaky(request):
            calls["count"] += 1
            return httpx.Response(503) if calls["count"] == 1 else repo_ok

        routes["/repos/acme/widget"] = flaky
        service = GitHubService(transport=github_transport(routes), max_retries=2)

        with patch("devhance.services.github_service.asyncio.sleep", new_callable=AsyncMock):
            outcome = await service.resolve_metadata("https://github.com/acme/widget")

        assert calls["count"] == 2
        assert outcome.degraded is False

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self, github_transport):
        calls = {"count": 0}

        def not_found(request):
            calls["count"] += 1
            return httpx.Response(404)

        service = GitHubService(transport=github_transport({"/repos/acme/gone": not_found}), max_retries=3)

        outcome = await service.resolve_metadata("https://github.com/acme/gone")

        assert calls["count"] == 1
        assert outcome.degraded is True

    @pytest.mark.asyncio
    async def test_invalid_url_raises(self):
        service = GitHubService(max_retries=1)
        with pytest.raises(InvalidInputError):
            await service.resolve_metadata("https://example.com/acme/widget")

    @pytest.mark.asyncio
    async def test_cache_hit_skips_api(self, github_transport):
        cached = RepoMetadata(
            owner="acme", name="widget", full_name="acme/widget",
            html_url="https://github.com/acme/widget", total_commits=9,
        )
        mock_redis = AsyncMock()
        mock_redis.get.return_value = cached.model_dump_json()

        def fail(request):
            raise AssertionError("GitHub should not be called on a cache hit")

        service = GitHubService(transport=httpx.MockTransport(fail), max_retries=1)
        with patch.object(service, "_get_redis_client", return_value=mock_redis):
            outcome = await service.resolve_metadata("https://github.com/Acme/Widget")

        assert outcome.value.total_commits == 9
        mock_redis.get.assert_called_once_with("github:metadata:acme/widget")

    @pytest.mark.asyncio
    async def test_only_fully_resolved_metadata_is_cached(self, github_transport, healthy_routes):
        mock_redis = AsyncMock()
        mock_redis.get.return_value = None

        service = GitHubService(transport=github_transport(healthy_routes()), max_retries=1)
        with patch.object(service, "_get_redis_client", return_value=mock_redis):
            await service.resolve_metadata("https://github.com/acme/widget")
        mock_redis.setex.assert_called_once()
        assert mock_redis.setex.call_args.args[:2] == ("github:metadata:acme/widget", CACHE_TTL_SECONDS)

        mock_redis.reset_mock()
        mock_redis.get.return_value = None
        broken = GitHubService(
            transport=github_transport({"/repos/x/y": httpx.Response(500)}), max_retries=1
        )
        with patch.object(broken, "_get_redis_client", return_value=mock_redis):
            await broken.resolve_metadata("https://github.com/x/y")
        mock_redis.setex.assert_not_called()


class TestTreeAndContents:
    @pytest.mark.asyncio
    async def test_fetch_tree(self, github_transport, healthy_routes):
        service = GitHubService(transport=github_transport(healthy_routes()), max_retries=1)

        tree = await service.fetch_tree("acme", "widget", "main")

        assert [entry["path"] for entry in tree][:2] == ["README.md", "pyproject.toml"]

    @pytest.mark.asyncio
    async def test_fetch_tree_missing_branch_returns_none(self, github_transport, healthy_routes):
        service = GitHubService(transport=github_transport(healthy_routes()), max_retries=1)

        assert await service.fetch_tree("acme", "widget", "develop") is None

    @pytest.mark.asyncio
    async def test_fetch_file_contents_marks_failures(self, github_transport, healthy_routes):
        service = GitHubService(transport=github_transport(healthy_routes()), max_retries=1)

        contents = await service.fetch_file_contents(
            "acme", "widget", ["README.md", "missing.txt"], "main"
        )

        assert contents["README.md"].startswith("# Widget")
        assert contents["missing.txt"] is None
