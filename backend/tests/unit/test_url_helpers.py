import pytest

from devhance.core.errors import InvalidInputError
from devhance.utils.url_helpers import normalize_repo_url, parse_github_url, require_github_repo


class TestNormalizeRepoUrl:
    @pytest.mark.parametrize("url", [
        "https://github.com/acme/widget",
        "https://github.com/acme/widget/",
        "https://github.com/acme/widget.git",
        "https://github.com/acme/widget.git/",
        "https://github.com/acme/widget//",
        "HTTPS://GitHub.com/acme/widget",
        "https://www.github.com/acme/widget",
        "  https://github.com/acme/widget  ",
        "https://github.com/acme/widget?tab=readme#top",
        "git@github.com:acme/widget.git",
        "http://github.com/acme/widget",
        "http://www.github.com/acme/widget.git",
        "https://github.com/Acme/Widget",
    ])
    def test_variants_share_one_canonical_form(self, url):
        assert normalize_repo_url(url) == "https://github.com/acme/widget"

    def test_other_hosts_keep_scheme_and_path_case(self):
        assert normalize_repo_url("http://Example.com/Acme/Widget/") == "http://example.com/Acme/Widget"

    def test_idempotent(self):
        once = normalize_repo_url("https://github.com/acme/widget.git/")
        assert normalize_repo_url(once) == once


class TestParseGithubUrl:
    def test_valid_urls(self):
        test_cases = [
            ("https://github.com/owner/repo", ("owner", "repo")),
            ("https://github.com/owner/repo.git", ("owner", "repo")),
            ("https://github.com/owner/repo/", ("owner", "repo")),
            ("https://www.github.com/owner/repo", ("owner", "repo")),
            ("git@github.com:owner/repo.git", ("owner", "repo")),
            ("https://github.com/my-org/my.repo_name", ("my-org", "my.repo_name")),
        ]
        for url, expected in test_cases:
            assert parse_github_url(url) == expected, f"Failed for URL: {url}"

    def test_invalid_urls(self):
        invalid_urls = [
            "",
            None,
            "https://gitlab.com/owner/repo",
            "https://github.com/owner",
            "https://github.com/owner/repo/tree/main",
            "not-a-url",
            "https://github.com/",
        ]
        for url in invalid_urls:
            assert parse_github_url(url) is None, f"Should return None for: {url}"


def test_require_github_repo_returns_normalized_url_and_parts():
    assert require_github_repo("https://github.com/acme/widget.git") == (
        "https://github.com/acme/widget",
        "acme",
        "widget",
    )


def test_require_github_repo_rejects_other_hosts():
    with pytest.raises(InvalidInputError) as exc_info:
        require_github_repo("https://gitlab.com/acme/widget")

    assert exc_info.value.status_code == 400
    assert exc_info.value.to_dict()["field"] == "repo_url"


def test_require_github_repo_keeps_owner_and_repo_as_typed():
    # The API accepts either case; only the dedup key is lower-cased
    assert require_github_repo("http://github.com/Acme/Widget") == (
        "https://github.com/acme/widget",
        "Acme",
        "Widget",
    )
