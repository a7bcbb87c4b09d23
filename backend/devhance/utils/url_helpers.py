"""
URL normalization utilities for repository identity.

The normalized repository URL is the deduplication key for case studies and
the cache key for repository contexts, so every lookup and every write goes
through ``normalize_repo_url`` first.
"""
import re
from typing import Optional, Tuple
from urllib.parse import urlparse, urlunparse

from devhance.core.errors import InvalidInputError

# GitHub URL patterns, matched against the raw (un-normalized) input
GITHUB_URL_PATTERNS = [
    re.compile(r"^https?://(?:www\.)?github\.com/([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?/*$", re.IGNORECASE),
    re.compile(r"^git@github\.com:([A-Za-z0-9_.-]+)/([A-Za-z0-9_.-]+?)(?:\.git)?$", re.IGNORECASE),
]


def normalize_repo_url(url: str) -> str:
    """
    Normalize a repository URL to its canonical form.

    Trailing slashes and a ``.git`` suffix are removed, scheme and host are
    lower-cased, query strings and fragments are dropped. GitHub URLs always
    get the https scheme and a lower-cased owner/repo path, since GitHub
    resolves owner and repository names case-insensitively.

    Args:
        url: The repository URL to normalize.

    Returns:
        The canonical URL.

    Examples:
        >>> normalize_repo_url("https://github.com/acme/widget.git")
        'https://github.com/acme/widget'

        >>> normalize_repo_url("http://GitHub.com/Acme/Widget/")
        'https://github.com/acme/widget'
    """
    url = url.strip()

    # SSH remotes have no scheme; rewrite them to their https equivalent
    if url.lower().startswith("git@github.com:"):
        url = "https://github.com/" + url[len("git@github.com:"):]

    parsed = urlparse(url)

    path = parsed.path.rstrip("/")
    if path.lower().endswith(".git"):
        path = path[:-4].rstrip("/")

    scheme = parsed.scheme.lower()
    netloc = parsed.netloc.lower()
    if netloc == "www.github.com":
        netloc = "github.com"
    if netloc == "github.com":
        scheme = "https"
        path = path.lower()

    return urlunparse((
        scheme,
        netloc,
        path,
        "",  # params
        "",  # query
        ""   # fragment
    ))


def parse_github_url(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """
    Extract (owner, repo) from a GitHub repository URL.

    Supports:
    - https://github.com/owner/repo
    - https://github.com/owner/repo.git
    - https://github.com/owner/repo/
    - https://www.github.com/owner/repo
    - git@github.com:owner/repo.git

    Returns:
        Tuple of (owner, repo) if valid GitHub URL, None otherwise
    """
    if not url or not isinstance(url, str):
        return None

    url = url.strip()
    if not url:
        return None

    for pattern in GITHUB_URL_PATTERNS:
        match = pattern.match(url)
        if match:
            owner, repo = match.groups()
            if repo.lower().endswith(".git"):
                repo = repo[:-4]
            if not repo or repo in {".", ".."}:
                return None
            return owner, repo

    return None


def require_github_repo(url: Optional[str]) -> Tuple[str, str, str]:
    """
    Validate and normalize an inbound repository URL.

    Returns:
        Tuple of (normalized_url, owner, repo)

    Raises:
        InvalidInputError: If the URL is not a GitHub repository URL.
    """
    parsed = parse_github_url(url)
    if not parsed:
        raise InvalidInputError("Please provide a valid GitHub repository URL", field="repo_url")
    owner, repo = parsed
    return normalize_repo_url(url), owner, repo
