"""Repository context compaction.

Turns an arbitrarily large repository into a bounded text digest for the
generation prompt: a summary line followed by the (truncated) contents of a
small, prioritized set of files. The length of the output depends only on
the configured caps, never on the size of the repository.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from devhance.core.config import settings
from devhance.services.github_service import GitHubService, get_github_service

logger = logging.getLogger(__name__)

PRIMARY_BRANCH = "main"
FALLBACK_BRANCH = "master"

TRUNCATION_MARKER = "\n... [truncated]"
FILE_HEADER = "--- FILE: {path} ---\n"
MAX_PATH_CHARS = 200
# GitHub caps owner logins at 39 chars and repository names at 100
MAX_SUMMARY_CHARS = 300

README_NAMES = ("readme", "readme.md", "readme.rst", "readme.txt")

MANIFEST_FILES = (
    "package.json",
    "pyproject.toml",
    "requirements.txt",
    "setup.py",
    "go.mod",
    "cargo.toml",
    "pom.xml",
    "build.gradle",
    "gemfile",
    "composer.json",
    "dockerfile",
    "prisma/schema.prisma",
)

SOURCE_DIRS = ("src", "app", "lib", "components", "pkg", "cmd")


@dataclass
class RepoContextResult:
    text: str
    branch: Optional[str]
    total_files: int
    included_files: List[str]
    degraded: bool = False
    reason: Optional[str] = None


def _priority(path: str) -> Optional[int]:
    """
    Rank a tree path for inclusion; None means it is not on the allow-list.

    0 = README at the root, 1 = manifest/build file, 2 = file directly inside
    a conventional source directory.
    """
    lower = path.lower()
    if lower in README_NAMES:
        return 0
    if lower in MANIFEST_FILES:
        return 1
    parts = lower.split("/")
    if len(parts) == 2 and parts[0] in SOURCE_DIRS and parts[1]:
        return 2
    return None


def select_candidates(tree: List[Dict[str, Any]], max_files: int) -> List[str]:
    """
    Pick at most ``max_files`` blob paths from a tree listing, README and
    manifests first, then source files in path order.
    """
    ranked = []
    for entry in tree:
        if entry.get("type") != "blob":
            continue
        path = entry.get("path")
        if not isinstance(path, str):
            continue
        rank = _priority(path)
        if rank is not None:
            ranked.append((rank, path.lower(), path))
    ranked.sort()
    return [path for _, _, path in ranked[:max_files]]


def truncate_content(content: str, limit: int) -> str:
    if len(content) <= limit:
        return content
    return content[:limit] + TRUNCATION_MARKER


def max_context_length(max_files: int, file_char_limit: int) -> int:
    """Upper bound on the length of any text produced by ``ContextCompactor``."""
    per_file = (
        len(FILE_HEADER.format(path="")) + MAX_PATH_CHARS
        + file_char_limit + len(TRUNCATION_MARKER)
        + 2  # blank line after each section
    )
    return MAX_SUMMARY_CHARS + 2 + max_files * per_file


class ContextCompactor:
    """Builds the bounded repository digest handed to the generation prompt."""

    def __init__(
        self,
        github_service: Optional[GitHubService] = None,
        max_files: Optional[int] = None,
        file_char_limit: Optional[int] = None,
    ):
        self.github = github_service or get_github_service()
        self.max_files = max_files or settings.CONTEXT_MAX_FILES
        self.file_char_limit = file_char_limit or settings.CONTEXT_FILE_CHAR_LIMIT

    @property
    def max_length(self) -> int:
        return max_context_length(self.max_files, self.file_char_limit)

    async def _fetch_tree_with_fallback(self, owner: str, repo: str, branch: str):
        tree = await self.github.fetch_tree(owner, repo, branch)
        if tree is not None:
            return tree, branch

        fallback = FALLBACK_BRANCH if branch != FALLBACK_BRANCH else PRIMARY_BRANCH
        logger.info(f"Tree fetch failed for {owner}/{repo}@{branch}, retrying with {fallback}")
        tree = await self.github.fetch_tree(owner, repo, fallback)
        if tree is not None:
            return tree, fallback
        return None, None

    async def build(self, owner: str, repo: str, branch: str = PRIMARY_BRANCH) -> RepoContextResult:
        """
        Build the compacted context for a repository.

        Never raises for upstream failures: files that fail to download are
        left out, and when no file content could be included at all (tree
        unreadable, nothing on the allow-list, every download failed) the
        text is empty so generation falls back to metadata only. An
        unreadable tree is also flagged as degraded.

        Args:
            owner: Repository owner login
            repo: Repository name
            branch: Branch to read first; the conventional fallback is tried once

        Returns:
            RepoContextResult with the text and what went into it
        """
        tree, used_branch = await self._fetch_tree_with_fallback(owner, repo, branch)

        if tree is None:
            logger.warning(f"No file tree available for {owner}/{repo}; continuing with empty context")
            return RepoContextResult(
                text="",
                branch=None,
                total_files=0,
                included_files=[],
                degraded=True,
                reason="file tree unavailable",
            )

        total_files = sum(1 for entry in tree if entry.get("type") == "blob")
        candidates = select_candidates(tree, self.max_files)
        contents = await self.github.fetch_file_contents(owner, repo, candidates, used_branch)

        sections = [self._summary_line(owner, repo, used_branch, total_files) + "\n\n"]
        included = []
        for path in candidates:
            content = contents.get(path)
            if not content:
                continue
            header = FILE_HEADER.format(path=path[:MAX_PATH_CHARS])
            sections.append(f"{header}{truncate_content(content, self.file_char_limit)}\n\n")
            included.append(path)

        text = "".join(sections) if included else ""
        logger.info(
            f"Compacted {owner}/{repo}@{used_branch}: {len(included)}/{total_files} files, {len(text)} chars"
        )
        return RepoContextResult(
            text=text,
            branch=used_branch,
            total_files=total_files,
            included_files=included,
        )

    @staticmethod
    def _summary_line(owner: str, repo: str, branch: Optional[str], total_files: int) -> str:
        line = f"Repository: {owner}/{repo} | branch: {branch or 'unknown'} | files in tree: {total_files}"
        return line[:MAX_SUMMARY_CHARS]
