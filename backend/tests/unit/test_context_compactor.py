import pytest
from unittest.mock import AsyncMock, MagicMock

from devhance.services.context_compactor import (
    MAX_SUMMARY_CHARS,
    TRUNCATION_MARKER,
    ContextCompactor,
    max_context_length,
    select_candidates,
    truncate_content,
)


def blob(path):
    return {"path": path, "type": "blob"}


def fake_github(trees, contents=None):
    """GitHubService stand-in: ``trees`` maps branch -> tree (or None)."""
    github = MagicMock()
    github.fetch_tree = AsyncMock(side_effect=lambda owner, repo, branch: trees.get(branch))

    async def fetch_file_contents(owner, repo, paths, ref):
        if contents is None:
            return {path: f"contents of {path}" for path in paths}
        return {path: contents.get(path) for path in paths}

    github.fetch_file_contents = AsyncMock(side_effect=fetch_file_contents)
    return github


def test_select_candidates_ranks_readme_then_manifests_then_sources():
    tree = [
        blob("src/zeta.py"),
        blob("package.json"),
        blob("docs/intro.md"),
        blob("src/deep/nested.py"),
        blob("node_modules/left-pad/index.js"),
        {"path": "src", "type": "tree"},
        blob("README.md"),
        blob("app/main.py"),
    ]

    assert select_candidates(tree, 10) == ["README.md", "package.json", "app/main.py", "src/zeta.py"]
    assert select_candidates(tree, 2) == ["README.md", "package.json"]


def test_truncate_content():
    assert truncate_content("short", 10) == "short"
    assert truncate_content("x" * 20, 10) == "x" * 10 + TRUNCATION_MARKER


@pytest.mark.asyncio
async def test_output_is_bounded_for_huge_repository():
    max_files, limit = 5, 300
    tree = [blob("README.md"), blob("package.json")]
    tree += [blob(f"src/{'very_long_module_name_' * 12}{i}.py") for i in range(50_000)]
    tree += [blob(f"vendor/lib{i}/file.c") for i in range(10_000)]
    huge = "y" * 100_000
    github = fake_github({"main": tree}, {entry["path"]: huge for entry in tree})

    compactor = ContextCompactor(github, max_files=max_files, file_char_limit=limit)
    result = await compactor.build("acme", "widget")

    assert len(result.included_files) == max_files
    assert result.total_files == len(tree)
    assert len(result.text) <= compactor.max_length
    assert compactor.max_length == max_context_length(max_files, limit)
    assert result.text.count(TRUNCATION_MARKER) == max_files
    assert result.degraded is False


@pytest.mark.asyncio
async def test_context_layout():
    github = fake_github({"main": [blob("README.md"), blob("src/app.py")]})

    result = await ContextCompactor(github, max_files=20, file_char_limit=2000).build("acme", "widget")

    assert result.text.startswith("Repository: acme/widget | branch: main | files in tree: 2\n\n")
    assert "--- FILE: README.md ---\ncontents of README.md\n\n" in result.text
    assert result.included_files == ["README.md", "src/app.py"]


@pytest.mark.asyncio
async def test_falls_back_to_master_branch():
    github = fake_github({"main": None, "master": [blob("README.md")]})

    result = await ContextCompactor(github).build("acme", "legacy")

    assert result.branch == "master"
    assert github.fetch_tree.await_count == 2
    github.fetch_file_contents.assert_awaited_once_with("acme", "legacy", ["README.md"], "master")


@pytest.mark.asyncio
async def test_unreadable_tree_gives_degraded_empty_context():
    github = fake_github({})

    result = await ContextCompactor(github).build("acme", "private")

    assert result.degraded is True
    assert result.included_files == []
    assert result.text == ""
    github.fetch_file_contents.assert_not_called()


@pytest.mark.asyncio
async def test_failed_and_empty_files_are_skipped():
    tree = [blob("README.md"), blob("package.json"), blob("src/app.py")]
    github = fake_github({"main": tree}, {"README.md": "# hi", "package.json": None, "src/app.py": ""})

    result = await ContextCompactor(github).build("acme", "widget")

    assert result.included_files == ["README.md"]
    assert "package.json" not in result.text


@pytest.mark.asyncio
async def test_long_names_do_not_break_the_bound():
    owner, repo = "o" * 500, "r" * 500
    github = fake_github({"main": [blob("README.md")]}, {"README.md": "z" * 10})
    compactor = ContextCompactor(github, max_files=1, file_char_limit=10)

    result = await compactor.build(owner, repo)

    assert len(result.text.split("\n\n")[0]) == MAX_SUMMARY_CHARS
    assert len(result.text) <= compactor.max_length


@pytest.mark.asyncio
async def test_no_readable_files_gives_empty_context():
    tree = [blob("README.md"), blob("docs/guide.md")]
    github = fake_github({"main": tree}, {"README.md": None})

    result = await ContextCompactor(github).build("acme", "widget")

    assert result.text == ""
    assert result.included_files == []
    assert result.total_files == 2
    assert result.degraded is False
