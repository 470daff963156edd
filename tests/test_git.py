"""Tests for detecting the repository from a local checkout."""

from pathlib import Path

import pytest
from git import Repo

from branchguard.git import GitError, GitRepo, detect_repository, parse_repository_slug


@pytest.fixture
def checkout(tmp_path: Path) -> Path:
    """Create a repository whose origin points at GitHub."""
    repo = Repo.init(tmp_path / "checkout")
    repo.create_remote("origin", url="https://github.com/octo/widgets.git")
    repo.create_remote("upstream", url="git@github.com:upstream-org/widgets.git")
    return tmp_path / "checkout"


@pytest.mark.parametrize(
    ("url", "slug"),
    [
        ("https://github.com/octo/widgets.git", "octo/widgets"),
        ("https://github.com/octo/widgets", "octo/widgets"),
        ("https://github.com/octo/widgets/", "octo/widgets"),
        ("git@github.com:octo/widgets.git", "octo/widgets"),
        ("ssh://git@github.example.com:2222/octo/widgets.git", "octo/widgets"),
        ("https://ghe.example.com/octo/my.dotted.repo.git", "octo/my.dotted.repo"),
    ],
)
def test_parse_repository_slug(url: str, slug: str) -> None:
    """Test that owner/repo is extracted from common remote URL forms."""
    assert parse_repository_slug(url) == slug


def test_parse_repository_slug_without_owner() -> None:
    """Test that a URL without an owner yields nothing."""
    assert parse_repository_slug("widgets") is None


def test_detect_repository(checkout: Path) -> None:
    """Test that the origin remote is used."""
    assert detect_repository(checkout) == "octo/widgets"


def test_detect_repository_from_subdirectory(checkout: Path) -> None:
    """Test that detection works from inside the checkout."""
    subdirectory = checkout / "src" / "pkg"
    subdirectory.mkdir(parents=True)
    assert detect_repository(subdirectory) == "octo/widgets"


def test_other_remote(checkout: Path) -> None:
    """Test reading a remote other than origin."""
    assert GitRepo(checkout).get_repository_slug("upstream") == "upstream-org/widgets"


def test_not_a_repository(tmp_path: Path) -> None:
    """Test that a plain directory is not detected as a repository."""
    with pytest.raises(GitError):
        GitRepo(tmp_path)
    assert detect_repository(tmp_path) is None


def test_missing_path(tmp_path: Path) -> None:
    """Test that a path that does not exist is not detected."""
    assert detect_repository(tmp_path / "missing") is None


def test_no_origin_remote(tmp_path: Path) -> None:
    """Test that a repository without origin is not detected."""
    Repo.init(tmp_path)
    with pytest.raises(GitError):
        GitRepo(tmp_path).get_remote_url()
    assert detect_repository(tmp_path) is None
