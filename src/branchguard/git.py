"""Local git repository operations."""

import logging
import re
from pathlib import Path
from typing import Optional

from git import GitCommandError, InvalidGitRepositoryError, NoSuchPathError, Repo

# owner/repo at the end of an https, ssh or scp-style remote URL
_SLUG_PATTERN = re.compile(r"[:/]([^/:]+/[^/]+?)(?:\.git)?/*$")


class GitError(Exception):
    """Git operation error."""


def parse_repository_slug(url: str) -> Optional[str]:
    """Extract ``owner/repo`` from a remote URL.

    Handles ``https://github.com/owner/repo.git``, ``git@github.com:owner/repo.git``
    and ``ssh://git@host/owner/repo``.
    """
    match = _SLUG_PATTERN.search(url.strip())
    if match is None:
        return None
    return match.group(1)


class GitRepo:
    """Git repository operations."""

    def __init__(self, path: Path) -> None:
        """Initialize repository."""
        try:
            self.repo: Repo = Repo(path, search_parent_directories=True)
        except (GitCommandError, ValueError, InvalidGitRepositoryError, NoSuchPathError) as err:
            raise GitError(f"Failed to open repository: {err}") from err

    def get_remote_url(self, remote: str = "origin") -> str:
        """Get the URL of a remote."""
        try:
            return self.repo.remote(remote).url
        except (GitCommandError, ValueError) as err:
            raise GitError(f"Failed to read remote '{remote}': {err}") from err

    def get_repository_slug(self, remote: str = "origin") -> str:
        """Get the ``owner/repo`` full name the remote points to."""
        url = self.get_remote_url(remote)
        slug = parse_repository_slug(url)
        if slug is None:
            raise GitError(f"Could not find a repository name in remote URL {url}")
        return slug


def detect_repository(path: Path, logger: Optional[logging.Logger] = None) -> Optional[str]:
    """Return the ``owner/repo`` of the origin remote at ``path``, or None if there is none."""
    log = logger or logging.getLogger(__name__)
    try:
        slug = GitRepo(path).get_repository_slug()
    except GitError as err:
        log.debug("No repository detected from %s: %s", path, err)
        return None
    log.debug("Detected repository %s from %s", slug, path)
    return slug
