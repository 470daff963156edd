"""Test configuration and fixtures."""

import hashlib
import logging
import re
from pathlib import Path
from typing import Callable, Generator, Optional

import httpx
import pytest

from branchguard import cli
from branchguard.github import GitHubClient
from branchguard.log import LOGGER_NAME

API_URL = "https://api.example.com"
REPOSITORY = "octo/widgets"

_PROTECTION_PATH = re.compile(r"^/repos/(?P<repo>[^/]+/[^/]+)/branches/(?P<name>.+)/protection$")


def branch_json(name: str, protected: bool = False) -> dict:
    """Build a branch as the branches endpoint returns it."""
    sha = hashlib.sha1(name.encode()).hexdigest()
    return {
        "name": name,
        "commit": {"sha": sha, "url": f"{API_URL}/repos/{REPOSITORY}/commits/{sha}"},
        "protected": protected,
        "protection_url": f"{API_URL}/repos/{REPOSITORY}/branches/{name}/protection",
    }


class FakeGitHub:
    """In-memory stand-in for the branches and branch protection endpoints.

    Branches are served in pages; every page but the last links to the next
    one with a ``Link`` header. Protection requests for names in ``fail_on``
    get the configured error status.
    """

    def __init__(self) -> None:
        self.pages: list[list[dict]] = [[]]
        self.fail_on: dict[str, int] = {}
        self.list_status = 200
        self.requests: list[httpx.Request] = []

    def set_branches(self, *names: str, protected: tuple[str, ...] = (), per_page: Optional[int] = None) -> None:
        """Serve branches with the given names, split into pages of ``per_page``."""
        branches = [branch_json(name, name in protected) for name in names]
        if per_page is None or not branches:
            self.pages = [branches]
        else:
            self.pages = [branches[i : i + per_page] for i in range(0, len(branches), per_page)]

    @property
    def list_requests(self) -> list[httpx.Request]:
        return [request for request in self.requests if request.method == "GET"]

    @property
    def mutations(self) -> list[tuple[str, str]]:
        """(method, branch name) for every protection request, in order."""
        result = []
        for request in self.requests:
            match = _PROTECTION_PATH.match(request.url.path)
            if match:
                result.append((request.method, match.group("name")))
        return result

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path

        if request.method == "GET" and path == f"/repos/{REPOSITORY}/branches":
            if self.list_status != 200:
                return httpx.Response(self.list_status, json={"message": "Bad credentials"})
            page = int(request.url.params.get("page", "1"))
            items = self.pages[page - 1]
            if request.url.params.get("protected") == "true":
                items = [item for item in items if item["protected"]]
            headers = {}
            if page < len(self.pages):
                next_url = request.url.copy_set_param("page", str(page + 1))
                first_url = request.url.copy_set_param("page", "1")
                headers["Link"] = f'<{next_url}>; rel="next", <{first_url}>; rel="first"'
            elif page > 1:
                prev_url = request.url.copy_set_param("page", str(page - 1))
                headers["Link"] = f'<{prev_url}>; rel="prev"'
            return httpx.Response(200, json=items, headers=headers)

        match = _PROTECTION_PATH.match(path)
        if match and match.group("repo") == REPOSITORY:
            name = match.group("name")
            if name in self.fail_on:
                return httpx.Response(self.fail_on[name], json={"message": f"Cannot change protection of {name}"})
            if request.method == "PUT":
                return httpx.Response(200, json={"url": str(request.url)})
            if request.method == "DELETE":
                return httpx.Response(204)

        return httpx.Response(404, json={"message": "Not Found"})


@pytest.fixture(autouse=True)
def reset_logging() -> Generator[None, None, None]:
    """Undo handler changes made by the CLI so caplog sees package records."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    logger.handlers.clear()
    logger.setLevel(logging.NOTSET)
    logger.propagate = True


@pytest.fixture
def github() -> FakeGitHub:
    """Create an empty fake GitHub API."""
    return FakeGitHub()


@pytest.fixture
def client(github: FakeGitHub) -> Generator[GitHubClient, None, None]:
    """Create a client talking to the fake GitHub API."""
    with GitHubClient(api_url=API_URL, token="secret", transport=httpx.MockTransport(github.handler)) as client:
        yield client


@pytest.fixture
def cli_env(
    github: FakeGitHub,
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> Path:
    """Isolate the CLI from the user's environment and route it to the fake API.

    Returns:
        The working directory, which is also the home directory
    """
    monkeypatch.setenv("HOME", str(tmp_path))
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)

    transport = httpx.MockTransport(github.handler)
    factory: Callable[..., GitHubClient] = lambda **kwargs: GitHubClient(transport=transport, **kwargs)  # noqa: E731
    monkeypatch.setattr(cli, "GitHubClient", factory)
    return tmp_path
