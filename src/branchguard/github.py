"""GitHub REST API operations."""

import logging
import re
import ssl
from typing import Optional, Union
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from branchguard import __version__
from branchguard.models import DEFAULT_PROTECTION_OPTIONS, Branch, ProtectionOptions

DEFAULT_GITHUB_API = "https://api.github.com"
DEFAULT_TIMEOUT = 30.0

# Media type of the protected branches API preview.
GITHUB_ACCEPT = "application/vnd.github.loki-preview+json"

# GitHub rejects requests without a User-Agent.
USER_AGENT = f"branchguard/{__version__}"

_URL_PATTERN = re.compile(r"<([^>]*)>")
_REL_PATTERN = re.compile(r'rel="([^"]*)"')


class TransportError(Exception):
    """A request to the GitHub API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        """Initialize error.

        Args:
            message: Error message
            status_code: HTTP status of the response, if one was received
        """
        super().__init__(message)
        self.status_code = status_code


def parse_link_header(value: str, logger: Optional[logging.Logger] = None) -> dict[str, str]:
    """Parse an HTTP ``Link`` header into a mapping of relation to URL.

    Segments look like ``<url>; rel="next"`` and may carry extra attributes,
    which are ignored. Segments without a URL or a ``rel`` are skipped.
    """
    log = logger or logging.getLogger(__name__)
    links: dict[str, str] = {}
    for segment in value.split(","):
        if not segment.strip():
            continue
        fields = segment.split(";")
        if len(fields) < 2:
            log.warning("Could not parse link and label from %s", segment.strip())
            continue
        url_match = _URL_PATTERN.search(fields[0])
        rel_match = None
        for attribute in fields[1:]:
            rel_match = _REL_PATTERN.search(attribute)
            if rel_match:
                break
        if url_match is None or rel_match is None:
            log.warning("Could not get url or label from %s", segment.strip())
            continue
        for relation in rel_match.group(1).split():
            links[relation] = url_match.group(1)
    return links


def next_link(value: str, logger: Optional[logging.Logger] = None) -> Optional[str]:
    """Return the ``next`` URL of a ``Link`` header, or None when there is none."""
    return parse_link_header(value, logger).get("next")


class GitHubClient:
    """Branch and branch protection requests against the GitHub API."""

    def __init__(
        self,
        api_url: str = DEFAULT_GITHUB_API,
        token: str = "",
        ca_contents: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
        logger: Optional[logging.Logger] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """Initialize the client.

        Args:
            api_url: Base URL of the GitHub API
            token: Personal access token with admin rights on the repository
            ca_contents: PEM contents of a CA bundle to trust, e.g. behind a corporate proxy
            timeout: Timeout in seconds for each request
            logger: Logger for request tracing
            transport: Transport override, used by tests
        """
        self.api_url = api_url.rstrip("/")
        self.log = logger or logging.getLogger(__name__)

        verify: Union[bool, ssl.SSLContext] = True
        if ca_contents is not None:
            try:
                verify = ssl.create_default_context(cadata=ca_contents)
            except (ssl.SSLError, ValueError) as err:
                raise TransportError(f"Invalid CA certificate data: {err}") from err

        self.client = httpx.Client(
            headers={
                "Accept": GITHUB_ACCEPT,
                "Authorization": f"token {token}",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            },
            timeout=timeout,
            follow_redirects=True,
            verify=verify,
            transport=transport,
        )

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying connection pool."""
        self.client.close()

    def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """Send a request and raise TransportError unless it succeeds."""
        self.log.debug("%s %s", method, url)
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.RequestError as err:
            raise TransportError(f"{method} {url} failed: {err}") from err

        if response.content:
            self.log.debug(response.text)
        if not response.is_success:
            raise TransportError(
                f"{method} {url} returned {response.status_code}: {_error_message(response)}",
                status_code=response.status_code,
            )
        return response

    def _protection_url(self, repository: str, branch_name: str) -> str:
        return f"{self.api_url}/repos/{repository}/branches/{quote(branch_name, safe='/')}/protection"

    def list_branches(self, repository: str, protected_only: bool = False) -> list[Branch]:
        """List every branch of a repository, following pagination.

        Args:
            repository: Full name of the repository, e.g. ``owner/repo``
            protected_only: Only list branches that are already protected

        Raises:
            TransportError: If any page cannot be fetched or parsed
        """
        url: Optional[str] = f"{self.api_url}/repos/{repository}/branches"
        if protected_only:
            url += "?protected=true"

        branches: list[Branch] = []
        while url is not None:
            response = self._request("GET", url)
            branches.extend(_parse_branches(response))

            link = response.headers.get("link")
            if link is None:
                self.log.debug("No link header")
                break
            self.log.debug("Got link header: %s", link)
            url = next_link(link, self.log)
        return branches

    def apply_protection(
        self,
        repository: str,
        branch_name: str,
        options: Optional[ProtectionOptions] = None,
    ) -> None:
        """Protect a branch.

        Args:
            repository: Full name of the repository
            branch_name: Branch to protect
            options: Protection policy, defaults to basic protection only

        Raises:
            TransportError: If the request fails
        """
        if options is None:
            options = DEFAULT_PROTECTION_OPTIONS
        self._request("PUT", self._protection_url(repository, branch_name), json=options.to_payload())

    def remove_protection(self, repository: str, branch_name: str) -> None:
        """Remove protection from a branch.

        Raises:
            TransportError: If the request fails
        """
        self._request("DELETE", self._protection_url(repository, branch_name))


def _error_message(response: httpx.Response) -> str:
    """Extract the API's error message from a failed response."""
    try:
        data = response.json()
    except ValueError:
        return response.reason_phrase
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.reason_phrase


def _parse_branches(response: httpx.Response) -> list[Branch]:
    """Parse one page of the branches endpoint."""
    try:
        data = response.json()
    except ValueError as err:
        raise TransportError(f"Malformed JSON in branch listing: {err}") from err
    if not isinstance(data, list):
        raise TransportError("Expected a list of branches in branch listing")
    try:
        return [Branch.model_validate(item) for item in data]
    except ValidationError as err:
        raise TransportError(f"Malformed branch in branch listing: {err}") from err
