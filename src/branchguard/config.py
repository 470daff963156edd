"""Configuration loading and option resolution.

Options are resolved once per command, in order of precedence:

1. Explicit command line arguments (and ``GITHUB_TOKEN`` for the token)
2. ``branchguard.json`` in the working directory
3. ``branchguard.json`` in the home directory
4. Built-in defaults

The repository is never taken from a configuration file or guessed. It comes
from ``--repository``, or from the origin remote of a checkout only when that
checkout is named with ``--from-checkout``.
"""

import json
import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from branchguard.git import detect_repository
from branchguard.github import DEFAULT_GITHUB_API, DEFAULT_TIMEOUT
from branchguard.models import (
    ProtectionOptions,
    RequiredPullRequestReviews,
    RequiredStatusChecks,
    Restrictions,
)

CONFIG_FILE_NAME = "branchguard.json"

REQUIRED_OPTIONS = ("branch", "github_api", "repository", "token")
OPTION_FLAGS = {
    "branch": "--branch",
    "github_api": "--github-api",
    "repository": "--repository",
    "token": "--token",
}


class ConfigurationError(Exception):
    """Invalid or incomplete configuration."""

    def __init__(self, message: str, missing: Iterable[str] = ()) -> None:
        """Initialize error.

        Args:
            message: Error message
            missing: Names of required options that could not be resolved
        """
        super().__init__(message)
        self.missing = tuple(missing)


class FileConfiguration(BaseModel):
    """Contents of a ``branchguard.json`` file."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    github_api: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("githubApi", "githubAPI", "github_api"),
    )
    token: Optional[str] = None
    ca_file_path: Optional[Path] = Field(
        default=None,
        validation_alias=AliasChoices("caFilePath", "ca_file_path"),
    )
    branch_protection_options: Optional[ProtectionOptions] = Field(
        default=None,
        validation_alias=AliasChoices("branchProtectionOptions", "branch_protection_options"),
    )
    timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator("ca_file_path")
    @classmethod
    def _expand_home(cls, value: Optional[Path]) -> Optional[Path]:
        return value.expanduser() if value is not None else None


def load_configuration_file(path: Path) -> dict[str, Any]:
    """Read one configuration file. A missing file is an empty configuration.

    Keys set to null are dropped so they do not override other files.
    """
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as err:
        raise ConfigurationError(f"Failed to read {path}: {err}") from err

    try:
        data = json.loads(text)
    except json.JSONDecodeError as err:
        raise ConfigurationError(f"Invalid JSON in {path}: {err}") from err
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a JSON object in {path}")
    return {key: value for key, value in data.items() if value is not None}


def load_merged_configuration(
    home: Optional[Path] = None,
    cwd: Optional[Path] = None,
) -> FileConfiguration:
    """Load the global and local configuration files, local keys taking priority."""
    home = home if home is not None else Path.home()
    cwd = cwd if cwd is not None else Path.cwd()
    merged = {
        **load_configuration_file(home / CONFIG_FILE_NAME),
        **load_configuration_file(cwd / CONFIG_FILE_NAME),
    }
    try:
        return FileConfiguration.model_validate(merged)
    except ValidationError as err:
        raise ConfigurationError(f"Invalid configuration: {err}") from err


def read_ca_file(path: Path) -> str:
    """Return the contents of a CA bundle."""
    try:
        return path.read_text(encoding="utf-8")
    except OSError as err:
        raise ConfigurationError(f"Failed to read CA file {path}: {err}") from err


def protection_options_from_flags(
    enforce_admins: bool = False,
    status_checks: Iterable[str] = (),
    strict: bool = False,
    require_reviews: bool = False,
    dismiss_stale_reviews: bool = False,
    code_owner_reviews: bool = False,
    restrict_users: Iterable[str] = (),
    restrict_teams: Iterable[str] = (),
) -> Optional[ProtectionOptions]:
    """Build protection options from command line flags, or None if no flag was given."""
    status_checks = tuple(status_checks)
    restrict_users = frozenset(restrict_users)
    restrict_teams = frozenset(restrict_teams)

    reviews = None
    if require_reviews or dismiss_stale_reviews or code_owner_reviews:
        reviews = RequiredPullRequestReviews(
            dismiss_stale_reviews=dismiss_stale_reviews,
            require_code_owner_reviews=code_owner_reviews,
        )

    checks = None
    if status_checks or strict:
        checks = RequiredStatusChecks(strict=strict, contexts=status_checks)

    restrictions = None
    if restrict_users or restrict_teams:
        restrictions = Restrictions(users=restrict_users, teams=restrict_teams)

    if not enforce_admins and reviews is None and checks is None and restrictions is None:
        return None
    return ProtectionOptions(
        enforce_admins=enforce_admins,
        required_pull_request_reviews=reviews,
        required_status_checks=checks,
        restrictions=restrictions,
    )


@dataclass(frozen=True)
class Settings:
    """Fully resolved options for one command."""

    repository: str
    branch: re.Pattern
    github_api: str
    token: str
    ca_contents: Optional[str] = None
    protection_options: Optional[ProtectionOptions] = None
    timeout: float = DEFAULT_TIMEOUT


def _first(*candidates: Optional[str]) -> Optional[str]:
    return next((candidate for candidate in candidates if candidate), None)


def resolve_settings(
    *,
    branch: Optional[re.Pattern],
    repository: Optional[str] = None,
    github_api: Optional[str] = None,
    token: Optional[str] = None,
    ca_file: Optional[Path] = None,
    protection_options: Optional[ProtectionOptions] = None,
    from_checkout: Optional[Path] = None,
    configuration: Optional[FileConfiguration] = None,
    logger: Optional[logging.Logger] = None,
) -> Settings:
    """Merge explicit arguments with the configuration files.

    Args:
        branch: Compiled branch pattern
        repository: Full name of the repository
        github_api: Base URL of the GitHub API
        token: Personal access token
        ca_file: Path to a CA bundle, relative to the working directory
        protection_options: Protection options built from command line flags
        from_checkout: Local checkout whose origin remote names the repository,
            used only when ``repository`` is not given
        configuration: Already loaded configuration, loaded from disk if None
        logger: Logger for resolution details

    Raises:
        ConfigurationError: If a required option is missing or a file cannot be read
    """
    log = logger or logging.getLogger(__name__)
    config = configuration if configuration is not None else load_merged_configuration()

    repository = _first(repository)
    if repository is None and from_checkout is not None:
        repository = detect_repository(from_checkout, log)

    values = {
        "branch": branch,
        "github_api": _first(github_api, config.github_api, DEFAULT_GITHUB_API),
        "repository": repository,
        "token": _first(token, config.token),
    }
    missing = [name for name in REQUIRED_OPTIONS if values[name] is None]
    if missing:
        flags = ", ".join(OPTION_FLAGS[name] for name in missing)
        raise ConfigurationError(f"Missing options - {flags}", missing=missing)

    ca_contents = None
    if ca_file is not None:
        ca_contents = read_ca_file(ca_file.resolve())
    elif config.ca_file_path is not None:
        ca_contents = read_ca_file(config.ca_file_path)

    if protection_options is None:
        protection_options = config.branch_protection_options

    return Settings(
        repository=values["repository"],
        branch=values["branch"],
        github_api=values["github_api"],
        token=values["token"],
        ca_contents=ca_contents,
        protection_options=protection_options,
        timeout=config.timeout or DEFAULT_TIMEOUT,
    )
