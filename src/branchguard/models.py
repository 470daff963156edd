"""Branch and branch protection models."""

from typing import Any, Iterable, Optional

from pydantic import BaseModel, ConfigDict, field_serializer


class Commit(BaseModel):
    """Head commit of a branch."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    sha: str
    url: str


class Branch(BaseModel):
    """Snapshot of a remote branch as returned by the branches endpoint."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    name: str
    commit: Commit
    protected: bool = False
    protection_url: Optional[str] = None


class _Principals(BaseModel):
    """Users and teams a policy applies to."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    users: frozenset[str] = frozenset()
    teams: frozenset[str] = frozenset()

    @field_serializer("users", "teams")
    def _sorted(self, value: frozenset[str]) -> list[str]:
        return sorted(value)


class DismissalRestrictions(_Principals):
    """Who may dismiss pull request reviews."""


class Restrictions(_Principals):
    """Who may push to the protected branch."""


class RequiredPullRequestReviews(BaseModel):
    """Review requirements for merging into the branch."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    dismissal_restrictions: Optional[DismissalRestrictions] = None
    dismiss_stale_reviews: bool = False
    require_code_owner_reviews: bool = False


class RequiredStatusChecks(BaseModel):
    """Status checks that must pass before merging."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    strict: bool = False
    contexts: tuple[str, ...] = ()


class ProtectionOptions(BaseModel):
    """Protection policy sent when locking a branch.

    Field names match the JSON body of the protection endpoint, so a
    ``branchProtectionOptions`` block from a config file validates directly.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    enforce_admins: bool = False
    required_pull_request_reviews: Optional[RequiredPullRequestReviews] = None
    required_status_checks: Optional[RequiredStatusChecks] = None
    restrictions: Optional[Restrictions] = None

    def to_payload(self) -> dict[str, Any]:
        """Render the request body for the protection endpoint.

        The API requires all four top-level keys, so absent policies are sent
        as null. An absent ``dismissal_restrictions`` is left out entirely.
        """
        payload = self.model_dump(mode="json")
        reviews = payload["required_pull_request_reviews"]
        if reviews is not None and reviews["dismissal_restrictions"] is None:
            del reviews["dismissal_restrictions"]
        return payload


# Basic protection only, no reviews, status checks or push restrictions.
DEFAULT_PROTECTION_OPTIONS = ProtectionOptions()


def branch_names(branches: Iterable[Branch]) -> str:
    """Return branch names as a comma-separated string."""
    return ", ".join(branch.name for branch in branches)
