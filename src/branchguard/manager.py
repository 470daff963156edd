"""Lock and unlock GitHub branches matching a pattern."""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, Optional, Union

from branchguard.github import GitHubClient, TransportError
from branchguard.log import VERBOSE
from branchguard.models import Branch, ProtectionOptions, branch_names

NO_MATCHING_BRANCHES = "No matching branches found"
DRY_RUN_LOCK = "Rerun without the dry run option to lock the following branches:"
DRY_RUN_UNLOCK = "Rerun without the dry run option to unlock the following branches:"
LOCK_ATTEMPT = "Attempting to lock the following branches:"
UNLOCK_ATTEMPT = "Attempting to unlock the following branches:"
LOCK_SUCCESS = "Locked:"
UNLOCK_SUCCESS = "Unlocked:"

Pattern = Union[str, re.Pattern]


@dataclass(frozen=True)
class Completed:
    """Every matched branch was handled (or would be, for a dry run)."""

    affected_branches: tuple[Branch, ...] = ()

    @property
    def error(self) -> None:
        """Always None, a completed operation has no error."""
        return None

    @property
    def ok(self) -> bool:
        """Whether the operation finished without an error."""
        return True


@dataclass(frozen=True)
class PartialFailure:
    """A request failed. ``affected_branches`` lists the branches changed before it."""

    affected_branches: tuple[Branch, ...]
    error: TransportError

    @property
    def ok(self) -> bool:
        """Whether the operation finished without an error."""
        return False


OperationResult = Union[Completed, PartialFailure]


def compile_branch_pattern(pattern: str) -> re.Pattern:
    """Compile a branch regular expression. Matching is case-insensitive."""
    return re.compile(pattern, re.IGNORECASE)


def filter_branches(branches: Iterable[Branch], pattern: Pattern) -> list[Branch]:
    """Return the branches whose name matches ``pattern`` anywhere, in their original order."""
    if isinstance(pattern, str):
        pattern = compile_branch_pattern(pattern)
    return [branch for branch in branches if pattern.search(branch.name)]


class BranchManager:
    """Lock and unlock every branch of a repository that matches a pattern.

    GitHub has no bulk protection endpoint, so one request is sent per branch,
    in order, stopping at the first failure. The returned result always lists
    the branches that were actually changed so they can be reconciled by hand.
    Concurrent runs against the same repository are not coordinated.
    """

    def __init__(self, client: GitHubClient, logger: Optional[logging.Logger] = None) -> None:
        """Initialize manager.

        Args:
            client: GitHub API client
            logger: Logger for progress messages
        """
        self.client = client
        self.log = logger or logging.getLogger(__name__)

    def get_matching_branches(
        self,
        repository: str,
        pattern: Pattern,
        protected_only: bool = False,
    ) -> list[Branch]:
        """List branches of ``repository`` whose names match ``pattern``.

        Raises:
            TransportError: If the branches cannot be listed
        """
        if isinstance(pattern, str):
            pattern = compile_branch_pattern(pattern)
        self.log.log(VERBOSE, "Fetching branches in %s that match the pattern %s", repository, pattern.pattern)
        branches = self.client.list_branches(repository, protected_only=protected_only)
        return filter_branches(branches, pattern)

    def lock_matching_branches(
        self,
        repository: str,
        pattern: Pattern,
        options: Optional[ProtectionOptions] = None,
        dry_run: bool = False,
    ) -> OperationResult:
        """Protect every branch matching ``pattern``.

        Already protected branches are protected again with ``options``.

        Args:
            repository: Full name of the repository, e.g. ``owner/repo``
            pattern: Regular expression matched against branch names
            options: Protection policy, defaults to basic protection only
            dry_run: Only report the branches that would be locked

        Returns:
            Completed with the locked branches, or PartialFailure with the
            branches locked before the error.
        """
        locked: list[Branch] = []
        try:
            branches = self.get_matching_branches(repository, pattern)
            if not branches:
                self.log.info(NO_MATCHING_BRANCHES)
                return Completed()
            if dry_run:
                self.log.info("%s %s", DRY_RUN_LOCK, branch_names(branches))
                return Completed(tuple(branches))

            self.log.info("%s %s", LOCK_ATTEMPT, branch_names(branches))
            for branch in branches:
                self.log.log(VERBOSE, "Locking branch '%s' in '%s'", branch.name, repository)
                self.client.apply_protection(repository, branch.name, options)
                locked.append(branch)
                self.log.log(VERBOSE, "Locked branch '%s' in '%s'", branch.name, repository)
        except TransportError as err:
            return PartialFailure(tuple(locked), err)

        self.log.info("%s %s", LOCK_SUCCESS, branch_names(locked))
        return Completed(tuple(locked))

    def unlock_matching_branches(
        self,
        repository: str,
        pattern: Pattern,
        dry_run: bool = False,
    ) -> OperationResult:
        """Remove protection from every protected branch matching ``pattern``.

        Args:
            repository: Full name of the repository, e.g. ``owner/repo``
            pattern: Regular expression matched against branch names
            dry_run: Only report the branches that would be unlocked

        Returns:
            Completed with the unlocked branches, or PartialFailure with the
            branches unlocked before the error.
        """
        unlocked: list[Branch] = []
        try:
            branches = self.get_matching_branches(repository, pattern, protected_only=True)
            if not branches:
                self.log.info(NO_MATCHING_BRANCHES)
                return Completed()
            if dry_run:
                self.log.info("%s %s", DRY_RUN_UNLOCK, branch_names(branches))
                return Completed(tuple(branches))

            self.log.info("%s %s", UNLOCK_ATTEMPT, branch_names(branches))
            for branch in branches:
                self.log.log(VERBOSE, "Unlocking branch '%s' in '%s'", branch.name, repository)
                self.client.remove_protection(repository, branch.name)
                unlocked.append(branch)
                self.log.log(VERBOSE, "Unlocked branch '%s' in '%s'", branch.name, repository)
        except TransportError as err:
            return PartialFailure(tuple(unlocked), err)

        self.log.info("%s %s", UNLOCK_SUCCESS, branch_names(unlocked))
        return Completed(tuple(unlocked))
