"""Command line interface for branchguard."""

import logging
import re
from pathlib import Path
from typing import Annotated, Callable, List, Optional

import typer
from rich import print
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from branchguard import __version__
from branchguard.config import ConfigurationError, Settings, protection_options_from_flags, resolve_settings
from branchguard.github import GitHubClient, TransportError
from branchguard.log import configure_logging
from branchguard.manager import BranchManager, OperationResult, compile_branch_pattern

app = typer.Typer(help="Lock and unlock GitHub branches matching a regular expression")
console = Console()


def parse_branch_pattern(value: Optional[str]) -> Optional[re.Pattern]:
    """Compile the --branch option as a case-insensitive regular expression."""
    if value is None:
        return None
    try:
        return compile_branch_pattern(value)
    except re.error as err:
        raise typer.BadParameter(f"Invalid regular expression: {err}") from err


def version_callback(value: bool) -> None:
    if value:
        print(f"branchguard {__version__}")
        raise typer.Exit()


def print_error(error: Exception) -> None:
    """Print an error without wrapping long URLs or interpreting markup in the message."""
    console.print(f"[red]Error:[/red] {escape(str(error))}", soft_wrap=True)


RepositoryOption = Annotated[
    Optional[str],
    typer.Option("--repository", "-r", help="Full name of the repository, e.g. owner/repo"),
]
BranchOption = Annotated[
    Optional[str],
    typer.Option(
        "--branch",
        "-b",
        help="Case-insensitive regular expression matched against branch names",
        callback=parse_branch_pattern,
    ),
]
GithubApiOption = Annotated[
    Optional[str],
    typer.Option("--github-api", "-g", help="GitHub API URL, defaults to https://api.github.com"),
]
TokenOption = Annotated[
    Optional[str],
    typer.Option("--token", "-t", envvar="GITHUB_TOKEN", help="GitHub personal access token"),
]
CaFileOption = Annotated[Optional[Path], typer.Option("--ca-file", help="Path to a CA bundle to trust")]
FromCheckoutOption = Annotated[
    Optional[Path],
    typer.Option("--from-checkout", help="Use the origin remote of this checkout when --repository is not given"),
]
DryRunOption = Annotated[bool, typer.Option("--dry-run", "-m", help="Show which branches would be affected")]
VerboseOption = Annotated[bool, typer.Option("--verbose", "-v", help="Show verbose output")]
DebugOption = Annotated[bool, typer.Option("--debug", help="Show debug output")]


@app.callback()
def main(
    version: Annotated[
        bool,
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show the version and exit"),
    ] = False,
) -> None:
    """Lock and unlock GitHub branches matching a regular expression."""


def get_settings(logger: logging.Logger, **options) -> Settings:
    """Resolve options, exiting with an error if any are missing."""
    try:
        return resolve_settings(logger=logger, **options)
    except ConfigurationError as err:
        print_error(err)
        raise typer.Exit(code=1) from err


def run(
    settings: Settings,
    logger: logging.Logger,
    action: Callable[[BranchManager], OperationResult],
) -> OperationResult:
    """Run ``action`` with a branch manager connected to the configured API."""
    try:
        with GitHubClient(
            api_url=settings.github_api,
            token=settings.token,
            ca_contents=settings.ca_contents,
            timeout=settings.timeout,
            logger=logger,
        ) as client:
            return action(BranchManager(client, logger))
    except TransportError as err:
        print_error(err)
        raise typer.Exit(code=1) from err


def create_branch_table(title: str) -> Table:
    """Create a table with standard branch columns."""
    table = Table(
        title=title,
        show_header=True,
        header_style="bold",
        title_style="bold blue",
        show_edge=True,
    )
    table.add_column("Branch", style="cyan", no_wrap=True)
    table.add_column("Commit", style="yellow", no_wrap=True)
    table.add_column("Protected", style="green", justify="center", no_wrap=True)
    return table


def report_result(result: OperationResult, verb: str, past: str, dry_run: bool) -> None:
    """Print the affected branches and exit with an error if the operation failed."""
    branches = result.affected_branches
    if branches:
        if dry_run:
            title = f"Would {verb} {len(branches)} branch(es)"
        elif result.ok:
            title = f"{past} {len(branches)} branch(es)"
        else:
            title = f"{past} {len(branches)} branch(es) before the error"
        table = create_branch_table(title)
        for branch in branches:
            table.add_row(escape(branch.name), branch.commit.sha[:7], "yes" if branch.protected else "no")
        console.print(table)
        if dry_run:
            console.print(f"\n[yellow]Dry run:[/yellow] rerun without --dry-run to {verb} these branches")
    elif result.ok:
        console.print(
            Panel(
                "[green]No matching branches found[/green]",
                style="green",
                padding=(0, 2),
                expand=False,
            )
        )

    if not result.ok:
        print_error(result.error)
        raise typer.Exit(code=1)


@app.command()
def lock(
    repository: RepositoryOption = None,
    branch: BranchOption = None,
    github_api: GithubApiOption = None,
    token: TokenOption = None,
    ca_file: CaFileOption = None,
    from_checkout: FromCheckoutOption = None,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = False,
    debug: DebugOption = False,
    enforce_admins: Annotated[bool, typer.Option(help="Enforce protection for administrators")] = False,
    status_check: Annotated[
        Optional[List[str]],
        typer.Option("--status-check", help="Require a status check context to pass (repeatable)"),
    ] = None,
    strict: Annotated[bool, typer.Option(help="Require branches to be up to date before merging")] = False,
    require_reviews: Annotated[bool, typer.Option(help="Require pull request reviews")] = False,
    dismiss_stale_reviews: Annotated[bool, typer.Option(help="Dismiss approvals when new commits are pushed")] = False,
    code_owner_reviews: Annotated[bool, typer.Option(help="Require review from code owners")] = False,
    restrict_user: Annotated[
        Optional[List[str]],
        typer.Option("--restrict-user", help="Only allow this user to push (repeatable)"),
    ] = None,
    restrict_team: Annotated[
        Optional[List[str]],
        typer.Option("--restrict-team", help="Only allow this team to push (repeatable)"),
    ] = None,
) -> None:
    """Lock branches matching a regular expression."""
    logger = configure_logging(verbose, debug)
    settings = get_settings(
        logger,
        branch=branch,
        repository=repository,
        github_api=github_api,
        token=token,
        ca_file=ca_file,
        from_checkout=from_checkout,
        protection_options=protection_options_from_flags(
            enforce_admins=enforce_admins,
            status_checks=status_check or (),
            strict=strict,
            require_reviews=require_reviews,
            dismiss_stale_reviews=dismiss_stale_reviews,
            code_owner_reviews=code_owner_reviews,
            restrict_users=restrict_user or (),
            restrict_teams=restrict_team or (),
        ),
    )
    result = run(
        settings,
        logger,
        lambda manager: manager.lock_matching_branches(
            settings.repository,
            settings.branch,
            settings.protection_options,
            dry_run=dry_run,
        ),
    )
    report_result(result, "lock", "Locked", dry_run)


@app.command()
def unlock(
    repository: RepositoryOption = None,
    branch: BranchOption = None,
    github_api: GithubApiOption = None,
    token: TokenOption = None,
    ca_file: CaFileOption = None,
    from_checkout: FromCheckoutOption = None,
    dry_run: DryRunOption = False,
    verbose: VerboseOption = False,
    debug: DebugOption = False,
) -> None:
    """Unlock protected branches matching a regular expression."""
    logger = configure_logging(verbose, debug)
    settings = get_settings(
        logger,
        branch=branch,
        repository=repository,
        github_api=github_api,
        token=token,
        ca_file=ca_file,
        from_checkout=from_checkout,
    )
    result = run(
        settings,
        logger,
        lambda manager: manager.unlock_matching_branches(settings.repository, settings.branch, dry_run=dry_run),
    )
    report_result(result, "unlock", "Unlocked", dry_run)


if __name__ == "__main__":
    app()
