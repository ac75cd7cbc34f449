"""
Error output and exit codes for the beads-bridge CLI.

Core code raises BridgeError subclasses; commands hand them to
report_bridge_error, which prints a hint and picks the exit code.
"""

from enum import IntEnum

from rich.console import Console
from rich.markup import escape

from beads_bridge.core.errors import (
    AlreadyExistsError,
    AuthenticationError,
    BridgeError,
    ConflictError,
    NotFoundError,
    RateLimitError,
    SubprocessError,
    ValidationError,
)

console = Console(stderr=True)


class ExitCode(IntEnum):
    """Process exit codes shared by every command."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    """Backend, git or bd failure, or at least one entity failed to sync."""
    USER_ERROR = 2
    """Bad input or configuration the user can fix."""
    SIGINT = 130


def print_error(
    problem: str,
    *,
    reason: str | None = None,
    solution: str | None = None,
) -> None:
    """
    Print an error to stderr, with an optional cause and a command to try.

    Text is escaped, so brackets in messages from git, gh or the APIs are
    never read as Rich markup.

    Example:
        >>> print_error(
        ...     "Shortcut rejected the API token",
        ...     reason="401 Unauthorized",
        ...     solution="export SHORTCUT_API_TOKEN=...",
        ... )
    """
    lines = [f"[bold red]✗[/bold red] {escape(problem)}"]
    if reason:
        lines.append(f"  [dim]{escape(reason)}[/dim]")
    if solution:
        lines.append(f"  [cyan]Run:[/cyan] {escape(solution)}")
    console.print("\n".join(lines))


def exit_code_for(error: BridgeError) -> ExitCode:
    """Exit code for a core error. Bad input and missing things are user errors."""
    user_errors = (
        ValidationError,
        NotFoundError,
        AlreadyExistsError,
        ConflictError,
        AuthenticationError,
    )
    if isinstance(error, user_errors):
        return ExitCode.USER_ERROR
    return ExitCode.GENERAL_ERROR


def report_bridge_error(error: BridgeError) -> ExitCode:
    """Print a core error with guidance and return the exit code to use."""
    if isinstance(error, AuthenticationError):
        print_error(
            str(error),
            reason="The backend rejected the configured credentials",
            solution="gh auth login  # or set SHORTCUT_API_TOKEN",
        )
    elif isinstance(error, RateLimitError):
        wait = f" Retry after {error.retry_after}s." if error.retry_after else ""
        print_error(str(error), reason=f"The backend is rate limiting requests.{wait}")
    elif isinstance(error, ConflictError):
        print_error(
            str(error),
            solution="beads-bridge mapping resolve <mapping-id> --strategy beads_wins",
        )
    elif isinstance(error, SubprocessError):
        print_error(
            str(error),
            reason=error.stderr.strip() or None,
            solution="Check that git, bd and gh are installed and on PATH",
        )
    else:
        print_error(str(error))
    return exit_code_for(error)


def print_invalid_ref_error(text: str) -> None:
    """Print error when an external reference cannot be parsed."""
    print_error(
        f"Invalid external reference: '{text}'",
        reason="Expected github:<owner>/<repo>#<number>, shortcut:<id>, or an issue/story URL",
        solution="beads-bridge diagram place github:acme/app#5",
    )


def print_mapping_not_found_error(mapping_id: str) -> None:
    """Print error when no mapping has the given id."""
    print_error(
        f"Mapping not found: {mapping_id}",
        solution="beads-bridge mapping list",
    )
