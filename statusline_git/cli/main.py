"""statusline-git command line tool."""

from pathlib import Path
from typing import Any, Dict, List, Optional

import typer
from pydantic import ValidationError

from statusline_git.cli import __version__
from statusline_git.cli.utils.context import CLIContext
from statusline_git.cli.utils.output import OutputFormatter
from statusline_git.core.git.git_types import INFO_CATEGORIES, info_to_dict
from statusline_git.core.git.info_service import GitInfoService
from statusline_git.infrastructure.logging import bind_context, get_logger, setup_logging

app = typer.Typer(
    name="statusline-git",
    help="Read-only Git information for shell and editor status lines",
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
    pretty_exceptions_enable=False,
)

logger = get_logger(__name__)


def version_callback(value: bool):
    """Display version and exit."""
    if value:
        typer.echo(f"statusline-git v{__version__}")
        raise typer.Exit()


def _split_categories(values: Optional[List[str]]) -> Optional[List[str]]:
    """Accept both repeated options and comma-separated lists."""
    if values is None:
        return None

    categories = [part.strip() for value in values for part in value.split(",") if part.strip()]
    unknown = sorted(set(categories) - set(INFO_CATEGORIES))
    if unknown:
        raise typer.BadParameter(
            f"unknown categories: {', '.join(unknown)} "
            f"(choose from {', '.join(INFO_CATEGORIES)})"
        )
    return categories


@app.callback()
def main(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit",
    ),
    debug: bool = typer.Option(
        False,
        "--debug",
        "-d",
        help="Enable debug logging on stderr",
    ),
    output_format: str = typer.Option(
        "table",
        "--output",
        "-o",
        help="Output format: table, json, yaml",
    ),
    cwd: Optional[Path] = typer.Option(
        None,
        "--cwd",
        "-C",
        help="Working directory to inspect (default: current directory)",
    ),
    timeout: int = typer.Option(
        1000,
        "--timeout",
        "-t",
        help="Per-command git timeout in milliseconds (capped at 30000)",
    ),
    no_cache: bool = typer.Option(
        False,
        "--no-cache",
        help="Disable result caching",
    ),
):
    """
    statusline-git

    Reports branch, working tree, in-progress operation, version and stash
    information for a Git working directory without ever modifying it.
    """
    setup_logging(level="DEBUG" if debug else None)
    formatter = OutputFormatter(output_format)

    config: Dict[str, Any] = {
        "timeout_ms": timeout,
        "working_dir": cwd or Path.cwd(),
        "cache": {"enabled": not no_cache},
    }
    try:
        service = GitInfoService(config)
    except ValidationError as e:
        formatter.print_error(f"Invalid configuration: {e}")
        raise typer.Exit(2)

    ctx.obj = CLIContext(service=service, formatter=formatter)

    bind_context(working_dir=str(service.config.working_dir))
    if debug:
        logger.debug("cli_started", timeout_ms=service.config.timeout_ms)


@app.command("info")
def info_command(
    ctx: typer.Context,
    only: Optional[List[str]] = typer.Option(
        None, "--only", help="Categories to include (repeatable or comma-separated)"
    ),
    skip: Optional[List[str]] = typer.Option(
        None, "--skip", help="Categories to leave out (repeatable or comma-separated)"
    ),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Bypass caches"),
):
    """
    Show the complete Git snapshot.

    Examples:
        statusline-git info
        statusline-git info --only branch,status
        statusline-git -o json info --skip stash
    """
    cli_ctx: CLIContext = ctx.obj
    info = cli_ctx.run(
        cli_ctx.service.get_git_info(
            force_refresh=refresh,
            only=_split_categories(only),
            skip=_split_categories(skip),
        )
    )

    if not info.is_repo:
        cli_ctx.formatter.print_warning(
            f"Not a git repository: {cli_ctx.service.config.working_dir}"
        )
        raise typer.Exit(1)

    cli_ctx.formatter.print_detail(info.to_dict(), title="Git")


@app.command("branch")
def branch_command(
    ctx: typer.Context,
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Bypass caches"),
):
    """Show the current branch and its divergence from upstream."""
    cli_ctx: CLIContext = ctx.obj
    branch = cli_ctx.run(cli_ctx.service.get_branch_info(force_refresh=refresh))
    cli_ctx.formatter.print_detail(info_to_dict(branch), title="Branch")


@app.command("status")
def status_command(ctx: typer.Context):
    """Show counts of staged, unstaged, untracked and conflicted paths."""
    cli_ctx: CLIContext = ctx.obj
    status = cli_ctx.run(cli_ctx.service.get_working_status())
    cli_ctx.formatter.print_detail(info_to_dict(status), title="Working Tree")


@app.command("operation")
def operation_command(ctx: typer.Context):
    """Show the merge, rebase or other operation in progress."""
    cli_ctx: CLIContext = ctx.obj
    operation = cli_ctx.run(cli_ctx.service.get_operation_status())
    cli_ctx.formatter.print_detail(info_to_dict(operation), title="Operation")


@app.command("version")
def version_command(ctx: typer.Context):
    """Show the latest commit and its distance from the latest tag."""
    cli_ctx: CLIContext = ctx.obj
    version = cli_ctx.run(cli_ctx.service.get_version_info())
    cli_ctx.formatter.print_detail(info_to_dict(version), title="Version")


@app.command("stash")
def stash_command(ctx: typer.Context):
    """Show the stash size and newest entry."""
    cli_ctx: CLIContext = ctx.obj
    stash = cli_ctx.run(cli_ctx.service.get_stash_info())
    cli_ctx.formatter.print_detail(info_to_dict(stash), title="Stash")


@app.command("check")
def check_command(ctx: typer.Context):
    """
    Check whether the working directory is inside a Git repository.

    Exits with status 1 when it is not.
    """
    cli_ctx: CLIContext = ctx.obj
    is_repo = cli_ctx.run(cli_ctx.service.is_git_repo())
    cli_ctx.formatter.print_value("is_repo", is_repo)
    if not is_repo:
        raise typer.Exit(1)


@app.command("large")
def large_command(ctx: typer.Context):
    """Report whether the repository counts as large."""
    cli_ctx: CLIContext = ctx.obj
    is_large = cli_ctx.run(cli_ctx.service.is_large_repository())
    cli_ctx.formatter.print_value("is_large", is_large)


if __name__ == "__main__":
    app()
