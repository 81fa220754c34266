"""
Command-line interface for the release pinning tool.
"""

from __future__ import annotations

import logging
from logging.handlers import RotatingFileHandler
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.tree import Tree

from .models import HierarchyEntry, PinError, PinnedEntry, PinSettings, DEFAULT_REMOTE
from .pin_orchestrator import PinOrchestrator
from . import __version__ as PACKAGE_VERSION


console = Console()
logger = logging.getLogger(__name__)

LOG_ENV_VAR = "RELEASE_PIN_LOG"
LOG_STEM = "release-pin"


def _print_version(ctx, param, value):
    """Eager option callback to print version and exit."""
    if not value or ctx.resilient_parsing:
        return
    click.echo(f"release-pin {PACKAGE_VERSION}")
    ctx.exit()


def _default_log_path() -> Path:
    """Determine default log file path (~/.release-pin/release-pin.log)."""
    env_path = os.environ.get(LOG_ENV_VAR)
    if env_path:
        p = Path(env_path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        return p
    base = Path.home() / f".{LOG_STEM}"
    base.mkdir(parents=True, exist_ok=True)
    return base / f"{LOG_STEM}.log"


class SafeConsoleFilter(logging.Filter):
    """Replace characters the console encoding cannot represent.

    Legacy Windows code pages raise UnicodeEncodeError on some hashes/subjects
    pulled from commit logs. File handlers keep the full UTF-8 text.
    """

    def __init__(self, encoding: Optional[str] = None):
        super().__init__()
        self.encoding = encoding or getattr(sys.stderr, "encoding", None) or "utf-8"

    def filter(self, record: logging.LogRecord) -> bool:  # always keep the record
        try:
            message = record.getMessage()
            message.encode(self.encoding, errors="strict")
        except UnicodeEncodeError:
            record.msg = message.encode(self.encoding, errors="replace").decode(self.encoding, errors="replace")
            record.args = ()
        except (TypeError, ValueError):
            pass
        return True


def setup_logging(verbose: bool = False, console_level: Optional[str] = None, log_file: Optional[Path] = None) -> Path:
    """Configure root logging for a run and return the log file to show the user.

    - Per-run log file: <stem>-YYYYMMDD_HHMMSS.log
    - Rotating aggregate log: <stem>.log
    - Console logging only with --verbose or --log-level
    """
    provided = Path(log_file) if log_file else _default_log_path()
    if provided.is_dir():
        base_dir, base_stem = provided, LOG_STEM
        aggregate_path = base_dir / f"{LOG_STEM}.log"
    else:
        base_dir, base_stem = provided.parent, provided.stem or LOG_STEM
        aggregate_path = provided
    base_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    per_run_path = base_dir / f"{base_stem}-{timestamp}.log"

    root = logging.getLogger()
    # Repeated invocations (tests, CliRunner) must not stack handlers
    root.handlers.clear()
    root.setLevel(logging.DEBUG)

    file_fmt = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    run_handler = logging.FileHandler(str(per_run_path), encoding="utf-8")
    run_handler.setLevel(logging.DEBUG)
    run_handler.setFormatter(file_fmt)
    root.addHandler(run_handler)

    aggregate_handler = RotatingFileHandler(
        str(aggregate_path), maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    aggregate_handler.setLevel(logging.DEBUG)
    aggregate_handler.setFormatter(file_fmt)
    root.addHandler(aggregate_handler)

    # GitPython logs every command at DEBUG; keep file logs readable
    logging.getLogger("git").setLevel(logging.INFO)

    if verbose or console_level:
        level = getattr(logging, (console_level or "info").upper(), logging.INFO)
        console_handler = RichHandler(console=console, rich_tracebacks=True)
        console_handler.setLevel(level)
        console_handler.setFormatter(logging.Formatter("%(message)s"))
        enc = getattr(console.file, "encoding", None) or getattr(sys.stderr, "encoding", None) or "utf-8"
        console_handler.addFilter(SafeConsoleFilter(encoding=enc))
        root.addHandler(console_handler)

    return per_run_path


def _maybe_print_log_notice(verbose: bool, console_level: Optional[str], log_path: Path) -> None:
    """Inform user about logging destination and how to enable console logs."""
    if verbose or console_level:
        return
    console.print(f"[dim]Logs are written to {log_path}. Use -v or --log-level to see them here.[/dim]")


def _build_orchestrator(ctx: click.Context) -> PinOrchestrator:
    settings = PinSettings(remote=ctx.obj["remote"], strict=ctx.obj["strict"])
    return PinOrchestrator(ctx.obj.get("repo_path"), settings=settings)


@click.group()
@click.option(
    "--version",
    "-V",
    is_flag=True,
    callback=_print_version,
    expose_value=False,
    is_eager=True,
    help="Show version and exit.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose console logging (INFO)")
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"], case_sensitive=False),
    default=None,
    help="Console log level. By default, console logging is disabled.",
)
@click.option(
    "--repo-path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Path to the root repository (defaults to current directory)",
)
@click.option("--strict", is_flag=True, help="Abort on the first failed git step instead of continuing.")
@click.option("--remote", default=DEFAULT_REMOTE, show_default=True, help="Remote used for identity and tag fetches.")
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    log_level: Optional[str],
    repo_path: Optional[Path],
    strict: bool,
    remote: str,
) -> None:
    """Pin two revisions across a repository and all of its submodules."""
    log_path = setup_logging(verbose, console_level=log_level)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["console_level"] = log_level
    ctx.obj["log_path"] = log_path
    ctx.obj["repo_path"] = repo_path.resolve() if isinstance(repo_path, Path) else None
    ctx.obj["strict"] = strict
    ctx.obj["remote"] = remote
    logger.debug(f"CLI init: cwd={Path.cwd()} repo_path={ctx.obj['repo_path']} strict={strict} remote={remote}")


@cli.command()
@click.argument("target")
@click.argument("source")
@click.option("--commits", "with_commits", is_flag=True, help="Also count commits between the pinned root revisions.")
@click.pass_context
def pin(ctx: click.Context, target: str, source: str, with_commits: bool) -> None:
    """
    Pin TARGET (from) and SOURCE (to) in every repository.

    Example: release-pin pin v1.2.0 main
    """
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        orchestrator = _build_orchestrator(ctx)
        entries = orchestrator.pin(target, source, collect_commits=with_commits)
        _display_pinned(entries, target, source)

        if with_commits:
            root = orchestrator.root_repo
            between = [c for c in root.commits if c.subject is not None]
            console.print(f"\n{len(between)} commit(s) in {root.name_with_owner} between {target} and {source}")
    except PinError as e:
        console.print(f"\n❌ **Pin Error:** {e}", style="bold red")
        logger.debug("Pin aborted due to PinError", exc_info=True)
        sys.exit(1)


@cli.command()
@click.pass_context
def hierarchy(ctx: click.Context) -> None:
    """Display the repository hierarchy."""
    try:
        _maybe_print_log_notice(ctx.obj.get("verbose"), ctx.obj.get("console_level"), ctx.obj.get("log_path"))
        orchestrator = _build_orchestrator(ctx)
        _display_hierarchy(orchestrator.get_hierarchy_entries())
    except PinError as e:
        console.print(f"\n❌ **Error displaying hierarchy:** {e}", style="bold red")
        logger.debug("Error in hierarchy command", exc_info=True)
        sys.exit(1)


@cli.command()
def version() -> None:
    """Print the current release-pin version."""
    console.print(f"release-pin {PACKAGE_VERSION}")


def _display_pinned(entries: List[PinnedEntry], target: str, source: str) -> None:
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Repository", style="cyan", no_wrap=True)
    table.add_column(f"From ({target})", style="red", no_wrap=True)
    table.add_column(f"To ({source})", style="green", no_wrap=True)
    table.add_column("Changed", justify="center")
    table.add_column("Compare", style="dim", overflow="fold")

    for entry in entries:
        table.add_row(
            "  " * entry.depth + entry.name,
            entry.from_hash or "-",
            entry.to_hash or "-",
            "✅" if entry.is_changed else "",
            entry.compare_url if entry.is_changed else "",
        )

    console.print(table)


def _display_hierarchy(entries: List[HierarchyEntry]) -> None:
    if not entries:
        return
    root_entry = entries[0]
    tree = Tree(f"📁 {root_entry.name} [dim]{root_entry.path}[/dim]")
    # Keyed by path; several submodules may share one remote
    nodes = {root_entry.path: tree}
    for entry in entries[1:]:
        parent_node = nodes.get(entry.parent_path, tree)
        nodes[entry.path] = parent_node.add(f"📦 {entry.name} [dim]{entry.path}[/dim]")
    console.print(tree)


def main() -> None:
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n\n🚫 **Operation cancelled by user**", style="bold yellow")
        logger.debug("Top-level cancellation (KeyboardInterrupt)", exc_info=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
