"""Typer application and CLI entry point for tabgen.

Commands:

* ``generate`` -- run every registry entry and write completion scripts.
* ``list`` -- show the registry with availability and script status.
* ``path`` -- print the completions root.
* ``profile`` -- print the PowerShell snippet that loads the scripts.
* ``config show`` -- print the effective configuration.

The :func:`main` function is the console-script entry point declared in
``pyproject.toml``. Unhandled exceptions are written to a crash log under
the data directory.
"""

from __future__ import annotations

import signal
import sys
import threading
import traceback
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Optional

import typer

from tabgen import __version__
from tabgen.config import Settings
from tabgen.exceptions import TabgenError
from tabgen.exit_codes import EXIT_CANCELLED, EXIT_GENERIC_FAILURE
from tabgen.models import RunResult, RunStatus, RunSummary
from tabgen.output import (
    OutputFormat,
    error,
    get_output,
    info,
    print_data,
    print_json,
    print_table,
    success,
    suggest,
    warning,
)


app = typer.Typer(
    name="tabgen",
    help="Generate PowerShell completion scripts for installed CLI tools.",
    no_args_is_help=True,
    add_completion=False,
    rich_markup_mode="rich",
)

config_app = typer.Typer(no_args_is_help=True)
app.add_typer(config_app, name="config", help="Configuration management.")


def _version_callback(value: bool) -> None:
    """Print version and exit when --version is passed."""
    if value:
        typer.echo(f"tabgen {__version__}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: bool = typer.Option(
        False,
        "--version",
        callback=_version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
    json_output: bool = typer.Option(False, "--json", help="JSON output format."),
    plain_output: bool = typer.Option(False, "--plain", help="Plain text output."),
    no_color: bool = typer.Option(False, "--no-color", help="Disable color output."),
    quiet: bool = typer.Option(
        False, "--quiet", "-q", help="Suppress non-essential output."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug output."
    ),
) -> None:
    """Root callback: install the global output manager and logging."""
    from tabgen.output import OutputManager, configure_logging, set_output

    fmt = OutputFormat.AUTO
    if json_output:
        fmt = OutputFormat.JSON
    elif plain_output:
        fmt = OutputFormat.PLAIN

    output = OutputManager(format=fmt, no_color=no_color, quiet=quiet, verbose=verbose)
    set_output(output)
    configure_logging(output)


# ------------------------------------------------------------------ #
# Helpers
# ------------------------------------------------------------------ #


def _load_registry(settings: Settings, only: Optional[list[str]] = None) -> dict[str, Any]:
    from tabgen.registry import build_registry, load_registry_file

    user = None
    if settings.registry_file is not None:
        get_output().debug(f"Using registry file {settings.registry_file}")
        user = load_registry_file(settings.registry_file)
    return build_registry(user, disabled=settings.disabled, only=only or None)


def _report(result: RunResult) -> None:
    """Live per-entry line on stderr."""
    if result.status == RunStatus.GENERATED:
        success(f"{result.name}: generated {result.path}")
    elif result.status == RunStatus.SKIPPED_EXISTS:
        info(f"{result.name}: exists, skipped")
    elif result.status == RunStatus.SKIPPED_NOT_FOUND:
        get_output().debug(f"{result.name}: not installed, skipped")
    else:
        error(f"{result.name}: {result.error}")


def _print_summary(summary: RunSummary) -> None:
    counts = summary.counts()
    if get_output().format == OutputFormat.JSON:
        print_json(
            {
                "counts": counts,
                "cancelled": summary.cancelled,
                "results": [r.model_dump(mode="json") for r in summary.results],
            }
        )
        return

    labels = {
        RunStatus.GENERATED.value: "generated",
        RunStatus.SKIPPED_NOT_FOUND.value: "skipped (not found)",
        RunStatus.SKIPPED_EXISTS.value: "skipped (exists)",
        RunStatus.FAILED.value: "failed",
    }
    rows = [[labels[status], str(count)] for status, count in counts.items()]
    print_table(["status", "count"], rows, title="Completion scripts")


def _install_cancel_handler(cancel: threading.Event) -> Optional[Callable[..., Any]]:
    """Make the first Ctrl-C stop the run after the current tool.

    A second Ctrl-C exits immediately with :data:`EXIT_CANCELLED`. Returns
    the previous handler, or ``None`` when not on the main thread.
    """

    def _handler(signum: int, frame: Any) -> None:  # noqa: ANN401
        if cancel.is_set():
            sys.stderr.write("\nCancelled.\n")
            sys.exit(EXIT_CANCELLED)
        cancel.set()
        sys.stderr.write("\nStopping after the current tool (Ctrl-C again to abort).\n")

    try:
        return signal.signal(signal.SIGINT, _handler)
    except ValueError:
        return None


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


@app.command("generate")
def generate_command(
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite existing completion scripts."
    ),
    tools: Optional[list[str]] = typer.Option(
        None, "--tool", "-t", help="Only process this tool (repeatable)."
    ),
    completions_dir: Optional[str] = typer.Option(
        None, "--completions-dir", help="Directory to write scripts to."
    ),
    registry: Optional[str] = typer.Option(
        None, "--registry", help="User registry file (JSON or YAML)."
    ),
    timeout: Optional[float] = typer.Option(
        None, "--timeout", min=0, help="Per-command timeout in seconds (0 disables)."
    ),
) -> None:
    """Generate completion scripts for every installed tool in the registry.

    Tools not on PATH are skipped, as are tools whose script already exists
    unless ``--force`` is given. Exits with status 3 if any tool failed.

    Example::

        tabgen generate
        tabgen generate --force --tool gh --tool kubectl
    """
    from tabgen.config import resolve_settings
    from tabgen.runner import run_registry

    try:
        settings = resolve_settings(completions_dir, registry, timeout)
        entries = _load_registry(settings, tools)
    except TabgenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    get_output().debug(
        f"{len(entries)} registry entries, writing to {settings.completions_dir}"
    )

    cancel = threading.Event()
    previous = _install_cancel_handler(cancel)
    try:
        summary = run_registry(
            entries,
            settings.completions_dir,
            force=force,
            timeout=settings.timeout,
            cancel=cancel,
            on_result=_report,
        )
    finally:
        if previous is not None:
            signal.signal(signal.SIGINT, previous)

    _print_summary(summary)

    if summary.cancelled:
        warning("Run cancelled; remaining tools were not processed.")
    elif summary.count(RunStatus.GENERATED):
        suggest("Run 'tabgen profile' to load the scripts from your PowerShell profile.")

    if summary.exit_code:
        raise typer.Exit(code=summary.exit_code)


@app.command("list")
def list_command(
    completions_dir: Optional[str] = typer.Option(
        None, "--completions-dir", help="Directory holding the scripts."
    ),
    registry: Optional[str] = typer.Option(
        None, "--registry", help="User registry file (JSON or YAML)."
    ),
) -> None:
    """Show the registry with availability and script status."""
    from tabgen.config import resolve_settings
    from tabgen.registry import resolve_entry
    from tabgen.runner import is_available, script_path

    try:
        settings = resolve_settings(completions_dir, registry)
        entries = _load_registry(settings)
    except TabgenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    rows: list[list[str]] = []
    for name, raw in entries.items():
        try:
            entry = resolve_entry(name, raw)
        except TabgenError as exc:
            rows.append([name, "", "", "invalid", str(exc)])
            continue
        if entry.skip_check:
            available = "unchecked"
        else:
            available = "yes" if is_available(entry.check_command) else "no"
        installed = script_path(settings.completions_dir, name).exists()
        rows.append(
            [
                name,
                entry.check_command,
                entry.generate_command,
                available,
                "yes" if installed else "no",
            ]
        )

    print_table(
        ["tool", "check", "command", "available", "script"],
        rows,
        title="Registry",
    )


@app.command("path")
def path_command(
    completions_dir: Optional[str] = typer.Option(
        None, "--completions-dir", help="Override the completions directory."
    ),
) -> None:
    """Print the directory completion scripts are written to."""
    from tabgen.config import resolve_settings

    try:
        settings = resolve_settings(completions_dir)
    except TabgenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    print_data(str(settings.completions_dir))


def profile_snippet(root: Path) -> str:
    """Return the PowerShell snippet that dot-sources every ``_*.ps1`` in *root*."""
    quoted = str(root).replace("'", "''")
    return (
        "# tabgen completions\n"
        f"$tabgenCompletions = '{quoted}'\n"
        "if (Test-Path $tabgenCompletions) {\n"
        "    Get-ChildItem -Path $tabgenCompletions -Filter '_*.ps1' |\n"
        "        ForEach-Object { . $_.FullName }\n"
        "}"
    )


@app.command("profile")
def profile_command(
    completions_dir: Optional[str] = typer.Option(
        None, "--completions-dir", help="Override the completions directory."
    ),
) -> None:
    """Print the PowerShell profile snippet that loads generated scripts.

    Example::

        tabgen profile >> $PROFILE
    """
    from tabgen.config import resolve_settings

    try:
        settings = resolve_settings(completions_dir)
    except TabgenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    print_data(profile_snippet(settings.completions_dir))


@config_app.command("show")
def config_show() -> None:
    """Show the effective configuration after applying env overrides."""
    from tabgen.config import get_config_dir, resolve_settings

    try:
        settings = resolve_settings()
    except TabgenError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    info(f"Config directory: {get_config_dir()}")
    print_json(
        {
            "completions_dir": str(settings.completions_dir),
            "registry_file": str(settings.registry_file) if settings.registry_file else None,
            "timeout_seconds": settings.timeout,
            "disabled": list(settings.disabled),
        }
    )


# ------------------------------------------------------------------ #
# Entry point
# ------------------------------------------------------------------ #


def _write_crash_log(exc: Exception) -> str:
    """Write a crash traceback to disk and return the log file path."""
    from tabgen.config import get_data_dir

    logs_dir = get_data_dir() / "logs"
    logs_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    log_path = logs_dir / f"crash-{timestamp}.log"
    log_path.write_text(traceback.format_exc(), encoding="utf-8")
    return str(log_path)


def main() -> None:
    """CLI entry point invoked by the ``tabgen`` console script.

    :class:`~tabgen.exceptions.TabgenError` instances cause a clean exit
    with the error's ``exit_code``. All other exceptions produce a crash
    log and a generic failure exit.
    """
    try:
        app()
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.stderr.write("\nCancelled.\n")
        sys.exit(EXIT_CANCELLED)
    except Exception as exc:
        if isinstance(exc, TabgenError):
            error(str(exc))
            sys.exit(exc.exit_code)
        else:
            log_path = _write_crash_log(exc)
            error(f"Unexpected error. Debug log: {log_path}")
            sys.exit(EXIT_GENERIC_FAILURE)
