"""Completion generation run: availability check, generation, writing, orchestration.

Each registry entry moves through a fixed, non-looping sequence::

    resolved -> checked -> (skipped_not_found | pending)
             -> (skipped_exists | written) -> generated

Any :class:`~tabgen.exceptions.TabgenError` raised along the way ends the
entry in ``failed``. Entries are processed one at a time: the generation
step mutates the process-wide environment through :func:`scoped_environ`,
so two entries must never overlap.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Mapping, Optional

from tabgen.config import atomic_write
from tabgen.exceptions import GenerationError, TabgenError, WriteError
from tabgen.models import RegistryEntry, RunResult, RunStatus, RunSummary
from tabgen.registry import RawEntry, resolve_entry

logger = logging.getLogger(__name__)

SCRIPT_PREFIX = "_"
SCRIPT_SUFFIX = ".ps1"


# ------------------------------------------------------------------ #
# Availability
# ------------------------------------------------------------------ #


def is_available(check_command: str) -> bool:
    """Return True if the executable named by *check_command* is on ``PATH``.

    Only the first word of *check_command* is looked up. Never raises: an
    empty or unparsable command, or a failed lookup, means "not available".
    """
    try:
        words = shlex.split(check_command, posix=os.name != "nt")
    except ValueError:
        return False
    if not words:
        return False
    try:
        return shutil.which(words[0]) is not None
    except OSError:
        return False


# ------------------------------------------------------------------ #
# Environment overrides
# ------------------------------------------------------------------ #


@contextmanager
def scoped_environ(overrides: Mapping[str, str]) -> Iterator[None]:
    """Apply *overrides* to ``os.environ`` for the duration of the block.

    The prior value, or absence, of every overridden key is restored on
    every exit path, including exceptions, ``KeyboardInterrupt`` and
    ``SystemExit``. Keys not named in *overrides* are never touched.
    """
    saved = {key: os.environ.get(key) for key in overrides}
    try:
        for key, value in overrides.items():
            os.environ[key] = value
        yield
    finally:
        for key, previous in saved.items():
            if previous is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = previous


# ------------------------------------------------------------------ #
# Generation
# ------------------------------------------------------------------ #


def generate(entry: RegistryEntry, timeout: Optional[float] = None) -> str:
    """Run the entry's generation command and return its standard output.

    The command runs through the shell with ``entry.env_overrides`` in
    effect. Output must be valid UTF-8; a leading byte-order mark is
    dropped and line endings are preserved.

    Args:
        entry: The resolved registry entry.
        timeout: Seconds to wait before killing the process tree, or ``None``.

    Returns:
        The completion script text.

    Raises:
        GenerationError: If the process cannot be started, times out, exits
            with a nonzero status, prints nothing, or prints bytes that are
            not UTF-8.
    """
    command = entry.generate_command
    logger.debug("Running %r for %s", command, entry.name)
    with scoped_environ(entry.env_overrides):
        try:
            returncode, out, err = _run_shell(command, timeout)
        except subprocess.TimeoutExpired as exc:
            raise GenerationError(
                command,
                stderr=_decode(exc.stderr),
                reason=f"timed out after {timeout:g}s",
            ) from exc
        except OSError as exc:
            raise GenerationError(command, reason=f"could not be started ({exc})") from exc

    stderr = _decode(err)
    if returncode != 0:
        raise GenerationError(command, returncode=returncode, stderr=stderr)
    try:
        stdout = out.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise GenerationError(
            command,
            returncode=0,
            stderr=stderr,
            reason=f"printed output that is not valid UTF-8 (byte {exc.start})",
        ) from exc
    if not stdout.strip():
        raise GenerationError(command, returncode=0, stderr=stderr, reason="produced no output")
    return stdout


def _run_shell(command: str, timeout: Optional[float]) -> tuple[int, bytes, bytes]:
    """Run *command* in its own process group and return (status, stdout, stderr).

    On timeout or interruption the whole group is killed, so tools started
    by the shell do not outlive the run.
    """
    if os.name == "nt":
        group = {"creationflags": subprocess.CREATE_NEW_PROCESS_GROUP}
    else:
        group = {"start_new_session": True}

    with subprocess.Popen(
        command,
        shell=True,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        **group,
    ) as proc:
        try:
            out, err = proc.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            _kill_tree(proc)
            out, err = proc.communicate()
            raise subprocess.TimeoutExpired(command, timeout, output=out, stderr=err) from None
        except BaseException:
            _kill_tree(proc)
            raise
    return proc.returncode, out, err


def _kill_tree(proc: subprocess.Popen) -> None:
    logger.debug("Killing process tree of pid %d", proc.pid)
    if os.name == "nt":
        subprocess.run(
            ["taskkill", "/F", "/T", "/PID", str(proc.pid)],
            stdin=subprocess.DEVNULL,
            capture_output=True,
        )
        if proc.poll() is None:
            proc.kill()
        return
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass


def _decode(data: Optional[bytes]) -> str:
    """Decode diagnostic output leniently."""
    if not data:
        return ""
    return data.decode("utf-8-sig", errors="replace")


# ------------------------------------------------------------------ #
# Writing
# ------------------------------------------------------------------ #


def script_path(root: Path, name: str) -> Path:
    """Return the destination of *name*'s script: ``<root>/_<name>.ps1``."""
    return root / f"{SCRIPT_PREFIX}{name}{SCRIPT_SUFFIX}"


def write_script(path: Path, text: str) -> None:
    """Write *text* verbatim to *path*, replacing any existing file.

    Raises:
        WriteError: If the directory cannot be created or the file cannot
            be written (permissions, disk full, a file where a directory is
            expected, a directory at *path*).
    """
    try:
        atomic_write(path, text)
    except OSError as exc:
        raise WriteError(str(path), exc.strerror or str(exc)) from exc


# ------------------------------------------------------------------ #
# Orchestration
# ------------------------------------------------------------------ #


def process_entry(
    name: str,
    raw: RawEntry,
    root: Path,
    force: bool = False,
    timeout: Optional[float] = None,
) -> RunResult:
    """Take one registry entry to a terminal state. Attempted exactly once.

    Args:
        name: Tool name (registry key).
        raw: Raw registry value (command string or record).
        root: Completions root directory.
        force: Overwrite an existing script instead of skipping it.
        timeout: Per-command timeout in seconds, or ``None``.

    Returns:
        The :class:`~tabgen.models.RunResult` for this entry.
    """
    path: Optional[Path] = None
    try:
        entry = resolve_entry(name, raw)
        path = script_path(root, entry.name)

        if not entry.skip_check and not is_available(entry.check_command):
            logger.debug("%s: %r not found on PATH", name, entry.check_command)
            return RunResult(name=name, status=RunStatus.SKIPPED_NOT_FOUND, path=str(path))

        if path.exists() and not force:
            logger.debug("%s: %s already exists", name, path)
            return RunResult(name=name, status=RunStatus.SKIPPED_EXISTS, path=str(path))

        text = generate(entry, timeout=timeout)
        write_script(path, text)
    except TabgenError as exc:
        logger.debug("%s failed: %s", name, exc)
        return _failed(name, path, exc)
    except Exception as exc:  # noqa: BLE001 -- one entry must not abort the run
        logger.debug("%s raised unexpectedly", name, exc_info=True)
        return _failed(name, path, exc)

    logger.debug("%s: wrote %s", name, path)
    return RunResult(name=name, status=RunStatus.GENERATED, path=str(path))


def _failed(name: str, path: Optional[Path], exc: Exception) -> RunResult:
    return RunResult(
        name=name,
        status=RunStatus.FAILED,
        path=str(path) if path is not None else None,
        error=str(exc) or type(exc).__name__,
        error_type=type(exc).__name__,
    )


def run_registry(
    registry: Mapping[str, RawEntry],
    root: Path,
    force: bool = False,
    timeout: Optional[float] = None,
    cancel: Optional[threading.Event] = None,
    on_result: Optional[Callable[[RunResult], None]] = None,
) -> RunSummary:
    """Process every registry entry sequentially and collect the results.

    One entry's failure never stops the rest. *cancel* is checked before
    each entry; once set, the remaining entries are not attempted and the
    summary is marked cancelled.

    Args:
        registry: Ordered ``{name: raw value}`` mapping.
        root: Completions root directory.
        force: Overwrite existing scripts.
        timeout: Per-command timeout in seconds, or ``None``.
        cancel: Optional event requesting the run to stop.
        on_result: Called with each result as soon as it is produced.

    Returns:
        The :class:`~tabgen.models.RunSummary` of this invocation.
    """
    summary = RunSummary()
    for name, raw in registry.items():
        if cancel is not None and cancel.is_set():
            logger.debug("Run cancelled before %s", name)
            break
        result = process_entry(name, raw, root, force=force, timeout=timeout)
        summary.results.append(result)
        if on_result is not None:
            on_result(result)

    if cancel is not None and cancel.is_set():
        summary.cancelled = True
    return summary
