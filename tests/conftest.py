"""Shared test fixtures for tabgen.

Provides fixtures for isolating configuration and data directories,
putting fake tools on ``PATH``, managing output state, and running CLI
commands. These fixtures are discovered by pytest and available to all
test modules without explicit imports.
"""

from __future__ import annotations

import logging
import os
import stat
import sys
from pathlib import Path
from typing import Callable

import pytest

from tabgen.output import OutputFormat, OutputManager, reset_output, set_output


PYTHON = f'"{sys.executable}"'
"""The running interpreter, quoted for use inside shell command lines."""


def python_command(code: str) -> str:
    """Return a shell command line that runs *code* with the test interpreter.

    *code* must not contain double quotes.
    """
    return f'{PYTHON} -c "{code}"'


# ---------------------------------------------------------------------------
# Auto-reset global state between tests
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_output_between_tests() -> None:
    """Reset the global OutputManager and tabgen log handlers after every test.

    Both hold references to the sys.stdout/sys.stderr objects that were
    current when they were created; CliRunner swaps those out per test.
    """
    yield
    reset_output()
    logger = logging.getLogger("tabgen")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)


# ---------------------------------------------------------------------------
# Config isolation fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate configuration and data to a temporary directory.

    Forces the Linux/XDG layout, points XDG_CONFIG_HOME and XDG_DATA_HOME
    at subdirectories of tmp_path, clears all TABGEN_* environment
    variables, and changes the working directory to tmp_path.

    Returns:
        The tmp_path root directory for additional file creation.
    """
    monkeypatch.setattr("tabgen.config._system", lambda: "Linux")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))

    for var in ["TABGEN_COMPLETIONS_DIR", "TABGEN_REGISTRY", "TABGEN_TIMEOUT"]:
        monkeypatch.delenv(var, raising=False)

    monkeypatch.chdir(tmp_path)
    return tmp_path


# ---------------------------------------------------------------------------
# Fake tools on PATH
# ---------------------------------------------------------------------------


@pytest.fixture
def fake_tool(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Callable[[str], Path]:
    """Factory that places an executable named *name* on ``PATH``.

    The executable only needs to be discoverable by ``shutil.which``; the
    generation commands in tests never call it.
    """
    bin_dir = tmp_path / "bin"
    bin_dir.mkdir(exist_ok=True)
    monkeypatch.setenv("PATH", str(bin_dir) + os.pathsep + os.environ.get("PATH", ""))

    def _make(name: str) -> Path:
        if sys.platform == "win32":
            path = bin_dir / f"{name}.bat"
            path.write_text("@echo off\n", encoding="utf-8")
        else:
            path = bin_dir / name
            path.write_text("#!/bin/sh\nexit 0\n", encoding="utf-8")
            path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def completions_root(tmp_path: Path) -> Path:
    """Completions root for runner tests (not created up front)."""
    return tmp_path / "completions"


# ---------------------------------------------------------------------------
# Output fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def quiet_output() -> OutputManager:
    """Install a PLAIN-format, quiet OutputManager as the global output."""
    output = OutputManager(format=OutputFormat.PLAIN, quiet=True)
    set_output(output)
    yield output
    reset_output()


# ---------------------------------------------------------------------------
# CLI runner fixture
# ---------------------------------------------------------------------------


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner()


@pytest.fixture
def python_cmd() -> Callable[[str], str]:
    """The :func:`python_command` helper, for portable generation commands."""
    return python_command
