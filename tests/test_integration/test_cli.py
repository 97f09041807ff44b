"""End-to-end tests for the tabgen CLI via Typer's CliRunner."""

from __future__ import annotations

import json
import os
import signal
import sys
import threading
from pathlib import Path

import pytest

import tabgen.app as tabgen_app
from tabgen import __version__
from tabgen.app import _install_cancel_handler, app, main, profile_snippet
from tabgen.exceptions import InvalidUsageError


@pytest.fixture
def registry_file(isolated_config: Path, python_cmd) -> Path:
    """A user registry with one working, one failing, and one missing tool."""
    path = isolated_config / "registry.json"
    path.write_text(
        json.dumps(
            {
                "demo": "echo ok",
                "envtool": {
                    "check": "demo",
                    "command": python_cmd("import os; print(os.environ['TABGEN_CLI_ENV'])"),
                    "env": {"TABGEN_CLI_ENV": "scoped"},
                },
                "broken": python_cmd("import sys; sys.exit(4)"),
                "invalid": {"check": "demo"},
            }
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def out_dir(isolated_config: Path) -> Path:
    return isolated_config / "out"


def _generate(cli_runner, registry_file: Path, out_dir: Path, *args: str):
    return cli_runner.invoke(
        app,
        [
            "--plain",
            "--no-color",
            "generate",
            "--registry",
            str(registry_file),
            "--completions-dir",
            str(out_dir),
            *args,
        ],
    )


class TestVersion:
    def test_version(self, cli_runner):
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output


class TestGenerate:
    def test_generates_demo(self, cli_runner, fake_tool, registry_file, out_dir):
        fake_tool("demo")
        result = _generate(cli_runner, registry_file, out_dir, "--tool", "demo")

        assert result.exit_code == 0, result.output
        content = (out_dir / "_demo.ps1").read_text(encoding="utf-8")
        assert content.rstrip("\r\n") == "ok"
        assert "generated\t1" in result.output

    def test_second_run_skips_existing(self, cli_runner, fake_tool, registry_file, out_dir):
        fake_tool("demo")
        out_dir.mkdir()
        (out_dir / "_demo.ps1").write_text("kept\n", encoding="utf-8")

        result = _generate(cli_runner, registry_file, out_dir, "--tool", "demo")

        assert result.exit_code == 0, result.output
        assert "skipped (exists)\t1" in result.output
        assert (out_dir / "_demo.ps1").read_text(encoding="utf-8") == "kept\n"

    def test_force_overwrites(self, cli_runner, fake_tool, registry_file, out_dir):
        fake_tool("demo")
        out_dir.mkdir()
        (out_dir / "_demo.ps1").write_text("kept\n", encoding="utf-8")

        result = _generate(cli_runner, registry_file, out_dir, "--tool", "demo", "--force")

        assert result.exit_code == 0, result.output
        assert (out_dir / "_demo.ps1").read_text(encoding="utf-8").rstrip("\r\n") == "ok"

    def test_env_override_scoped(self, cli_runner, fake_tool, registry_file, out_dir, monkeypatch):
        fake_tool("demo")
        monkeypatch.delenv("TABGEN_CLI_ENV", raising=False)

        result = _generate(cli_runner, registry_file, out_dir, "--tool", "envtool")

        assert result.exit_code == 0, result.output
        assert (out_dir / "_envtool.ps1").read_text(encoding="utf-8").strip() == "scoped"
        assert "TABGEN_CLI_ENV" not in os.environ

    def test_failure_exits_nonzero(self, cli_runner, fake_tool, registry_file, out_dir):
        fake_tool("broken")
        result = _generate(cli_runner, registry_file, out_dir, "--tool", "broken")

        assert result.exit_code == 3
        assert "failed\t1" in result.output
        assert "status 4" in result.output
        assert not (out_dir / "_broken.ps1").exists()

    def test_invalid_entry_fails_alone(self, cli_runner, fake_tool, registry_file, out_dir):
        fake_tool("demo")
        result = _generate(
            cli_runner, registry_file, out_dir, "--tool", "invalid", "--tool", "demo"
        )

        assert result.exit_code == 3
        assert (out_dir / "_demo.ps1").is_file()
        assert "generated\t1" in result.output
        assert "failed\t1" in result.output

    def test_missing_tool_skipped(self, cli_runner, registry_file, out_dir):
        result = _generate(cli_runner, registry_file, out_dir, "--tool", "demo")

        assert result.exit_code == 0, result.output
        assert "skipped (not found)\t1" in result.output
        assert not out_dir.exists()

    def test_unknown_tool_is_usage_error(self, cli_runner, registry_file, out_dir):
        result = _generate(cli_runner, registry_file, out_dir, "--tool", "nosuchtool")
        assert result.exit_code == 2
        assert "nosuchtool" in result.output

    def test_missing_registry_file(self, cli_runner, isolated_config, out_dir):
        result = _generate(cli_runner, isolated_config / "absent.json", out_dir)
        assert result.exit_code == 1
        assert "not found" in result.output

    def test_json_summary(self, cli_runner, fake_tool, registry_file, out_dir):
        fake_tool("demo")
        result = cli_runner.invoke(
            app,
            [
                "--json",
                "--quiet",
                "generate",
                "--registry",
                str(registry_file),
                "--completions-dir",
                str(out_dir),
                "--tool",
                "demo",
            ],
        )

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["counts"]["generated"] == 1
        assert data["cancelled"] is False
        assert data["results"][0]["name"] == "demo"
        assert data["results"][0]["status"] == "generated"

    def test_completions_dir_from_env(
        self, cli_runner, fake_tool, registry_file, isolated_config, monkeypatch
    ):
        fake_tool("demo")
        target = isolated_config / "env-out"
        monkeypatch.setenv("TABGEN_COMPLETIONS_DIR", str(target))

        result = cli_runner.invoke(
            app, ["--plain", "--no-color", "generate", "--registry", str(registry_file), "--tool", "demo"]
        )

        assert result.exit_code == 0, result.output
        assert (target / "_demo.ps1").is_file()


class TestList:
    def test_lists_registry(self, cli_runner, fake_tool, registry_file, out_dir):
        fake_tool("demo")
        result = cli_runner.invoke(
            app,
            ["--plain", "--no-color", "list", "--registry", str(registry_file), "--completions-dir", str(out_dir)],
        )

        assert result.exit_code == 0, result.output
        lines = result.output.splitlines()
        assert "tool\tcheck\tcommand\tavailable\tscript" in lines
        assert "demo\tdemo\techo ok\tyes\tno" in lines
        assert any(line.startswith("invalid\t\t\tinvalid\t") for line in lines)
        assert any(line.startswith("gh\tgh\t") for line in lines)


class TestPathAndProfile:
    def test_path(self, cli_runner, isolated_config):
        result = cli_runner.invoke(app, ["path"])
        assert result.exit_code == 0
        expected = isolated_config / "data" / "tabgen" / "completions"
        assert result.output.strip() == str(expected)

    def test_profile(self, cli_runner, isolated_config):
        target = isolated_config / "comp"
        result = cli_runner.invoke(app, ["profile", "--completions-dir", str(target)])
        assert result.exit_code == 0
        assert f"$tabgenCompletions = '{target}'" in result.output
        assert "'_*.ps1'" in result.output

    def test_profile_snippet_quotes_single_quotes(self):
        snippet = profile_snippet(Path("/home/o'brien/completions"))
        assert "'/home/o''brien/completions'" in snippet


class TestConfigShow:
    def test_shows_effective_settings(self, cli_runner, isolated_config, monkeypatch):
        monkeypatch.setenv("TABGEN_TIMEOUT", "7")
        result = cli_runner.invoke(app, ["--quiet", "config", "show"])

        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["timeout_seconds"] == 7
        assert data["disabled"] == []


class TestCancellation:
    def test_second_interrupt_exits(self):
        cancel = threading.Event()
        previous = _install_cancel_handler(cancel)
        try:
            handler = signal.getsignal(signal.SIGINT)
            handler(signal.SIGINT, None)
            assert cancel.is_set()

            with pytest.raises(SystemExit) as exc_info:
                handler(signal.SIGINT, None)
            assert exc_info.value.code == 130
        finally:
            if previous is not None:
                signal.signal(signal.SIGINT, previous)

    def test_cancelled_before_start(self, cli_runner, fake_tool, registry_file, out_dir, monkeypatch):
        fake_tool("demo")

        def _cancel_now(cancel):
            cancel.set()
            return None

        monkeypatch.setattr("tabgen.app._install_cancel_handler", _cancel_now)
        result = _generate(cli_runner, registry_file, out_dir, "--tool", "demo")

        assert result.exit_code == 130
        assert "generated\t0" in result.output
        assert "cancelled" in result.output
        assert not out_dir.exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="needs POSIX SIGINT delivery")
    def test_interrupt_stops_after_current_tool(
        self, cli_runner, fake_tool, registry_file, out_dir, monkeypatch
    ):
        fake_tool("demo")
        report = tabgen_app._report
        before = signal.getsignal(signal.SIGINT)

        def _report_then_interrupt(result):
            report(result)
            os.kill(os.getpid(), signal.SIGINT)

        monkeypatch.setattr("tabgen.app._report", _report_then_interrupt)
        result = _generate(
            cli_runner, registry_file, out_dir, "--tool", "demo", "--tool", "envtool"
        )

        assert result.exit_code == 130, result.output
        assert (out_dir / "_demo.ps1").is_file()
        assert not (out_dir / "_envtool.ps1").exists()
        assert "generated\t1" in result.output
        assert signal.getsignal(signal.SIGINT) is before


def _raising(exc: BaseException):
    def _app():
        raise exc

    return _app


class TestMain:
    def test_tabgen_error_uses_its_exit_code(self, isolated_config, monkeypatch):
        monkeypatch.setattr("tabgen.app.app", _raising(InvalidUsageError("unknown tool 'zz'")))
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 2
        assert not (isolated_config / "data" / "tabgen" / "logs").exists()

    def test_unexpected_error_writes_crash_log(self, isolated_config, monkeypatch):
        monkeypatch.setattr("tabgen.app.app", _raising(RuntimeError("kaboom")))
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 1

        logs = list((isolated_config / "data" / "tabgen" / "logs").glob("crash-*.log"))
        assert len(logs) == 1
        assert "RuntimeError: kaboom" in logs[0].read_text(encoding="utf-8")

    def test_keyboard_interrupt(self, isolated_config, monkeypatch):
        monkeypatch.setattr("tabgen.app.app", _raising(KeyboardInterrupt()))
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 130
