"""tabgen -- Generate PowerShell completion scripts for installed CLI tools.

Most modern command-line tools can print their own completion script
(``gh completion -s powershell``, ``kubectl completion powershell``, ...).
This package keeps a registry of such tools, checks which of them are
installed, runs their completion-generation command, and writes each script
to a per-user completions directory that a PowerShell profile dot-sources.

Typical workflow::

    tabgen generate            # write scripts for every installed tool
    tabgen generate --force    # regenerate existing scripts
    tabgen profile >> $PROFILE # load them from the shell profile

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models for registry entries, results, and config.
    registry: Built-in tool table and registry resolution.
    runner: Availability check, generation, writing, and orchestration.
    config: Per-user paths and configuration precedence.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric process exit codes.
    output: stdout/stderr formatting system with Rich support.
"""

__version__ = "0.3.0"
