"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~tabgen.exceptions.TabgenError` subclass or by the
run summary. Shell wrappers can inspect the exit code to tell a partial
run apart from a broken configuration without parsing stderr.

Example::

    $ tabgen generate
    $ echo $?
    3   # EXIT_GENERATION_FAILURE -- at least one tool failed to generate
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred (including invalid configuration files)."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments."""

EXIT_GENERATION_FAILURE = 3
"""One or more registry entries ended in the ``failed`` state."""

EXIT_CANCELLED = 130
"""The run was interrupted with Ctrl-C."""
