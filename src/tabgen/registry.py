"""Tool registry: the built-in table and resolution into canonical entries.

A registry is a mapping of tool name to a *raw value*, which takes one of
two forms:

* a bare string -- the generation command; the tool name doubles as the
  check command::

      "gh": "gh completion -s powershell"

* a record with optional ``check``, ``command``, ``env`` and ``skipCheck``
  fields (see :class:`~tabgen.models.ToolSpec`)::

      "cargo": {"check": "cargo", "command": "rustup completions powershell cargo"}

:func:`resolve_entry` turns either form into a
:class:`~tabgen.models.RegistryEntry`. Registries stay raw until the runner
reaches each entry so that one malformed value fails only itself.

User registries are loaded from JSON or YAML with
:func:`load_registry_file` and layered over :data:`DEFAULT_REGISTRY` by
:func:`build_registry`.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from tabgen.exceptions import ConfigError, ConfigurationError, InvalidUsageError
from tabgen.models import RegistryEntry, ToolSpec

logger = logging.getLogger(__name__)

RawEntry = Union[str, Mapping[str, Any]]
"""A registry value before resolution: a command string or a record."""


DEFAULT_REGISTRY: dict[str, RawEntry] = {
    "gh": "gh completion -s powershell",
    "kubectl": "kubectl completion powershell",
    "helm": "helm completion powershell",
    "docker": "docker completion powershell",
    "rustup": "rustup completions powershell",
    "cargo": {
        "check": "cargo",
        "command": "rustup completions powershell cargo",
    },
    "deno": "deno completions powershell",
    "uv": "uv generate-shell-completion powershell",
    "ruff": "ruff generate-shell-completion powershell",
    "starship": "starship completions power-shell",
    "pip": {
        "command": "pip completion --powershell",
        "env": {"PIP_DISABLE_PIP_VERSION_CHECK": "1"},
    },
    "poetry": {
        "command": "poetry completions powershell",
        "env": {"POETRY_NO_INTERACTION": "1"},
    },
    "volta": "volta completions powershell",
    "pnpm": "pnpm completion pwsh",
    "golangci-lint": "golangci-lint completion powershell",
}
"""Tools known to print a PowerShell completion script on stdout."""


def _format_validation_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err["loc"])
        parts.append(f"{loc}: {err['msg']}" if loc else err["msg"])
    return "; ".join(parts)


def resolve_entry(name: str, raw: RawEntry) -> RegistryEntry:
    """Normalise one raw registry value into a canonical entry.

    Defaults: ``check_command`` is *name*, ``env_overrides`` is empty and
    ``skip_check`` is ``False``. Has no side effects.

    Args:
        name: The tool name (registry key).
        raw: A bare generation-command string or a record mapping.

    Returns:
        The resolved :class:`~tabgen.models.RegistryEntry`.

    Raises:
        ConfigurationError: If the generation command is missing or blank,
            a field has the wrong type, an environment key is invalid, or
            the name cannot be used as a file name.
    """
    if isinstance(raw, str):
        spec = ToolSpec(command=raw)
    elif isinstance(raw, Mapping):
        try:
            spec = ToolSpec.model_validate(dict(raw))
        except ValidationError as exc:
            raise ConfigurationError(
                f"Invalid registry entry '{name}': {_format_validation_error(exc)}"
            ) from exc
    else:
        raise ConfigurationError(
            f"Invalid registry entry '{name}': expected a command string or a "
            f"record, got {type(raw).__name__}"
        )

    if spec.command is None or not spec.command.strip():
        raise ConfigurationError(
            f"Invalid registry entry '{name}': generation command is missing or empty"
        )

    check = spec.check if spec.check and spec.check.strip() else name
    try:
        return RegistryEntry(
            name=name,
            check_command=check,
            generate_command=spec.command,
            env_overrides=dict(spec.env),
            skip_check=spec.skip_check,
        )
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid registry entry '{name}': {_format_validation_error(exc)}"
        ) from exc


def load_registry_file(path: Union[str, Path]) -> dict[str, Any]:
    """Load a user registry from a JSON or YAML file.

    The document is either a mapping of tool name to raw value, or a
    mapping with a top-level ``tools`` key holding that mapping. A ``null``
    value marks a built-in tool for removal (see :func:`build_registry`).

    Args:
        path: Path to a ``.json``, ``.yaml`` or ``.yml`` file. Other
            extensions are parsed as JSON first, then YAML.

    Returns:
        The raw registry mapping.

    Raises:
        ConfigError: If the file is missing, unreadable, unparsable, or not
            a mapping.
    """
    file_path = Path(path).expanduser()
    if not file_path.is_file():
        raise ConfigError(f"Registry file not found: {file_path}")
    try:
        content = file_path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Failed to read registry file {file_path}: {exc}") from exc

    suffix = file_path.suffix.lower()
    data: Any
    if suffix == ".json":
        try:
            data = json.loads(content) if content.strip() else {}
        except json.JSONDecodeError as exc:
            raise ConfigError(f"Invalid JSON in {file_path}: {exc}") from exc
    else:
        # JSON is a subset of YAML, so one parser covers both here.
        try:
            data = yaml.safe_load(content)
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid registry file {file_path}: {exc}") from exc
        if data is None:
            data = {}

    if isinstance(data, dict) and "tools" in data and isinstance(data["tools"], dict):
        data = data["tools"]
    if not isinstance(data, dict):
        raise ConfigError(
            f"Registry file {file_path} must contain a mapping of tool names "
            f"(got {type(data).__name__})"
        )
    for key in data:
        if not isinstance(key, str):
            raise ConfigError(
                f"Registry file {file_path}: tool names must be strings (got {key!r})"
            )

    logger.debug("Loaded %d registry entries from %s", len(data), file_path)
    return data


def build_registry(
    user: Optional[Mapping[str, Any]] = None,
    disabled: Iterable[str] = (),
    only: Optional[Iterable[str]] = None,
) -> dict[str, RawEntry]:
    """Assemble the registry for one run.

    Args:
        user: User registry layered over :data:`DEFAULT_REGISTRY`. A user
            value replaces the built-in value of the same name; ``None``
            removes the built-in.
        disabled: Tool names to drop.
        only: If given, restrict the registry to these names, in this order.

    Returns:
        An ordered ``{name: raw value}`` mapping. Values are not resolved.

    Raises:
        InvalidUsageError: If *only* names a tool absent from the registry.
    """
    registry: dict[str, RawEntry] = dict(DEFAULT_REGISTRY)
    for name, raw in (user or {}).items():
        if raw is None:
            registry.pop(name, None)
        else:
            registry[name] = raw

    for name in disabled:
        registry.pop(name, None)

    if only is not None:
        selected: dict[str, RawEntry] = {}
        unknown = []
        for name in only:
            if name in registry:
                selected[name] = registry[name]
            else:
                unknown.append(name)
        if unknown:
            raise InvalidUsageError(
                f"Unknown tool(s): {', '.join(unknown)}. "
                "Run 'tabgen list' to see the registry."
            )
        registry = selected

    return registry
