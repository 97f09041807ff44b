"""Configuration management: per-user paths, atomic writes, and precedence resolution.

This module handles all persistent configuration for tabgen:

* **Directory layout** -- the per-user, non-roaming data directory of the
  host OS holds the generated scripts (``<data>/tabgen/completions``); the
  config directory holds ``config.json`` and an optional user registry.
  See :func:`get_data_dir`, :func:`get_config_dir`,
  :func:`get_completions_dir`.
* **Global config** -- a single :class:`~tabgen.models.GlobalConfig` JSON
  file. See :func:`load_global_config` and :func:`save_global_config`.
* **Precedence resolution** -- :func:`resolve_settings` merges CLI flags,
  environment variables, and the config file into a :class:`Settings`.

All file writes use an atomic temp-file-then-rename strategy
(:func:`atomic_write`), which the runner also uses for completion scripts.
"""

from __future__ import annotations

import json
import os
import platform
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from tabgen.exceptions import ConfigError
from tabgen.models import GlobalConfig

_APP_NAME = "tabgen"
_CONFIG_FILENAME = "config.json"
_REGISTRY_FILENAMES = ("registry.yaml", "registry.yml", "registry.json")

ENV_COMPLETIONS_DIR = "TABGEN_COMPLETIONS_DIR"
ENV_REGISTRY = "TABGEN_REGISTRY"
ENV_TIMEOUT = "TABGEN_TIMEOUT"


# --- Platform path resolution ---


def _system() -> str:
    return platform.system()


def _env_path(env_var: str, *default_segments: str) -> Path:
    """Resolve a base directory from an env var with fallback segments under $HOME."""
    env_value = os.environ.get(env_var, "")
    if env_value:
        return Path(env_value)
    base = Path.home()
    for seg in default_segments:
        base = base / seg
    return base


def _user_data_base() -> Path:
    """The OS-conventional per-user, non-roaming application data directory."""
    system = _system()
    if system == "Windows":
        return _env_path("LOCALAPPDATA", "AppData", "Local")
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support"
    return _env_path("XDG_DATA_HOME", ".local", "share")


def _user_config_base() -> Path:
    system = _system()
    if system == "Windows":
        return _env_path("APPDATA", "AppData", "Roaming")
    if system == "Darwin":
        return Path.home() / "Library" / "Application Support"
    return _env_path("XDG_CONFIG_HOME", ".config")


def get_data_dir() -> Path:
    """Return the data directory (completions, crash logs), creating it if necessary.

    On Linux/BSD: ``$XDG_DATA_HOME/tabgen/`` (default ``~/.local/share/tabgen/``).
    On Windows: ``%LOCALAPPDATA%\\tabgen\\``.
    On macOS: ``~/Library/Application Support/tabgen/``.

    Returns:
        Absolute path to the data directory (guaranteed to exist).
    """
    path = _user_data_base() / _APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_config_dir() -> Path:
    """Return the configuration directory, creating it if necessary.

    On Linux/BSD: ``$XDG_CONFIG_HOME/tabgen/`` (default ``~/.config/tabgen/``).
    On Windows: ``%APPDATA%\\tabgen\\``.
    On macOS: ``~/Library/Application Support/tabgen/``.

    Returns:
        Absolute path to the configuration directory (guaranteed to exist).
    """
    path = _user_config_base() / _APP_NAME
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_completions_dir() -> Path:
    """Return the default completions root, ``<data_dir>/completions``.

    The directory is not created here; the writer creates it on first write.
    """
    return get_data_dir() / "completions"


# --- Atomic file writes ---


def atomic_write(path: Path, data: str) -> None:
    """Write *data* to *path* atomically as UTF-8 (no BOM) using temp file + rename.

    Parent directories are created as needed. The temporary file lives in
    the destination directory so ``os.replace`` is an atomic rename. On any
    failure the temp file is removed and *path* is left as it was.

    Newlines are written as-is; no platform translation is applied.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd = None
    tmp_path: Optional[str] = None
    try:
        fd = tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
            newline="",
        )
        tmp_path = fd.name
        fd.write(data)
        fd.flush()
        os.fsync(fd.fileno())
        fd.close()
        fd = None  # prevent double-close below
        os.replace(tmp_path, path)
    except BaseException:
        # Clean up the temp file on any error (including KeyboardInterrupt).
        if fd is not None:
            fd.close()
        if tmp_path is not None:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
        raise


# --- Global config ---


def _global_config_path() -> Path:
    return get_config_dir() / _CONFIG_FILENAME


def load_global_config() -> GlobalConfig:
    """Load the global configuration from the config directory.

    Returns:
        The deserialised :class:`~tabgen.models.GlobalConfig`. If the file
        does not exist, a default instance is returned.

    Raises:
        ConfigError: If the file exists but contains invalid JSON or fails
            Pydantic validation.
    """
    path = _global_config_path()
    if not path.is_file():
        return GlobalConfig()
    try:
        text = path.read_text(encoding="utf-8")
        data = json.loads(text)
        return GlobalConfig.model_validate(data)
    except (json.JSONDecodeError, ValueError) as exc:
        raise ConfigError(f"Invalid config at {path}: {exc}") from exc


def save_global_config(config: GlobalConfig) -> None:
    """Persist the global configuration atomically to disk."""
    data = config.model_dump(mode="json")
    atomic_write(_global_config_path(), json.dumps(data, indent=2) + "\n")


def find_user_registry() -> Optional[Path]:
    """Return the first ``registry.{yaml,yml,json}`` in the config dir, if any."""
    config_dir = get_config_dir()
    for filename in _REGISTRY_FILENAMES:
        candidate = config_dir / filename
        if candidate.is_file():
            return candidate
    return None


# --- Precedence resolution ---


@dataclass(frozen=True)
class Settings:
    """Effective settings for one invocation."""

    completions_dir: Path
    registry_file: Optional[Path]
    timeout: Optional[float]
    disabled: tuple[str, ...]


def _parse_timeout(value: str, source: str) -> Optional[float]:
    try:
        timeout = float(value)
    except ValueError as exc:
        raise ConfigError(f"Invalid timeout {value!r} from {source}") from exc
    if timeout < 0:
        raise ConfigError(f"Timeout must not be negative (got {value} from {source})")
    return timeout or None


def resolve_settings(
    cli_completions_dir: Optional[str] = None,
    cli_registry: Optional[str] = None,
    cli_timeout: Optional[float] = None,
) -> Settings:
    """Resolve settings with the full precedence chain.

    Precedence (high to low):
        1. CLI flags
        2. Environment variables (``TABGEN_COMPLETIONS_DIR``,
           ``TABGEN_REGISTRY``, ``TABGEN_TIMEOUT``)
        3. Config file (``<config_dir>/config.json``)
        4. Defaults (a ``registry.*`` file in the config dir is picked up
           when no registry is configured)

    A timeout of ``0`` disables the timeout.

    Raises:
        ConfigError: If the config file or an environment value is invalid.
    """
    config = load_global_config()

    completions: Optional[str] = config.completions_dir
    env_completions = os.environ.get(ENV_COMPLETIONS_DIR)
    if env_completions:
        completions = env_completions
    if cli_completions_dir is not None:
        completions = cli_completions_dir
    completions_dir = (
        Path(completions).expanduser() if completions else get_completions_dir()
    )

    registry: Optional[str] = config.registry_file
    env_registry = os.environ.get(ENV_REGISTRY)
    if env_registry:
        registry = env_registry
    if cli_registry is not None:
        registry = cli_registry
    registry_file = Path(registry).expanduser() if registry else find_user_registry()

    timeout: Optional[float] = config.timeout_seconds or None
    env_timeout = os.environ.get(ENV_TIMEOUT)
    if env_timeout:
        timeout = _parse_timeout(env_timeout, ENV_TIMEOUT)
    if cli_timeout is not None:
        timeout = _parse_timeout(str(cli_timeout), "--timeout")

    return Settings(
        completions_dir=completions_dir,
        registry_file=registry_file,
        timeout=timeout,
        disabled=tuple(config.disabled),
    )
