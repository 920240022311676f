"""Locate, parse and cache the mailwire runtime configuration.

What:
  Provide helpers that find ``mailwire.yaml``, parse it with PyYAML, validate
  it against :class:`~mailwire.config.schema.RuntimeConfig` and keep the result
  cached for the process.

Why:
  Connection defaults and accumulator guards are shared by the engine and the
  CLI. Loading them in one place keeps precedence rules and error messages
  consistent, and lets tests pin a fixture file through an environment
  variable.

How:
  Resolve candidate paths from an explicit argument, ``MAILWIRE_CONFIG_PATH``
  and well-known defaults. The first existing file wins. When none exists,
  :func:`get_runtime_config` falls back to schema defaults while
  :func:`load_runtime_config` reports the searched paths.

Interfaces:
  :func:`load_runtime_config`, :func:`get_runtime_config`,
  :func:`reset_runtime_config`, :class:`ConfigLoadError`,
  :class:`RuntimeConfigError`, :class:`ConfigNotFoundError`.

Invariants:
  - Payloads pass strict Pydantic validation before they are returned.
  - The cache respects explicit reload requests and path changes.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterable, Optional, Tuple

import yaml
from pydantic import ValidationError

from .schema import RuntimeConfig


class ConfigLoadError(Exception):
    """Base error for configuration parsing or validation failures."""


class RuntimeConfigError(ConfigLoadError):
    """Error raised when ``mailwire.yaml`` cannot be loaded or validated.

    Carries the offending path in its message so CLI users can fix the right
    file.
    """


class ConfigNotFoundError(RuntimeConfigError):
    """No configuration file exists at any candidate location."""


_CONFIG_ENV = "MAILWIRE_CONFIG_PATH"
_DEFAULT_LOCATIONS: Tuple[Path, ...] = (
    Path("mailwire.yaml"),
    Path("~/.config/mailwire/config.yaml"),
    Path("/etc/mailwire/config.yaml"),
)
_RUNTIME_CACHE: Optional[Tuple[Optional[Path], RuntimeConfig]] = None


def _candidate_paths(path: Optional[Path]) -> Iterable[Path]:
    """Yield configuration file locations in priority order.

    Explicit path first, then ``MAILWIRE_CONFIG_PATH``, then the defaults, each
    expanded and deduplicated.
    """

    seen: set[Path] = set()
    candidates = []
    if path is not None:
        candidates.append(path)
    env_path = os.environ.get(_CONFIG_ENV)
    if env_path:
        candidates.append(Path(env_path))
    candidates.extend(_DEFAULT_LOCATIONS)
    for candidate in candidates:
        candidate = candidate.expanduser()
        if candidate not in seen:
            seen.add(candidate)
            yield candidate


def _parse_config_payload(text: str, source: Path) -> dict[str, Any]:
    """Parse YAML text into a mapping, wrapping parser errors with file context."""

    try:
        payload = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise RuntimeConfigError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(payload, dict):
        raise RuntimeConfigError(f"{source} must contain a mapping at the top-level")
    return payload


def _load_runtime_from_path(path: Path) -> RuntimeConfig:
    """Load and validate the configuration stored at ``path``.

    Raises:
      RuntimeConfigError: If the file cannot be read or fails validation.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise RuntimeConfigError(f"Configuration file missing: {path}") from exc
    except OSError as exc:  # pragma: no cover - filesystem surface
        raise RuntimeConfigError(f"Unable to read configuration file {path}: {exc}") from exc
    payload = _parse_config_payload(text, path)
    try:
        return RuntimeConfig.model_validate(payload)
    except ValidationError as exc:
        raise RuntimeConfigError(f"Invalid configuration in {path}: {exc}") from exc


def load_runtime_config(
    path: Optional[Path | str] = None,
    *,
    reload: bool = False,
) -> RuntimeConfig:
    """Resolve, parse, and cache the runtime configuration.

    What:
      Locate the configuration file using the precedence chain, parse it, and
      return a validated :class:`RuntimeConfig`.

    Why:
      The engine and CLI read these settings on every connection; caching
      avoids repeated disk IO while ``reload`` gives tests a deterministic
      refresh.

    How:
      Consult the cache unless ``reload`` is requested or a different path is
      asked for, then walk the candidate paths until one exists.

    Args:
      path: Optional explicit location of the configuration file.
      reload: When ``True`` forces a fresh load bypassing the cache.

    Returns:
      The validated runtime configuration.

    Raises:
      RuntimeConfigError: If no file can be located or validated.
    """

    global _RUNTIME_CACHE

    requested_path = Path(path).expanduser() if isinstance(path, (str, Path)) else None
    if not reload and _RUNTIME_CACHE is not None:
        cached_path, cached_config = _RUNTIME_CACHE
        if requested_path is None or cached_path == requested_path:
            return cached_config

    searched: list[str] = []
    for candidate in _candidate_paths(requested_path):
        if not candidate.exists():
            searched.append(str(candidate))
            continue
        config = _load_runtime_from_path(candidate)
        _RUNTIME_CACHE = (candidate, config)
        return config

    raise ConfigNotFoundError(f"Unable to locate mailwire configuration (searched: {', '.join(searched)})")


def get_runtime_config() -> RuntimeConfig:
    """Return the cached runtime configuration, or defaults when no file exists.

    A file that exists but is invalid still raises :class:`RuntimeConfigError`.
    """

    global _RUNTIME_CACHE

    if _RUNTIME_CACHE is not None:
        return _RUNTIME_CACHE[1]
    try:
        return load_runtime_config()
    except ConfigNotFoundError:
        pass
    config = RuntimeConfig()
    _RUNTIME_CACHE = (None, config)
    return config


def reset_runtime_config() -> None:
    """Clear the runtime configuration cache."""

    global _RUNTIME_CACHE
    _RUNTIME_CACHE = None
