"""mailwire configuration package.

What:
  Provide the import surface for configuration loading and the Pydantic schema
  shared by the engine and the CLI.

Why:
  Callers should not depend on the internal module layout; keeping ``__all__``
  explicit documents the supported entry points.

Interfaces:
  - get_runtime_config / load_runtime_config / reset_runtime_config: Resolve
    the configuration file and expose a cached runtime object.
  - RuntimeConfig / ServerSettings / ProtocolSettings: Pydantic models.
  - ConfigLoadError / RuntimeConfigError: Loader failures.
"""

from .loader import (
    ConfigLoadError,
    ConfigNotFoundError,
    RuntimeConfigError,
    get_runtime_config,
    load_runtime_config,
    reset_runtime_config,
)
from .schema import ProtocolSettings, RuntimeConfig, ServerSettings

__all__ = [
    "get_runtime_config",
    "load_runtime_config",
    "reset_runtime_config",
    "ConfigLoadError",
    "ConfigNotFoundError",
    "RuntimeConfigError",
    "RuntimeConfig",
    "ServerSettings",
    "ProtocolSettings",
]
