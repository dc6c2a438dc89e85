# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""nodeagent configuration.

Defaults may be overridden via environment variables, then by a JSON
config file, then by command-line options. The resulting ``AgentConfig``
is passed explicitly to the orchestrator and each component.
"""

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Optional

from nodeagent.exceptions import ConfigError


# =============================================================================
# SERVER
# =============================================================================

SERVER_URL: str = os.getenv("NODEAGENT_SERVER_URL", "http://localhost:4000")
OPENID_URL: str = os.getenv("NODEAGENT_OPENID_URL", SERVER_URL)
HTTP_TIMEOUT_SECONDS: float = float(os.getenv("NODEAGENT_HTTP_TIMEOUT", "30.0"))

# =============================================================================
# NODE IDENTITY
# =============================================================================

NODE_NAME: Optional[str] = os.getenv("NODEAGENT_NODE_NAME") or None


# =============================================================================
# PERSISTENCE
# =============================================================================

def _get_data_dir() -> Path:
    """Determine the secret store root.

    Priority:
    1. NODEAGENT_DATA_DIR env var (explicit override)
    2. ~/.nodeagent if it already exists (unprivileged runs)
    3. /var/lib/nodeagent (system default)
    """
    env_path = os.getenv("NODEAGENT_DATA_DIR")
    if env_path:
        return Path(env_path)

    try:
        home_path = Path.home() / ".nodeagent"
        if home_path.exists():
            return home_path
    except (OSError, RuntimeError):
        pass

    return Path("/var/lib/nodeagent")


DATA_DIR: Path = _get_data_dir()

# =============================================================================
# EXECUTION ENGINE
# =============================================================================

EXECUTION_ENGINE: str = os.getenv(
    "NODEAGENT_EXECUTION_ENGINE", "nodeagent.converge:LoggingExecutionEngine"
)

# =============================================================================
# LOGGING
# =============================================================================

LOG_LEVEL: str = os.getenv("NODEAGENT_LOG_LEVEL", "INFO")
LOG_FORMAT: str = os.getenv("NODEAGENT_LOG_FORMAT", "json")
LOG_FILE: Optional[str] = os.getenv("NODEAGENT_LOG_FILE") or None

_LOG_FORMATS = frozenset({"json", "text"})


@dataclass(frozen=True)
class AgentConfig:
    """Settings for one lifecycle run."""

    server_url: str = SERVER_URL
    openid_url: str = OPENID_URL
    node_name: Optional[str] = NODE_NAME
    data_dir: Path = DATA_DIR
    http_timeout: float = HTTP_TIMEOUT_SECONDS
    execution_engine: str = EXECUTION_ENGINE
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT
    log_file: Optional[str] = LOG_FILE

    def __post_init__(self) -> None:
        if not self.server_url:
            raise ConfigError.invalid("server_url", "must not be empty")
        if self.http_timeout <= 0:
            raise ConfigError.invalid("http_timeout", "must be positive")
        if self.log_format not in _LOG_FORMATS:
            raise ConfigError.invalid(
                "log_format", f"must be one of {sorted(_LOG_FORMATS)}"
            )
        # Normalise after validation; frozen dataclass needs object.__setattr__.
        object.__setattr__(self, "server_url", self.server_url.rstrip("/"))
        object.__setattr__(
            self, "openid_url", (self.openid_url or self.server_url).rstrip("/")
        )
        object.__setattr__(self, "data_dir", Path(self.data_dir))

    @classmethod
    def from_env(cls) -> "AgentConfig":
        """Build a config from the current environment.

        Reads os.environ at call time, so tests can monkeypatch variables
        without reloading this module.
        """
        server_url = os.getenv("NODEAGENT_SERVER_URL", "http://localhost:4000")
        return cls(
            server_url=server_url,
            openid_url=os.getenv("NODEAGENT_OPENID_URL", server_url),
            node_name=os.getenv("NODEAGENT_NODE_NAME") or None,
            data_dir=_get_data_dir(),
            http_timeout=float(os.getenv("NODEAGENT_HTTP_TIMEOUT", "30.0")),
            execution_engine=os.getenv(
                "NODEAGENT_EXECUTION_ENGINE",
                "nodeagent.converge:LoggingExecutionEngine",
            ),
            log_level=os.getenv("NODEAGENT_LOG_LEVEL", "INFO"),
            log_format=os.getenv("NODEAGENT_LOG_FORMAT", "json"),
            log_file=os.getenv("NODEAGENT_LOG_FILE") or None,
        )

    def with_overrides(self, **overrides: Any) -> "AgentConfig":
        """Return a copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(changes) - {f.name for f in fields(self)}
        if unknown:
            raise ConfigError.unknown_keys(sorted(unknown))
        # A new server_url without an explicit openid_url moves both.
        if "server_url" in changes and "openid_url" not in changes:
            if self.openid_url == self.server_url:
                changes["openid_url"] = changes["server_url"]
        return replace(self, **changes)


def _read_config_file(path: Path) -> dict[str, Any]:
    """Load a JSON config file into a dict of AgentConfig field values."""
    try:
        data = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise ConfigError(code="CONFIG_NOT_FOUND", message=f"Config file not found: {path}") from e
    except (json.JSONDecodeError, OSError) as e:
        raise ConfigError(code="CONFIG_INVALID", message=f"Cannot read config file {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(code="CONFIG_INVALID", message=f"Config file {path} must hold a JSON object")
    return data


def load_config(path: Optional[Path] = None, **overrides: Any) -> AgentConfig:
    """Build the effective config: environment, then file, then overrides."""
    config = AgentConfig.from_env()
    if path is not None:
        config = config.with_overrides(**_read_config_file(Path(path)))
    return config.with_overrides(**overrides)
