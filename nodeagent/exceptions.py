# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""nodeagent exceptions.

Every fatal condition aborts the whole lifecycle run. ``NotFoundError`` is
the one non-fatal signal: fetch-style calls raise it and the caller turns
it into the create branch.
"""

from typing import Optional


class NodeAgentError(Exception):
    """Base exception for nodeagent errors."""

    code: str = "NODEAGENT_ERROR"

    def __init__(self, message: str, code: Optional[str] = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict:
        return {"error": True, "code": self.code, "message": self.message}


class ConfigError(NodeAgentError):
    """Invalid configuration."""

    code = "CONFIG_INVALID"

    def __init__(self, code: str, message: str):
        super().__init__(message, code=code)

    @classmethod
    def invalid(cls, field: str, reason: str) -> "ConfigError":
        return cls(code="CONFIG_INVALID", message=f"Config field '{field}' {reason}")

    @classmethod
    def unknown_keys(cls, keys: list[str]) -> "ConfigError":
        return cls(code="CONFIG_INVALID", message=f"Unknown config keys: {', '.join(keys)}")

    @classmethod
    def engine_import(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code="ENGINE_IMPORT_FAILED",
            message=f"Cannot load execution engine '{path}': {reason}",
        )


class NotFoundError(NodeAgentError):
    """Remote resource does not exist (404)."""

    code = "NOT_FOUND"

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Not found: {path}")


class ServiceUnavailableError(NodeAgentError):
    """Any non-404 failure of a remote call."""

    code = "SERVICE_UNAVAILABLE"

    def __init__(self, message: str, path: str = "", status_code: Optional[int] = None):
        self.path = path
        self.status_code = status_code
        super().__init__(message)

    @classmethod
    def status(cls, method: str, path: str, status_code: int, detail: str) -> "ServiceUnavailableError":
        return cls(
            f"{method} {path} returned {status_code}: {detail}",
            path=path,
            status_code=status_code,
        )

    @classmethod
    def timeout(cls, method: str, path: str, reason: str) -> "ServiceUnavailableError":
        return cls(f"{method} {path} timed out: {reason}", path=path)

    @classmethod
    def connection(cls, method: str, path: str, reason: str) -> "ServiceUnavailableError":
        return cls(f"{method} {path} connection failed: {reason}", path=path)

    @classmethod
    def bad_payload(cls, path: str, reason: str) -> "ServiceUnavailableError":
        return cls(f"Unexpected response from {path}: {reason}", path=path)


class IdentityUnresolvedError(NodeAgentError):
    """No explicit node name and no usable fqdn/hostname fact."""

    code = "IDENTITY_UNRESOLVED"

    def __init__(self, message: str = "Cannot determine node name: no fqdn or hostname fact"):
        super().__init__(message)


class ConsistencyFault(NodeAgentError):
    """The server has a registration but the local secret is missing."""

    code = "REGISTRATION_SECRET_MISSING"

    def __init__(self, safe_id: str, reason: str = "no local secret"):
        self.safe_id = safe_id
        super().__init__(
            f"Registration for '{safe_id}' exists on the server but {reason}; "
            f"refusing to generate a new secret"
        )


class AttributeExecutionError(NodeAgentError):
    """An attribute file failed to parse or evaluate."""

    code = "ATTRIBUTE_FILE_FAILED"

    def __init__(self, label: str, reason: str, lineno: Optional[int] = None):
        self.label = label
        self.reason = reason
        self.lineno = lineno
        location = f"{label}:{lineno}" if lineno is not None else label
        super().__init__(f"Attribute file {location} failed: {reason}")


class LifecycleError(NodeAgentError):
    """Orchestrator misuse (e.g. running a finished lifecycle again)."""

    code = "LIFECYCLE_INVALID"
