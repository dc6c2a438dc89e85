# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Local secret persistence store.

Persists small secret blobs keyed by (category, identifier) so that a
node's registration secret survives process restarts. Each entry is one
JSON file at ``<root>/<category>/<identifier>.json`` readable only by the
owning user.

Writes go through a temporary file and ``os.replace``; readers see either
the old entry or the new one.
"""
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Optional, Protocol

log = logging.getLogger(__name__)


class SecretStore(Protocol):
    """Key/value store for secret blobs."""

    def store(self, category: str, identifier: str, data: dict[str, Any]) -> None:
        ...

    def load(self, category: str, identifier: str) -> Optional[dict[str, Any]]:
        ...


def _check_component(kind: str, value: str) -> str:
    """Reject key components that would escape the store root."""
    if not value or value in (".", "..") or "/" in value or "\\" in value or "\x00" in value:
        raise ValueError(f"Invalid secret store {kind}: {value!r}")
    return value


class FileSecretStore:
    """Secret store backed by one JSON file per entry."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, category: str, identifier: str) -> Path:
        category = _check_component("category", category)
        identifier = _check_component("identifier", identifier)
        return self.root / category / f"{identifier}.json"

    def store(self, category: str, identifier: str, data: dict[str, Any]) -> None:
        """Write an entry, replacing any previous value."""
        path = self._path(category, identifier)
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".", suffix=".tmp")
        try:
            with os.fdopen(fd, "w") as fh:
                json.dump(data, fh, separators=(",", ":"))
                fh.flush()
                os.fsync(fh.fileno())
            os.chmod(tmp_name, 0o600)
            os.replace(tmp_name, path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        log.info(f"Stored {category} secret for {identifier}")

    def load(self, category: str, identifier: str) -> Optional[dict[str, Any]]:
        """Read an entry, or None if it was never stored."""
        path = self._path(category, identifier)
        try:
            text = path.read_text()
        except FileNotFoundError:
            return None

        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            log.warning(f"Unreadable {category} secret for {identifier} at {path}")
            return None
        if not isinstance(data, dict):
            log.warning(f"Malformed {category} secret for {identifier} at {path}")
            return None
        return data


# Module-level singleton
_secret_store: Optional[FileSecretStore] = None


def get_secret_store(root: Path) -> FileSecretStore:
    """Get or create the secret store singleton for ``root``."""
    global _secret_store
    if _secret_store is None or _secret_store.root != Path(root):
        _secret_store = FileSecretStore(root)
    return _secret_store


def reset_secret_store() -> None:
    """Reset the singleton (for testing)."""
    global _secret_store
    _secret_store = None
