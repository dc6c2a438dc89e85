# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Node registration.

Makes sure the service holds a registration for this node and that the
matching secret is available locally.

New secrets are persisted locally before they are posted to the service.
A failure between the two steps leaves a local secret with no remote
registration, which the next run registers again.
"""

import logging
import secrets
import string
from dataclasses import dataclass, field

from nodeagent.exceptions import ConsistencyFault, NotFoundError
from nodeagent.node import Node
from nodeagent.rest import ConfigServiceClient
from nodeagent.secret_store import SecretStore

log = logging.getLogger(__name__)

REGISTRATION_CATEGORY = "registration"
SECRET_LENGTH = 40
SECRET_ALPHABET = string.ascii_letters + string.digits


def generate_secret(length: int = SECRET_LENGTH) -> str:
    """Random alphanumeric secret from the OS CSPRNG."""
    return "".join(secrets.choice(SECRET_ALPHABET) for _ in range(length))


@dataclass(frozen=True)
class Credential:
    """Shared secret proving a node's identity to the service."""

    safe_id: str
    secret: str = field(repr=False)


class RegistrationManager:
    """Ensures exactly one credential exists for a node."""

    def __init__(self, service: ConfigServiceClient, store: SecretStore):
        self._service = service
        self._store = store

    async def ensure(self, node: Node) -> Credential:
        """Load the existing credential or create and register a new one."""
        safe_id = node.safe_id
        try:
            await self._service.get_registration(safe_id)
        except NotFoundError:
            return await self._create(safe_id)

        entry = self._store.load(REGISTRATION_CATEGORY, safe_id)
        secret = entry.get("secret") if entry else None
        if not isinstance(secret, str) or not secret:
            raise ConsistencyFault(safe_id)

        log.info(f"Loaded existing registration for {safe_id}")
        return Credential(safe_id=safe_id, secret=secret)

    async def _create(self, safe_id: str) -> Credential:
        secret = generate_secret()
        self._store.store(REGISTRATION_CATEGORY, safe_id, {"secret": secret})
        await self._service.create_registration(safe_id, secret)
        log.info(f"Registered new node {safe_id}")
        return Credential(safe_id=safe_id, secret=secret)
