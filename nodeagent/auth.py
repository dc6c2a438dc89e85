# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Two-step authentication handshake.

1. Announce the node's identity URI to ``openid/consumer/start`` and
   receive a continuation action.
2. Post the credential secret to ``{openid_url}{action}``.

Any failure in either step aborts the run; there is no retry.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from nodeagent.node import Node
from nodeagent.registration import Credential
from nodeagent.rest import ConfigServiceClient

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    """Authenticated session. Opaque to the lifecycle beyond its token."""

    safe_id: str
    identity_url: str
    token: Optional[str] = field(default=None, repr=False)


class AuthenticationHandshake:
    """Proves possession of a node's secret to the service."""

    def __init__(self, service: ConfigServiceClient, openid_url: str):
        self._service = service
        self._openid_url = openid_url.rstrip("/")

    def identity_url(self, node: Node) -> str:
        """Per-node identity URI announced in the start step."""
        return f"{self._openid_url}/openid/server/node/{node.safe_id}"

    def continuation_url(self, action: str) -> str:
        """Resolve the start step's action against the OpenID base URL."""
        if action.startswith(("http://", "https://")):
            return action
        if not action.startswith("/"):
            action = "/" + action
        return f"{self._openid_url}{action}"

    async def authenticate(self, node: Node, credential: Credential) -> Session:
        identity = self.identity_url(node)
        start = await self._service.start_auth(identity)
        log.debug(f"Authentication for {node.safe_id} continues at {start.action}")

        completed = await self._service.complete_auth(
            self.continuation_url(start.action), credential.secret
        )
        self._service.use_session(completed.token)

        log.info(f"Authenticated as {node.safe_id}")
        return Session(safe_id=node.safe_id, identity_url=identity, token=completed.token)
