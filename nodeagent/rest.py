# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Configuration service HTTP client.

Async HTTP client for every call the lifecycle makes against the
configuration service.

Key features:
- 404 on a fetch maps to NotFoundError, which callers use as the create
  branch; a 404 anywhere else is a ServiceUnavailableError
- Every other failure (non-2xx, timeout, connection) maps to
  ServiceUnavailableError
- No retries: a failed call aborts the run
- Session token installed after authentication is sent as a bearer
  Authorization header; session cookies persist in the httpx jar
"""
import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from nodeagent.exceptions import NotFoundError, ServiceUnavailableError
from nodeagent.models import (
    AttributeFilePayload,
    AuthCompleteRequest,
    AuthCompleteResponse,
    AuthStartRequest,
    AuthStartResponse,
    CompileResponse,
    CreateRegistrationRequest,
    NodePayload,
    RegistrationPayload,
)

log = logging.getLogger(__name__)


class ConfigServiceClient:
    """Async HTTP client for the configuration service."""

    def __init__(
        self,
        base_url: str = "http://localhost:4000",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(
            base_url=self.base_url + "/",
            timeout=httpx.Timeout(timeout, connect=10.0),
            transport=transport,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._http.aclose()

    async def __aenter__(self) -> "ConfigServiceClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def use_session(self, token: Optional[str]) -> None:
        """Authorize subsequent calls with a session token, if one was issued."""
        if token:
            self._http.headers["Authorization"] = f"Bearer {token}"

    # -------------------------------------------------------------------------
    # Internal request helpers
    # -------------------------------------------------------------------------

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        not_found: bool = False,
    ) -> httpx.Response:
        """Send one request and map failures to nodeagent exceptions.

        Args:
            method: HTTP method
            path: Path relative to the base URL, or an absolute URL
            json: Request body
            not_found: If True, a 404 raises NotFoundError instead of
                ServiceUnavailableError (fetch-style calls only)
        """
        try:
            response = await self._http.request(method, path, json=json)
        except httpx.TimeoutException as e:
            raise ServiceUnavailableError.timeout(method, path, str(e)) from e
        except httpx.TransportError as e:
            raise ServiceUnavailableError.connection(method, path, str(e)) from e

        log.debug(f"{method} {path} -> {response.status_code}")

        if response.status_code == 404 and not_found:
            raise NotFoundError(path)
        if response.status_code >= 400:
            raise ServiceUnavailableError.status(
                method, path, response.status_code, self._error_detail(response)
            )
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text[:200]
        if isinstance(body, dict) and "detail" in body:
            return str(body["detail"])[:200]
        return response.text[:200]

    @staticmethod
    def _parse(model: Any, response: httpx.Response, path: str) -> Any:
        """Validate a JSON response body against a DTO model."""
        try:
            return model.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise ServiceUnavailableError.bad_payload(path, str(e)) from e

    # =========================================================================
    # Nodes
    # =========================================================================

    async def get_node(self, safe_id: str) -> NodePayload:
        """Fetch a node. Raises NotFoundError if the service has none."""
        path = f"nodes/{safe_id}"
        resp = await self._request("GET", path, not_found=True)
        return self._parse(NodePayload, resp, path)

    async def save_node(self, safe_id: str, node: NodePayload) -> None:
        """Overwrite the stored node wholesale."""
        await self._request("PUT", f"nodes/{safe_id}", json=node.model_dump())

    async def compile_node(self, safe_id: str) -> CompileResponse:
        """Fetch the compiled node snapshot and resource collection."""
        path = f"nodes/{safe_id}/compile"
        resp = await self._request("GET", path)
        return self._parse(CompileResponse, resp, path)

    # =========================================================================
    # Registrations
    # =========================================================================

    async def get_registration(self, safe_id: str) -> RegistrationPayload:
        """Fetch the registration marker. Raises NotFoundError if unregistered."""
        path = f"registrations/{safe_id}"
        resp = await self._request("GET", path, not_found=True)
        if not resp.content:
            return RegistrationPayload(id=safe_id)
        return self._parse(RegistrationPayload, resp, path)

    async def create_registration(self, safe_id: str, secret: str) -> None:
        """Register a node's secret with the service."""
        req = CreateRegistrationRequest(id=safe_id, password=secret)
        await self._request("POST", "registrations", json=req.model_dump())

    # =========================================================================
    # Authentication
    # =========================================================================

    async def start_auth(self, identifier: str) -> AuthStartResponse:
        """Announce an identity claim; returns the continuation action."""
        path = "openid/consumer/start"
        req = AuthStartRequest(openid_identifier=identifier)
        resp = await self._request("POST", path, json=req.model_dump())
        return self._parse(AuthStartResponse, resp, path)

    async def complete_auth(self, url: str, secret: str) -> AuthCompleteResponse:
        """Post the secret to the continuation URL."""
        req = AuthCompleteRequest(password=secret)
        resp = await self._request("POST", url, json=req.model_dump())
        if not resp.content:
            return AuthCompleteResponse()
        return self._parse(AuthCompleteResponse, resp, url)

    # =========================================================================
    # Cookbooks
    # =========================================================================

    async def list_attribute_files(self) -> list[AttributeFilePayload]:
        """List attribute files across every cookbook, in server order."""
        path = "cookbooks/_attribute_files"
        resp = await self._request("GET", path)
        try:
            items = resp.json()
            if not isinstance(items, list):
                raise ValueError("expected a JSON array")
            return [AttributeFilePayload.model_validate(item) for item in items]
        except (ValueError, ValidationError) as e:
            raise ServiceUnavailableError.bad_payload(path, str(e)) from e
