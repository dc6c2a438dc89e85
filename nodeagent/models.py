# Copyright (c) Rich Connexions Ltd. All rights reserved.
# Licensed under the MIT License. See LICENSE for details.
"""Configuration service DTO models.

Request/response models for the calls the agent makes against the
configuration service. These are data transfer objects only; the
in-memory Node and resource graph live in ``nodeagent.node`` and
``nodeagent.graph``.
"""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Node DTOs
# =============================================================================


class NodePayload(BaseModel):
    """A node as stored by the service (``nodes/{safe_id}``)."""

    model_config = ConfigDict(extra="ignore")

    name: str = Field(..., description="Canonical node name (may contain dots)")
    attributes: dict[str, Any] = Field(default_factory=dict, description="Attribute mapping")


# =============================================================================
# Registration DTOs
# =============================================================================


class RegistrationPayload(BaseModel):
    """Registration marker returned by ``registrations/{safe_id}``.

    The service never returns the plaintext secret.
    """

    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = Field(None, description="Safe identifier of the registered node")


class CreateRegistrationRequest(BaseModel):
    """Body of ``POST registrations``."""

    id: str = Field(..., description="Safe identifier of the node")
    password: str = Field(..., description="Locally generated shared secret")


# =============================================================================
# Authentication DTOs
# =============================================================================


class AuthStartRequest(BaseModel):
    """Body of ``POST openid/consumer/start``."""

    openid_identifier: str = Field(..., description="Per-node identity URI")
    submit: str = Field("Verify", description="Form submit value expected by the service")


class AuthStartResponse(BaseModel):
    """Continuation returned by the start step."""

    model_config = ConfigDict(extra="ignore")

    action: str = Field(..., description="Path to post the secret to")

    @field_validator("action")
    @classmethod
    def _action_not_empty(cls, v: str) -> str:
        if not v:
            raise ValueError("action must not be empty")
        return v


class AuthCompleteRequest(BaseModel):
    """Body of the continuation POST."""

    password: str


class AuthCompleteResponse(BaseModel):
    """Optional token body of the completion step.

    Cookie-based services may return an empty body; the httpx cookie jar
    carries the session in that case.
    """

    model_config = ConfigDict(extra="ignore")

    token: Optional[str] = Field(None, description="Bearer token for later calls")


# =============================================================================
# Attribute file DTOs
# =============================================================================


class AttributeFilePayload(BaseModel):
    """One entry of ``cookbooks/_attribute_files``."""

    model_config = ConfigDict(extra="ignore")

    cookbook: str = Field(..., description="Cookbook providing the file")
    name: str = Field(..., description="File name within the cookbook")
    contents: str = Field("", description="Attribute file source")

    @property
    def label(self) -> str:
        """Source label used in diagnostics."""
        return f"{self.cookbook}/{self.name}"


# =============================================================================
# Compile DTOs
# =============================================================================


class ResourcePayload(BaseModel):
    """A compiled resource as sent over the wire."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    resource_type: str = Field(..., alias="type", description="Resource type, e.g. 'package'")
    name: str = Field(..., description="Resource name")
    params: dict[str, Any] = Field(default_factory=dict, description="Resource parameters")


class CollectionPayload(BaseModel):
    """Ordered resource collection of a compile response."""

    model_config = ConfigDict(extra="ignore")

    resources: list[ResourcePayload] = Field(default_factory=list)


class CompileResponse(BaseModel):
    """Response of ``nodes/{safe_id}/compile``."""

    model_config = ConfigDict(extra="ignore")

    node: NodePayload
    collection: CollectionPayload
