"""Shared building blocks for desired-state models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class KeycloakModel(BaseModel):
    """Base model using the server's camelCase JSON field names as aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )

    def representation(self, **kwargs: Any) -> dict[str, Any]:
        """Dump to the server's wire form."""
        return self.model_dump(by_alias=True, exclude_none=True, **kwargs)


class RoleRepresentation(KeycloakModel):
    """A realm or client role."""

    id: str | None = None
    name: str
    description: str | None = None
    composite: bool | None = None
    client_role: bool | None = None
    container_id: str | None = None
    attributes: dict[str, list[str]] | None = None


class LabelSelector(KeycloakModel):
    """Equality-based label selector."""

    match_labels: dict[str, str] = Field(default_factory=dict)

    def matches(self, labels: dict[str, str]) -> bool:
        return all(labels.get(k) == v for k, v in self.match_labels.items())


class ObjectMeta(KeycloakModel):
    """Identity of a desired-state resource in the configuration store."""

    name: str
    namespace: str = "default"
    labels: dict[str, str] = Field(default_factory=dict)
