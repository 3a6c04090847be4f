"""Authorization services settings of a client.

Keycloak transports policy settings as a flat ``config`` map of strings, several
of which hold JSON documents. Each known policy type is modelled as its own class
with typed fields; ``extra_config`` keeps any key that is not modelled so it
survives a round trip unchanged.
"""

from __future__ import annotations

import json
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, Field, SerializeAsAny, field_validator

from realmsync.keycloak.errors import KeycloakValidationError
from realmsync.models.common import KeycloakModel

# Codecs for config values
JSON = "json"
TEXT = "text"
BOOL = "bool"


def _to_plain(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, exclude_none=True)
    if isinstance(value, list):
        return [_to_plain(v) for v in value]
    return value


class Policy(KeycloakModel):
    """Common fields of every policy; also the variant for unmodelled types."""

    # attribute -> (wire config key, codec)
    config_keys: ClassVar[dict[str, tuple[str, str]]] = {}

    id: str | None = None
    name: str
    description: str = ""
    type: str
    logic: Literal["POSITIVE", "NEGATIVE"] | None = None
    decision_strategy: Literal["UNANIMOUS", "AFFIRMATIVE", "CONSENSUS"] | None = None
    extra_config: dict[str, str] = Field(default_factory=dict)

    def to_representation(self) -> dict[str, Any]:
        """Serialize to the server's policy representation."""
        rep: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "type": self.type,
        }
        if self.id:
            rep["id"] = self.id
        if self.logic:
            rep["logic"] = self.logic
        if self.decision_strategy:
            rep["decisionStrategy"] = self.decision_strategy

        config = dict(self.extra_config)
        for attr, (key, codec) in self.config_keys.items():
            value = getattr(self, attr)
            if value is None:
                continue
            if codec == JSON:
                config[key] = json.dumps(_to_plain(value))
            elif codec == BOOL:
                config[key] = "true" if value else "false"
            else:
                config[key] = str(value)
        rep["config"] = config
        return rep

    @classmethod
    def from_representation(cls, rep: dict[str, Any]) -> "Policy":
        """Parse a policy in wire form, choosing the variant by ``type``."""
        policy_cls = POLICY_TYPES.get(rep.get("type", ""), Policy)
        name = rep.get("name", "")

        config = dict(rep.get("config") or {})
        data: dict[str, Any] = {
            k: v for k, v in rep.items() if k not in ("config",)
        }
        for attr, (key, codec) in policy_cls.config_keys.items():
            if key not in config:
                continue
            raw = config.pop(key)
            if codec == JSON:
                try:
                    data[attr] = json.loads(raw)
                except (TypeError, ValueError) as e:
                    raise KeycloakValidationError(
                        f"Policy '{name}': config key '{key}' is not valid JSON: {e}",
                        reference=name,
                    ) from e
            elif codec == BOOL:
                data[attr] = str(raw).lower() == "true"
            else:
                data[attr] = raw
        data["extraConfig"] = {k: str(v) for k, v in config.items()}

        try:
            return policy_cls.model_validate(data)
        except ValueError as e:
            raise KeycloakValidationError(
                f"Policy '{name}' is malformed: {e}", reference=name
            ) from e


class RolePolicyRole(KeycloakModel):
    id: str
    required: bool = False


class RolePolicy(Policy):
    config_keys = {"roles": ("roles", JSON)}

    type: Literal["role"] = "role"
    roles: list[RolePolicyRole] = Field(default_factory=list)


class AggregatePolicy(Policy):
    config_keys = {"apply_policies": ("applyPolicies", JSON)}

    type: Literal["aggregate"] = "aggregate"
    apply_policies: list[str] = Field(default_factory=list)


class ResourcePermission(Policy):
    config_keys = {
        "default_resource_type": ("defaultResourceType", TEXT),
        "default_permission": ("default", BOOL),
        "resources": ("resources", JSON),
        "scopes": ("scopes", JSON),
        "apply_policies": ("applyPolicies", JSON),
    }

    type: Literal["resource"] = "resource"
    default_resource_type: str | None = None
    default_permission: bool | None = None
    resources: list[str] | None = None
    scopes: list[str] | None = None
    apply_policies: list[str] = Field(default_factory=list)


class ScopePermission(Policy):
    config_keys = {
        "resources": ("resources", JSON),
        "scopes": ("scopes", JSON),
        "apply_policies": ("applyPolicies", JSON),
    }

    type: Literal["scope"] = "scope"
    resources: list[str] | None = None
    scopes: list[str] = Field(default_factory=list)
    apply_policies: list[str] = Field(default_factory=list)


class JsPolicy(Policy):
    config_keys = {"code": ("code", TEXT)}

    type: Literal["js"] = "js"
    code: str


class TimePolicy(Policy):
    config_keys = {
        "hour": ("hour", TEXT),
        "hour_end": ("hourEnd", TEXT),
        "minute": ("minute", TEXT),
        "minute_end": ("minuteEnd", TEXT),
        "not_before": ("nbf", TEXT),
        "not_on_or_after": ("noa", TEXT),
    }

    type: Literal["time"] = "time"
    hour: str | None = None
    hour_end: str | None = None
    minute: str | None = None
    minute_end: str | None = None
    not_before: str | None = None
    not_on_or_after: str | None = None

    @field_validator("hour", "hour_end", "minute", "minute_end", mode="before")
    @classmethod
    def _int_as_text(cls, v: Any) -> Any:
        return str(v) if isinstance(v, int) else v


class ClientPolicy(Policy):
    config_keys = {"clients": ("clients", JSON)}

    type: Literal["client"] = "client"
    clients: list[str] = Field(default_factory=list)


class UserPolicy(Policy):
    config_keys = {"users": ("users", JSON)}

    type: Literal["user"] = "user"
    users: list[str] = Field(default_factory=list)


class GroupPolicyGroup(KeycloakModel):
    id: str | None = None
    path: str | None = None
    extend_children: bool = False


class GroupPolicy(Policy):
    config_keys = {
        "groups": ("groups", JSON),
        "groups_claim": ("groupsClaim", TEXT),
    }

    type: Literal["group"] = "group"
    groups: list[GroupPolicyGroup] = Field(default_factory=list)
    groups_claim: str | None = None


POLICY_TYPES: dict[str, type[Policy]] = {
    "role": RolePolicy,
    "aggregate": AggregatePolicy,
    "resource": ResourcePermission,
    "scope": ScopePermission,
    "js": JsPolicy,
    "time": TimePolicy,
    "client": ClientPolicy,
    "user": UserPolicy,
    "group": GroupPolicy,
}


def parse_policy(value: Any) -> Policy:
    """Accept a Policy, a wire-form dict (with ``config``) or a typed dict."""
    if isinstance(value, Policy):
        return value
    if not isinstance(value, dict):
        raise KeycloakValidationError(f"Policy must be a mapping, got {type(value).__name__}")
    if "config" in value:
        return Policy.from_representation(value)
    policy_cls = POLICY_TYPES.get(value.get("type", ""), Policy)
    try:
        return policy_cls.model_validate(value)
    except ValueError as e:
        name = value.get("name", "")
        raise KeycloakValidationError(
            f"Policy '{name}' is malformed: {e}", reference=name
        ) from e


class AuthorizationScope(KeycloakModel):
    id: str | None = None
    name: str
    display_name: str | None = None
    icon_uri: str | None = None


class AuthorizationResource(KeycloakModel):
    id: str | None = None
    name: str
    display_name: str | None = None
    type: str | None = None
    uris: list[str] = Field(default_factory=list)
    owner_managed_access: bool = False
    scopes: list[AuthorizationScope] = Field(default_factory=list)
    attributes: dict[str, list[str]] = Field(default_factory=dict)


class ResourceServer(KeycloakModel):
    """Authorization settings (resources, policies, scopes) of a client."""

    allow_remote_resource_management: bool = False
    policy_enforcement_mode: Literal["ENFORCING", "PERMISSIVE", "DISABLED"] = "ENFORCING"
    decision_strategy: Literal["UNANIMOUS", "AFFIRMATIVE", "CONSENSUS"] = "UNANIMOUS"
    resources: list[AuthorizationResource] = Field(default_factory=list)
    policies: list[SerializeAsAny[Policy]] = Field(default_factory=list)
    scopes: list[AuthorizationScope] = Field(default_factory=list)

    @field_validator("policies", mode="before")
    @classmethod
    def _parse_policies(cls, v: Any) -> Any:
        if v is None:
            return []
        return [parse_policy(p) for p in v]

    def to_representation(self) -> dict[str, Any]:
        rep = self.model_dump(by_alias=True, exclude_none=True, exclude={"policies"})
        rep["policies"] = [p.to_representation() for p in self.policies]
        return rep
