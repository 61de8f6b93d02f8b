"""Record types for the service authorization reference.

Every decoder in the package produces these types; the serializer only ever
sees their ``to_dict()`` output. Key order in ``to_dict()`` is the published
JSON layout and must not be sorted.

Type hierarchy:
  ServiceAuthorizationReference — one service page
    Action                      — one row group of the actions table
      ActionResourceType        — one resource-type row under an action
    ResourceType                — one row of the resource types table
    ConditionKey                — one row of the condition keys table
  Topic                         — one service entry on the index page

Errors:
  ShapeError            — table width drifted from what the schema expects
  MalformedSpanWarning  — rowspan attribute not a positive integer
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

PERMISSION_ONLY_MARKER = "[permission only]"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class ShapeError(ValueError):
    """Raised when a table row does not have the cell count the schema needs.

    This is fatal for the page being decoded: it means the documentation
    layout has changed and the schema no longer describes it.
    """

    def __init__(
        self,
        message: str,
        *,
        row_index: int,
        expected: int,
        actual: int,
        row_html: str = "",
    ) -> None:
        super().__init__(f"{message}: {row_html!r}" if row_html else message)
        self.row_index = row_index
        self.expected = expected
        self.actual = actual
        self.row_html = row_html


class MalformedSpanWarning(UserWarning):
    """A rowspan attribute could not be read as a positive integer; span=1 used."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(slots=True)
class ActionResourceType:
    """A resource type that can be named on an action."""

    resource_type: str
    required: bool = False
    condition_keys: list[str] = field(default_factory=list)
    dependent_actions: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "resourceType": self.resource_type,
            "required": self.required,
            "conditionKeys": list(self.condition_keys),
            "dependentActions": list(self.dependent_actions),
        }


@dataclass(slots=True)
class Action:
    """An action that can be allowed or denied in a policy statement.

    Parent fields (name, permission_only, reference_href, description,
    access_level) are set on the row where the action starts and are not
    revised by later rows of the same action.
    """

    name: str
    permission_only: bool = False
    reference_href: str = ""
    description: str = ""
    access_level: str = ""
    resource_types: list[ActionResourceType] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "permissionOnly": self.permission_only,
        }
        if self.reference_href:
            out["referenceHref"] = self.reference_href
        out["description"] = self.description
        out["accessLevel"] = self.access_level
        out["resourceTypes"] = [rt.to_dict() for rt in self.resource_types]
        return out


@dataclass(slots=True)
class ResourceType:
    """A resource type defined by a service, with its ARN pattern."""

    name: str
    reference_href: str = ""
    arn_pattern: str = ""
    condition_keys: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.reference_href:
            out["referenceHref"] = self.reference_href
        out["arnPattern"] = self.arn_pattern
        out["conditionKeys"] = list(self.condition_keys)
        return out


@dataclass(slots=True)
class ConditionKey:
    """A condition key that can be used in a policy statement."""

    name: str
    reference_href: str = ""
    description: str = ""
    type: str = ""

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"name": self.name}
        if self.reference_href:
            out["referenceHref"] = self.reference_href
        out["description"] = self.description
        out["type"] = self.type
        return out


@dataclass(slots=True)
class ServiceAuthorizationReference:
    """Everything decoded from one service's reference page."""

    name: str
    service_prefix: str = ""
    auth_reference_href: str = ""
    api_reference_href: str = ""
    actions: list[Action] = field(default_factory=list)
    resource_types: list[ResourceType] = field(default_factory=list)
    condition_keys: list[ConditionKey] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "name": self.name,
            "servicePrefix": self.service_prefix,
            "authReferenceHref": self.auth_reference_href,
        }
        if self.api_reference_href:
            out["apiReferenceHref"] = self.api_reference_href
        out["actions"] = [a.to_dict() for a in self.actions]
        out["resourceTypes"] = [rt.to_dict() for rt in self.resource_types]
        out["conditionKeys"] = [ck.to_dict() for ck in self.condition_keys]
        return out

    def counts(self) -> dict[str, int]:
        """Record counts per kind, for logs and run manifests."""
        return {
            "actions": len(self.actions),
            "resource_types": len(self.resource_types),
            "condition_keys": len(self.condition_keys),
        }


@dataclass(frozen=True, slots=True)
class Topic:
    """One service entry of the reference index page."""

    name: str
    url: str

    def __post_init__(self) -> None:
        if not self.url:
            raise ValueError(f"Topic {self.name!r} has an empty url")
