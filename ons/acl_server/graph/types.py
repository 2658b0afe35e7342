"""
Core type definitions for the entity graph.

This module defines the node/relationship model the authority core works on:
- NodeKind: Organization, Domain, RecordHost, Record, Principal
- EdgeKind: the nine directed relationship kinds and their endpoints
- VALIDATION_INFO: format and length rules for node properties
- Node, Edge, HostNode, GraphRecord: rows returned by the EntityGraph

Invariants:
    - Every node is keyed by a unique name within its kind
    - Record keys are "<canonical name>:<numeric id>"
    - RecordHost keys are "<ipv4 address>:<port>"
    - Edge endpoints are fixed per EdgeKind (see EDGE_ENDPOINTS)

How to change safely:
    - New edge kinds need an EDGE_ENDPOINTS entry
    - Loosening a pattern is safe; tightening one can orphan stored nodes
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..errors import ValidationError


class NodeKind(Enum):
    """Node labels in the entity graph."""

    ORGANIZATION = "Organization"
    DOMAIN = "Domain"
    RECORD_HOST = "RecordHost"
    RECORD = "Record"
    PRINCIPAL = "Principal"


class EdgeKind(Enum):
    """Relationship kinds in the entity graph."""

    OWNS = "owns"
    ADMINISTERS = "administers"
    DELEGATES = "delegates"
    DELEGATE_OF = "delegateOf"
    CONTAINS = "contains"
    HOSTS = "hosts"
    WORKS_FOR = "worksFor"
    ADMINISTERS_ORG = "administersOrg"
    REQUESTS_ORG = "requestsOrg"


EDGE_ENDPOINTS: dict[EdgeKind, tuple[NodeKind, NodeKind]] = {
    EdgeKind.OWNS: (NodeKind.ORGANIZATION, NodeKind.DOMAIN),
    EdgeKind.ADMINISTERS: (NodeKind.ORGANIZATION, NodeKind.RECORD_HOST),
    EdgeKind.DELEGATES: (NodeKind.DOMAIN, NodeKind.ORGANIZATION),
    EdgeKind.DELEGATE_OF: (NodeKind.ORGANIZATION, NodeKind.RECORD),
    EdgeKind.CONTAINS: (NodeKind.DOMAIN, NodeKind.RECORD),
    EdgeKind.HOSTS: (NodeKind.RECORD_HOST, NodeKind.DOMAIN),
    EdgeKind.WORKS_FOR: (NodeKind.PRINCIPAL, NodeKind.ORGANIZATION),
    EdgeKind.ADMINISTERS_ORG: (NodeKind.PRINCIPAL, NodeKind.ORGANIZATION),
    EdgeKind.REQUESTS_ORG: (NodeKind.PRINCIPAL, NodeKind.ORGANIZATION),
}


@dataclass(frozen=True)
class PropertyRule:
    """Format constraint for one node property.

    Attributes:
        min_length: Minimum length
        max_length: Maximum length
        pattern: Regular expression the whole value must match (optional)
        message: Human readable requirement, appended to error messages
        required: Whether the property must be present
    """

    min_length: int
    max_length: int
    message: str
    pattern: re.Pattern[str] | None = None
    required: bool = True


_NAME_RULE = PropertyRule(
    min_length=2,
    max_length=25,
    pattern=re.compile(r"^[A-Za-z0-9_@.]+$"),
    message="2-25 characters; letters, numbers, underscores, '.', and '@' only.",
)

VALIDATION_INFO: dict[NodeKind, dict[str, PropertyRule]] = {
    NodeKind.ORGANIZATION: {"name": _NAME_RULE},
    NodeKind.PRINCIPAL: {"name": _NAME_RULE},
    NodeKind.DOMAIN: {
        "name": PropertyRule(
            min_length=2,
            max_length=100,
            pattern=re.compile(r"^[A-Za-z0-9.]+$"),
            message="2-100 characters; letters, numbers, and '.' only.",
        ),
    },
    NodeKind.RECORD_HOST: {
        "name": PropertyRule(
            min_length=2,
            max_length=25,
            pattern=re.compile(
                r"^(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
                r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?):[0-9]{1,5}$"
            ),
            message="IP address and port only.",
        ),
        "store_username": PropertyRule(
            min_length=2,
            max_length=50,
            pattern=re.compile(r"^[A-Za-z]+$"),
            message="2-50 characters; letters only.",
        ),
        "store_password": PropertyRule(
            min_length=2,
            max_length=50,
            pattern=re.compile(r"^[A-Za-z0-9_@.]+$"),
            message="2-50 characters; letters, numbers, underscores, '.', and '@' only.",
        ),
    },
    NodeKind.RECORD: {
        "name": PropertyRule(
            min_length=2,
            max_length=100,
            pattern=re.compile(r"^[A-Za-z0-9.:_*-]+$"),
            message="2-100 characters; letters, numbers, '.', '_', '-', '*', and ':' only.",
        ),
        "type": PropertyRule(
            min_length=1,
            max_length=25,
            pattern=re.compile(r"^[A-Z]+$"),
            message="1-25 characters; upper letters only.",
        ),
        "content": PropertyRule(
            min_length=1,
            max_length=200,
            message="1-200 any characters.",
        ),
    },
}


def validate_property(kind: NodeKind, prop: str, value: Any) -> None:
    """Validate one property of a node.

    Args:
        kind: Node kind the property belongs to
        prop: Property name
        value: Candidate value

    Raises:
        ValidationError: If the value is missing, too short, too long or malformed
    """
    rule = VALIDATION_INFO[kind][prop]

    if value is None or value == "":
        if rule.required:
            raise ValidationError(f"Missing {prop} (required).", field_name=prop)
        return

    if not isinstance(value, str):
        raise ValidationError(
            f"Invalid {prop} (format). Requirements: {rule.message}", field_name=prop
        )

    if len(value) < rule.min_length:
        raise ValidationError(
            f"Invalid {prop} (too short). Requirements: {rule.message}", field_name=prop
        )

    if len(value) > rule.max_length:
        raise ValidationError(
            f"Invalid {prop} (too long). Requirements: {rule.message}", field_name=prop
        )

    if rule.pattern is not None and not rule.pattern.match(value):
        raise ValidationError(
            f"Invalid {prop} (format). Requirements: {rule.message}", field_name=prop
        )


def validate_record_key(key: Any) -> None:
    """Validate a Record key.

    The name rule applies to the canonical name part only; the suffix must be
    the numeric store id.

    Raises:
        ValidationError: If the key is missing, has no id or its name is invalid
    """
    if not isinstance(key, str) or not key:
        validate_property(NodeKind.RECORD, "name", key)
    name, _ = split_record_key(key)
    validate_property(NodeKind.RECORD, "name", name)


def validate_node(kind: NodeKind, props: dict[str, Any]) -> dict[str, Any]:
    """Validate the known properties of a node and return only those.

    Unknown keys are dropped so callers cannot smuggle extra properties in.
    Record names are keys ("<name>:<id>") and are checked with validate_record_key.
    """
    safe_props: dict[str, Any] = {}
    for prop in VALIDATION_INFO[kind]:
        value = props.get(prop)
        if kind == NodeKind.RECORD and prop == "name":
            validate_record_key(value)
        else:
            validate_property(kind, prop, value)
        safe_props[prop] = value
    return safe_props


def record_key(name: str, record_id: int | str) -> str:
    """Build the composite key of a Record node."""
    return f"{name}:{record_id}"


def split_record_key(key: str) -> tuple[str, int]:
    """Split a Record key into (canonical name, numeric id).

    Raises:
        ValidationError: If the key has no numeric id suffix
    """
    name, sep, id_str = key.rpartition(":")
    if not sep or not id_str.isdigit():
        raise ValidationError(f"Invalid record key: {key}", field_name="name")
    return name, int(id_str)


def host_key(address: str, port: int | str) -> str:
    """Build the key of a RecordHost node."""
    return f"{address}:{port}"


@dataclass
class Node:
    """A node in the entity graph.

    Attributes:
        kind: Node label
        name: Unique key within the kind
        props: Remaining properties
        created_at: Creation timestamp (Unix ms)
    """

    kind: NodeKind
    name: str
    props: dict[str, Any] = field(default_factory=dict)
    created_at: int = 0


@dataclass
class Edge:
    """A directed relationship between two nodes."""

    kind: EdgeKind
    from_name: str
    to_name: str
    props: dict[str, Any] = field(default_factory=dict)
    created_at: int = 0


@dataclass(frozen=True)
class HostNode:
    """A RecordHost with the credentials its record store expects."""

    name: str
    store_username: str
    store_password: str

    @property
    def address(self) -> str:
        return self.name.rsplit(":", 1)[0]

    @property
    def port(self) -> int:
        return int(self.name.rsplit(":", 1)[1])

    def to_cache(self) -> dict[str, str]:
        return {
            "name": self.name,
            "store_username": self.store_username,
            "store_password": self.store_password,
        }

    @classmethod
    def from_cache(cls, data: dict[str, Any]) -> HostNode:
        return cls(
            name=data["name"],
            store_username=data["store_username"],
            store_password=data["store_password"],
        )


@dataclass(frozen=True)
class GraphRecord:
    """A Record node as mirrored in the graph."""

    key: str
    type: str
    content: str

    @property
    def name(self) -> str:
        return split_record_key(self.key)[0]

    @property
    def record_id(self) -> int:
        return split_record_key(self.key)[1]
