"""
Entity graph for the ONS ACL server.

The graph holds organizations, domains, record hosts, records and principals
plus the directed relationships that grant authority between them.
"""

from .store import EntityGraph
from .types import (
    EDGE_ENDPOINTS,
    VALIDATION_INFO,
    Edge,
    EdgeKind,
    GraphRecord,
    HostNode,
    Node,
    NodeKind,
    PropertyRule,
    host_key,
    record_key,
    split_record_key,
    validate_node,
    validate_property,
    validate_record_key,
)

__all__ = [
    "EntityGraph",
    "EDGE_ENDPOINTS",
    "VALIDATION_INFO",
    "Edge",
    "EdgeKind",
    "GraphRecord",
    "HostNode",
    "Node",
    "NodeKind",
    "PropertyRule",
    "host_key",
    "record_key",
    "split_record_key",
    "validate_node",
    "validate_property",
    "validate_record_key",
]
