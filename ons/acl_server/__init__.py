"""
ONS ACL Server - delegated authority over namespace records.

This package decides who may read, create, edit or delete the resource
records of a domain, and keeps that decision graph in step with the records
that physically live in an external record store (one per RecordHost).

Architecture:
    ┌─────────────┐     ┌──────────────────┐     ┌──────────────────┐
    │   Caller    │────▶│ AuthorityResolver│────▶│   EntityGraph    │
    │ (token/org) │     │  + QuotaEnforcer │     │    (SQLite)      │
    └─────────────┘     └────────┬─────────┘     └────────▲─────────┘
                                 │                        │ 2. mirror
                                 ▼                        │
                        ┌──────────────────┐              │
                        │RecordSynchronizer│──────────────┘
                        │ DelegationManager│
                        │   HostManager    │───────┐ 1. mutate
                        └──────────────────┘       ▼
                                          ┌──────────────────┐
                                          │ External record  │
                                          │  store (RPC)     │
                                          └──────────────────┘

Invariants:
    - The external record store is the source of truth for record content
    - The graph is only mutated after the remote mutation succeeded
    - A graph failure after a remote success is reported as Diverged
    - Cascading removals are all-or-nothing at the remote level

How to change safely:
    - New edge kinds must be added to graph.types.EdgeKind and the schema
    - Keep cache keys stable; they are shared between processes via Redis
    - Never retry remote mutations from inside the core
"""

from ._version import __version__

__all__ = ["__version__"]
