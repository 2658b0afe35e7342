"""
ONS ACL Test Suite.

This package contains:
- unit/: Unit tests (temporary SQLite graph, in-memory cache and record store)
- integration/: Integration tests (whole delegation lifecycles through AclService)
"""
