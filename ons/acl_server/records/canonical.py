"""
Record name canonicalization.

A record name submitted relative to its domain ("www") is fully qualified
against the domain ("www.example.com"). Names that are already qualified,
and the apex name itself, are left unchanged, so the function is idempotent.
"""

from __future__ import annotations

from ..remote.base import RecordInput


def canonicalize(domain: str, name: str) -> str:
    """Fully qualify a record name against its domain.

    Example:
        >>> canonicalize("example.com", "www")
        'www.example.com'
        >>> canonicalize("example.com", "www.example.com")
        'www.example.com'
    """
    if name == domain or name.endswith("." + domain):
        return name
    return f"{name}.{domain}"


def canonicalize_record(domain: str, record: RecordInput) -> RecordInput:
    """Return a copy of record with its name canonicalized."""
    return record.model_copy(update={"name": canonicalize(domain, record.name)})
