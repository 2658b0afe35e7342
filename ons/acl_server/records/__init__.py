"""Record canonicalization and record store synchronization."""

from .canonical import canonicalize, canonicalize_record
from .synchronizer import DivergenceReport, RecordListing, RecordOutcome, RecordSynchronizer

__all__ = [
    "DivergenceReport",
    "RecordListing",
    "RecordOutcome",
    "RecordSynchronizer",
    "canonicalize",
    "canonicalize_record",
]
