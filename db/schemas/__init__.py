"""
Database schemas package.

This module re-exports all Pydantic schemas for easy importing:
    from db.schemas import ContentIdentity, StreamRecord, ...
"""

from db.schemas.media import (
    CandidateStream,
    ContentIdentity,
    ContentRecord,
    RankedStream,
    StreamRecord,
    utcnow,
)
from db.schemas.providers import (
    ProviderAvailabilityResult,
    ResolutionOutcome,
)

__all__ = [
    "CandidateStream",
    "ContentIdentity",
    "ContentRecord",
    "ProviderAvailabilityResult",
    "RankedStream",
    "ResolutionOutcome",
    "StreamRecord",
    "utcnow",
]
