"""Debrid provider availability and resolution schemas."""

from typing import Any, Optional

from pydantic import BaseModel

from db.enums import ResolutionStatus


class ProviderAvailabilityResult(BaseModel):
    """
    Cache status of one info hash on one provider. `degraded` marks a
    best-effort answer given while the provider's check was unusable.
    """

    info_hash: str
    cached: bool
    degraded: bool = False
    error: Optional[str] = None
    files: Optional[list[dict[str, Any]]] = None


class ResolutionOutcome(BaseModel):
    provider_id: str
    status: ResolutionStatus
    url: Optional[str] = None
    reason: Optional[str] = None
