"""
Services layer for business logic.

This package contains service classes that encapsulate business logic,
separating it from CRUD operations and provider clients.

Services:
- BaseService: Base class for all services
- StreamService: Stream ranking and playback resolution
"""

from .base import BaseService
from .stream import StreamService

__all__ = [
    "BaseService",
    "StreamService",
]
