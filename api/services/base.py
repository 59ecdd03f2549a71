"""Base service class for all services."""

import logging
from abc import ABC

from db.content_store import ContentStore, get_content_store
from utils.lock import IdentityLockRegistry, RedisLockRegistry, get_lock_registry


class BaseService(ABC):
    """Base class for all services.

    Provides common functionality like logging and content store access.
    """

    def __init__(
        self,
        store: ContentStore | None = None,
        lock_registry: IdentityLockRegistry | RedisLockRegistry | None = None,
        logger: logging.Logger | None = None,
    ):
        """Initialize the service.

        Args:
            store: Optional content store. Defaults to the configured backend.
            lock_registry: Optional per-identity lock registry for writers.
            logger: Optional logger instance. If not provided, creates one.
        """
        self._store = store if store is not None else get_content_store()
        self._lock_registry = (
            lock_registry if lock_registry is not None else get_lock_registry()
        )
        self._logger = logger or logging.getLogger(self.__class__.__name__)

    @property
    def store(self) -> ContentStore:
        """Get the content store."""
        return self._store

    @property
    def lock_registry(self) -> IdentityLockRegistry | RedisLockRegistry:
        """Get the lock registry used by writers."""
        return self._lock_registry

    @property
    def logger(self) -> logging.Logger:
        """Get the logger."""
        return self._logger
