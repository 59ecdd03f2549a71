import abc
import logging
from typing import Optional

import redis
from pydantic import ValidationError

from db.config import settings
from db.redis_database import REDIS_ASYNC_CLIENT, RedisWrapper
from db.schemas import ContentRecord

logger = logging.getLogger(__name__)


class StoreUnavailable(Exception):
    """The backend could not be read, which is not the same as a missing record."""


class ContentStore(abc.ABC):
    """
    Storage for one ContentRecord per canonical content identity key.
    Writers must go through db.crud.upsert_streams, which serializes them.
    """

    @abc.abstractmethod
    async def get(self, key: str, for_update: bool = False) -> Optional[ContentRecord]:
        """
        Return the record stored under key, or None. With for_update a failed
        read raises StoreUnavailable instead of reading as missing.
        """

    @abc.abstractmethod
    async def put(self, record: ContentRecord) -> None:
        pass


class InMemoryContentStore(ContentStore):
    def __init__(self):
        self._records: dict[str, ContentRecord] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, key: str, for_update: bool = False) -> Optional[ContentRecord]:
        record = self._records.get(key)
        # Hand out copies so readers never observe an in-progress merge
        return record.model_copy(deep=True) if record else None

    async def put(self, record: ContentRecord) -> None:
        self._records[record.identity_key] = record.model_copy(deep=True)


class RedisContentStore(ContentStore):
    def __init__(self, client: RedisWrapper = REDIS_ASYNC_CLIENT, key_prefix: str = "content:"):
        self.client = client
        self.key_prefix = key_prefix

    def _cache_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    async def get(self, key: str, for_update: bool = False) -> Optional[ContentRecord]:
        try:
            data = await self.client.get(self._cache_key(key), raise_on_error=for_update)
        except (redis.exceptions.RedisError, RuntimeError) as error:
            raise StoreUnavailable(f"Failed to read content record {key}: {error}") from error
        if not data:
            return None
        try:
            return ContentRecord.model_validate_json(data)
        except ValidationError as error:
            logger.error("Discarding corrupt content record %s: %s", key, error)
            return None

    async def put(self, record: ContentRecord) -> None:
        await self.client.set(
            self._cache_key(record.identity_key),
            record.model_dump_json().encode("utf-8"),
        )


_content_store: Optional[ContentStore] = None


def get_content_store() -> ContentStore:
    global _content_store
    if _content_store is None:
        if settings.content_store_backend == "redis":
            _content_store = RedisContentStore()
        else:
            _content_store = InMemoryContentStore()
        logger.info("Using %s", type(_content_store).__name__)
    return _content_store
