import logging
from datetime import datetime
from typing import Iterable, Optional

from db.config import settings
from db.content_store import ContentStore, StoreUnavailable, get_content_store
from db.schemas import (
    CandidateStream,
    ContentIdentity,
    ContentRecord,
    StreamRecord,
    utcnow,
)
from utils.lock import IdentityLockRegistry, RedisLockRegistry, get_lock_registry

logger = logging.getLogger(__name__)


async def get_content_record(
    identity: ContentIdentity, store: Optional[ContentStore] = None
) -> Optional[ContentRecord]:
    """Read the last committed record. Never waits on the merge lock."""
    if store is None:
        store = get_content_store()
    return await store.get(identity.canonical_key)


def _new_stream_record(candidate: CandidateStream, now: datetime) -> StreamRecord:
    return StreamRecord(
        info_hash=candidate.info_hash,
        magnet_link=candidate.magnet_link,
        filename=candidate.filename,
        display_title=candidate.title or candidate.filename,
        quality=candidate.quality,
        size_mb=candidate.size_mb,
        source=candidate.source,
        availability=dict(candidate.availability),
        degraded={
            provider_id: candidate.degraded.get(provider_id, False)
            for provider_id in candidate.availability
        },
        checked_at={provider_id: now for provider_id in candidate.availability},
        last_checked_at=now if candidate.availability else None,
        added_at=now,
    )


def merge_stream_records(
    existing: Iterable[StreamRecord],
    candidates: Iterable[CandidateStream],
    now: Optional[datetime] = None,
) -> list[StreamRecord]:
    """
    Merge candidates into a copy of the existing streams, keeping insertion
    order. Known hashes only get their availability flags updated, new hashes
    are appended.
    """
    now = now or utcnow()
    streams = [stream.model_copy(deep=True) for stream in existing]
    streams_by_hash = {stream.info_hash: stream for stream in streams}

    for candidate in candidates:
        current = streams_by_hash.get(candidate.info_hash)
        if current is None:
            record = _new_stream_record(candidate, now)
            streams.append(record)
            streams_by_hash[record.info_hash] = record
            continue

        for provider_id, cached in candidate.availability.items():
            if current.availability.get(provider_id) != cached:
                current.availability[provider_id] = cached
            degraded = candidate.degraded.get(provider_id, False)
            if current.degraded.get(provider_id) != degraded:
                current.degraded[provider_id] = degraded
            current.checked_at[provider_id] = now
        if candidate.availability:
            current.last_checked_at = now

    return streams


async def upsert_streams(
    identity: ContentIdentity,
    candidates: list[CandidateStream],
    default_title: Optional[str] = None,
    store: Optional[ContentStore] = None,
    lock_registry: Optional[IdentityLockRegistry | RedisLockRegistry] = None,
    lock_timeout: Optional[float] = None,
) -> list[StreamRecord]:
    """
    Merge candidates into the content record of identity, one writer per
    identity at a time. If the lock cannot be taken in time the upsert is
    dropped and the previous snapshot is returned untouched. If the stored
    record cannot be read the upsert is dropped too, and the candidates are
    returned unpersisted.
    """
    if store is None:
        store = get_content_store()
    if lock_registry is None:
        lock_registry = get_lock_registry()
    if lock_timeout is None:
        lock_timeout = settings.merge_lock_timeout
    key = identity.canonical_key

    async with lock_registry.hold(key, lock_timeout) as lock_result:
        if lock_result.timed_out:
            logger.warning(
                "Dropping upsert of %s streams for %s, lock not acquired",
                len(candidates),
                key,
            )
            record = await store.get(key)
            return record.streams if record else []

        now = utcnow()
        try:
            record = await store.get(key, for_update=True)
        except StoreUnavailable as error:
            # an unreadable record is never overwritten
            logger.warning("Dropping upsert for %s: %s", key, error)
            return merge_stream_records([], candidates, now)
        if record is None:
            record = ContentRecord(
                identity_key=key,
                title=default_title or identity.default_title,
                last_updated_at=now,
            )

        streams = merge_stream_records(record.streams, candidates, now)
        record = record.model_copy(update={"streams": streams, "last_updated_at": now})
        await store.put(record)
        logger.info(
            "Stored %s streams for %s (%s candidates merged)",
            len(streams),
            key,
            len(candidates),
        )
        return streams
