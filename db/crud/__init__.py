"""
Content store CRUD operations.

Usage:
    from db import crud
    record = await crud.get_content_record(identity)
    await crud.upsert_streams(identity, candidates, default_title)
"""

from db.crud.streams import (
    get_content_record,
    merge_stream_records,
    upsert_streams,
)

__all__ = [
    "get_content_record",
    "merge_stream_records",
    "upsert_streams",
]
