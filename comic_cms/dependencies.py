"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

import logging

from comic_cms.config import get_settings
from comic_cms.db import DbClient, InMemoryDbClient, PostgresDbClient
from comic_cms.editor import ComicEditor, EditorSessionStore
from comic_cms.storage import InMemoryStorageClient, S3StorageClient, StorageClient

logger = logging.getLogger(__name__)

# In-memory objects are served back by the /media route.
IN_MEMORY_MEDIA_BASE_URL = "/media"

_db_client: DbClient | None = None
_storage_client: StorageClient | None = None
_editor_sessions: EditorSessionStore | None = None


def get_db_client() -> DbClient:
    """
    Return a singleton DB client so comics persist across requests.
    """
    global _db_client
    if _db_client:
        return _db_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        logger.info("Using in-memory row store")
        _db_client = InMemoryDbClient()
    else:
        _db_client = PostgresDbClient(settings.database_url)
    return _db_client


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.storage_bucket:
        logger.info("Using in-memory object storage")
        _storage_client = InMemoryStorageClient(base_url=IN_MEMORY_MEDIA_BASE_URL)
    else:
        _storage_client = S3StorageClient(
            bucket=settings.storage_bucket,
            region=settings.storage_region or "",
            endpoint=settings.storage_endpoint or "",
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
            public_base_url=settings.storage_public_base_url,
        )
    return _storage_client


def _new_editor() -> ComicEditor:
    settings = get_settings()
    return ComicEditor(
        db=get_db_client(),
        storage=get_storage_client(),
        autosave=settings.autosave,
        id_style=settings.comic_id_style,
        id_length=settings.short_comic_id_length,
    )


def get_editor_sessions() -> EditorSessionStore:
    global _editor_sessions
    if _editor_sessions is not None:
        return _editor_sessions
    _editor_sessions = EditorSessionStore(
        _new_editor, max_sessions=get_settings().max_editor_sessions
    )
    return _editor_sessions
