"""
Persistence client for comics: create, update (diff-based) and read.

Each remote step is wrapped with a message naming the step, and every public
operation re-raises failures as ComicPersistenceError. There is no rollback:
a failure after the comic row is written leaves it in place, and uploaded
objects are never cleaned up.
"""

from __future__ import annotations

import logging
import secrets
import string
import uuid
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from comic_cms.db import ComicRecord, DbClient, PageRecord
from comic_cms.errors import ComicPersistenceError, StoreError
from comic_cms.images import ImageUpload
from comic_cms.storage import StorageClient, comic_object_path

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "My Comic"
SHORT_ID_ALPHABET = string.ascii_lowercase + string.digits


@dataclass
class PageInput:
    """A page as handed to the persistence client."""

    caption: str
    id: Optional[str] = None
    image_url: Optional[str] = None
    image: Optional[ImageUpload] = None


@dataclass
class Comic:
    id: str
    title: str
    created_at: float
    updated_at: float
    pages: list[PageRecord] = field(default_factory=list)


@dataclass
class ShareLinks:
    view_url: str
    edit_url: str


class _StepError(Exception):
    pass


def new_comic_id(style: str = "uuid", length: int = 8) -> str:
    """Return a UUID, or a short random lowercase alphanumeric code."""
    if style == "short":
        return "".join(secrets.choice(SHORT_ID_ALPHABET) for _ in range(length))
    return str(uuid.uuid4())


def new_page_id() -> str:
    return str(uuid.uuid4())


def share_links(base_url: str, comic_id: str) -> ShareLinks:
    base = base_url.rstrip("/")
    return ShareLinks(view_url=f"{base}/comic/{comic_id}", edit_url=f"{base}/?id={comic_id}")


def _step(message: str, error: Exception) -> _StepError:
    return _StepError(f"{message}: {error}")


def upload_image(comic_id: str, image: ImageUpload, storage: StorageClient) -> str:
    """Upload `image` under the comic's prefix and return its public URL."""
    path = comic_object_path(comic_id, f"{uuid.uuid4()}-{image.filename}")
    try:
        storage.upload_bytes(path, image.data, image.content_type)
    except StoreError as e:
        raise _step("Error uploading image", e) from e
    return storage.public_url(path)


def _resolve_image_url(
    comic_id: str, page: PageInput, storage: StorageClient
) -> Optional[str]:
    if page.image is not None:
        return upload_image(comic_id, page.image, storage)
    return page.image_url


def save_comic(
    pages: Sequence[PageInput],
    title: str,
    *,
    db: DbClient,
    storage: StorageClient,
    id_style: str = "uuid",
    id_length: int = 8,
) -> str:
    """Create a comic with `pages` and return its new identifier."""
    try:
        comic_id = new_comic_id(id_style, id_length)
        try:
            db.insert_comic(comic_id, title)
        except StoreError as e:
            raise _step("Error creating comic", e) from e

        records = []
        for index, page in enumerate(pages):
            records.append(
                PageRecord(
                    id=new_page_id(),
                    comic_id=comic_id,
                    page_number=index + 1,
                    image_url=_resolve_image_url(comic_id, page, storage),
                    caption=page.caption,
                )
            )

        if records:
            try:
                db.insert_pages(records)
            except StoreError as e:
                raise _step("Error creating pages", e) from e
    except _StepError as e:
        logger.error("Error in save_comic: %s", e)
        raise ComicPersistenceError(f"Failed to save comic: {e}") from e

    logger.info("Saved comic %s with %d pages", comic_id, len(records))
    return comic_id


def update_comic(
    comic_id: str,
    pages: Sequence[PageInput],
    title: str,
    *,
    db: DbClient,
    storage: StorageClient,
) -> None:
    """
    Bring the stored comic in line with `pages`.

    Stored pages whose id is missing from `pages` are deleted, pages carrying
    a stored id are updated in place, and all others are inserted with fresh
    ids. Positions are rewritten to follow list order.
    """
    try:
        try:
            db.update_comic_title(comic_id, title)
        except StoreError as e:
            raise _step("Error updating comic title", e) from e

        try:
            existing_ids = set(db.list_page_ids(comic_id))
        except StoreError as e:
            raise _step("Error fetching existing pages", e) from e

        updated_ids = {page.id for page in pages if page.id}
        ids_to_delete = [pid for pid in existing_ids if pid not in updated_ids]
        if ids_to_delete:
            try:
                db.delete_pages(ids_to_delete)
            except StoreError as e:
                raise _step("Error deleting removed pages", e) from e

        updated_rows: set[str] = set()
        for index, page in enumerate(pages):
            image_url = _resolve_image_url(comic_id, page, storage)
            # A repeated stored id updates its row once; later copies are inserted.
            if page.id and page.id in existing_ids and page.id not in updated_rows:
                updated_rows.add(page.id)
                try:
                    db.update_page(
                        page.id,
                        page_number=index + 1,
                        image_url=image_url,
                        caption=page.caption,
                    )
                except StoreError as e:
                    raise _step("Error updating page", e) from e
            else:
                try:
                    db.insert_pages(
                        [
                            PageRecord(
                                id=new_page_id(),
                                comic_id=comic_id,
                                page_number=index + 1,
                                image_url=image_url,
                                caption=page.caption,
                            )
                        ]
                    )
                except StoreError as e:
                    raise _step("Error creating new page", e) from e
    except _StepError as e:
        logger.error("Error in update_comic: %s", e)
        raise ComicPersistenceError(f"Failed to update comic: {e}") from e

    logger.info(
        "Updated comic %s: %d pages, %d removed",
        comic_id,
        len(pages),
        len(ids_to_delete),
    )


def get_comic(comic_id: str, *, db: DbClient) -> Optional[Comic]:
    """Return the comic with its pages ordered by position, or None."""
    try:
        try:
            record = db.get_comic(comic_id)
        except StoreError as e:
            raise _step("Error fetching comic", e) from e
        if record is None:
            return None
        try:
            pages = db.list_pages(comic_id)
        except StoreError as e:
            raise _step("Error fetching pages", e) from e
    except _StepError as e:
        logger.error("Error in get_comic: %s", e)
        raise ComicPersistenceError(f"Failed to get comic: {e}") from e

    return _to_comic(record, sorted(pages, key=lambda p: p.page_number))


def upload_page_image(
    comic_id: str, image: ImageUpload, *, db: DbClient, storage: StorageClient
) -> Optional[str]:
    """Upload an image for an existing comic. Returns None if the comic is unknown."""
    try:
        try:
            if db.get_comic(comic_id) is None:
                return None
        except StoreError as e:
            raise _step("Error fetching comic", e) from e
        return upload_image(comic_id, image, storage)
    except _StepError as e:
        logger.error("Error in upload_page_image: %s", e)
        raise ComicPersistenceError(f"Failed to upload image: {e}") from e


def list_comics(*, db: DbClient, limit: int = 100) -> list[ComicRecord]:
    try:
        return db.list_comics(limit=limit)
    except StoreError as e:
        logger.error("Error in list_comics: %s", e)
        raise ComicPersistenceError(f"Failed to list comics: {e}") from e


def _to_comic(record: ComicRecord, pages: Iterable[PageRecord]) -> Comic:
    return Comic(
        id=record.id,
        title=record.title,
        created_at=record.created_at,
        updated_at=record.updated_at,
        pages=list(pages),
    )
