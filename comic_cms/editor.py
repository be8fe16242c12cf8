"""
In-memory editor state for building or editing a comic.

A ComicEditor holds an ordered list of pages and a cursor. Pages may point
at a freshly picked ImageUpload or at an already persisted URL. Nothing is
written to the stores until save() (or auto-save in edit mode) runs.
"""

from __future__ import annotations

import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Optional, Union

from comic_cms import comics
from comic_cms.comics import DEFAULT_TITLE, Comic, PageInput
from comic_cms.db import DbClient
from comic_cms.errors import ComicPersistenceError, EditorError
from comic_cms.images import ImageUpload
from comic_cms.storage import StorageClient

logger = logging.getLogger(__name__)

AUTOSAVE_IDLE = "idle"
AUTOSAVE_SAVING = "saving"
AUTOSAVE_SAVED = "saved"

PageImage = Union[ImageUpload, str]


@dataclass
class EditorPage:
    id: str
    image: PageImage
    caption: str

    @property
    def has_upload(self) -> bool:
        return isinstance(self.image, ImageUpload)

    def to_page_input(self) -> PageInput:
        if isinstance(self.image, ImageUpload):
            return PageInput(id=self.id, caption=self.caption, image=self.image)
        return PageInput(id=self.id, caption=self.caption, image_url=self.image)


def _local_page_id() -> str:
    # Never collides with a stored id, so an update inserts these pages.
    return f"local-{uuid.uuid4().hex}"


@dataclass
class ComicEditor:
    db: DbClient
    storage: StorageClient
    autosave: bool = True
    id_style: str = "uuid"
    id_length: int = 8

    pages: list[EditorPage] = field(default_factory=list)
    current_index: int = 0
    title: str = ""
    comic_id: Optional[str] = None
    is_editing_caption: bool = False
    edit_text: str = ""
    autosave_status: str = AUTOSAVE_IDLE
    error: Optional[str] = None

    @property
    def current_page(self) -> Optional[EditorPage]:
        if 0 <= self.current_index < len(self.pages):
            return self.pages[self.current_index]
        return None

    @property
    def is_edit_mode(self) -> bool:
        return self.comic_id is not None

    # Loading

    def load(self, comic_id: str) -> None:
        """Switch to edit mode on a stored comic."""
        try:
            comic = comics.get_comic(comic_id, db=self.db)
        except ComicPersistenceError as e:
            logger.error("Error loading comic %s: %s", comic_id, e)
            self.error = "Failed to load comic"
            raise EditorError(self.error) from e
        if comic is None:
            self.error = "Comic not found"
            raise EditorError(self.error)
        self.comic_id = comic_id
        self.title = comic.title or ""
        self._set_pages_from(comic)
        self.current_index = 0
        self.is_editing_caption = False
        self.edit_text = ""
        self.error = None

    def _set_pages_from(self, comic: Comic) -> None:
        self.pages = [
            EditorPage(id=page.id, image=page.image_url or "", caption=page.caption or "")
            for page in comic.pages
        ]
        if self.current_index >= len(self.pages):
            self.current_index = max(len(self.pages) - 1, 0)

    # Page list mutations

    def insert_page(self, image: Optional[PageImage], caption: str) -> EditorPage:
        """Insert a page after the current one and move the cursor onto it."""
        if not image or not (caption or "").strip():
            raise EditorError("Please add both an image and caption")
        page = EditorPage(id=_local_page_id(), image=image, caption=caption)
        insert_index = 0 if not self.pages else self.current_index + 1
        self.pages.insert(insert_index, page)
        self.current_index = insert_index
        self._changed()
        return page

    def remove_current(self) -> None:
        if self.current_page is None:
            return
        del self.pages[self.current_index]
        if not self.pages:
            self.current_index = 0
        elif self.current_index >= len(self.pages):
            self.current_index = len(self.pages) - 1
        self.is_editing_caption = False
        self._changed()

    def replace_current_image(self, image: PageImage) -> None:
        page = self.current_page
        if page is None or not image:
            return
        self.pages[self.current_index] = EditorPage(
            id=page.id, image=image, caption=page.caption
        )
        self._changed()

    def set_title(self, title: str) -> None:
        if title == self.title:
            return
        self.title = title
        self._changed()

    # Caption editing

    def start_editing_caption(self) -> None:
        page = self.current_page
        if page is None:
            return
        self.edit_text = page.caption
        self.is_editing_caption = True

    def commit_caption(self, text: Optional[str] = None) -> None:
        """Apply the edited caption to the current page; blank text is ignored."""
        if text is not None:
            self.edit_text = text
        page = self.current_page
        cleaned = (self.edit_text or "").strip()
        if page is None or not cleaned:
            return
        self.pages[self.current_index] = EditorPage(
            id=page.id, image=page.image, caption=cleaned
        )
        self.is_editing_caption = False
        self.edit_text = ""
        self._changed()

    def cancel_editing_caption(self) -> None:
        self.is_editing_caption = False
        self.edit_text = ""

    # Navigation

    def previous(self) -> None:
        if self.current_index > 0:
            self.current_index -= 1
            self.is_editing_caption = False

    def next(self) -> None:
        if self.current_index < len(self.pages) - 1:
            self.current_index += 1
            self.is_editing_caption = False

    # Persistence

    def save(self) -> str:
        """
        Create the comic, or update it when an id is already known.

        The page list is only replaced after the remote calls succeed; on
        failure it is left untouched and the message is kept in `error`.
        """
        if not self.pages:
            raise EditorError("Please create at least one page before saving")

        pages_for_saving = [page.to_page_input() for page in self.pages]
        try:
            if self.is_edit_mode:
                comics.update_comic(
                    self.comic_id,
                    pages_for_saving,
                    self.title,
                    db=self.db,
                    storage=self.storage,
                )
                comic_id = self.comic_id
            else:
                comic_id = comics.save_comic(
                    pages_for_saving,
                    self.title or DEFAULT_TITLE,
                    db=self.db,
                    storage=self.storage,
                    id_style=self.id_style,
                    id_length=self.id_length,
                )
        except ComicPersistenceError as e:
            logger.error("Error saving comic: %s", e)
            self.error = str(e)
            raise EditorError(self.error) from e

        self.comic_id = comic_id
        self.error = None
        self._refresh()
        return comic_id

    def _changed(self) -> None:
        if not (self.autosave and self.is_edit_mode and self.pages and self.title):
            return
        self.autosave_status = AUTOSAVE_SAVING
        try:
            comics.update_comic(
                self.comic_id,
                [page.to_page_input() for page in self.pages],
                self.title,
                db=self.db,
                storage=self.storage,
            )
        except ComicPersistenceError as e:
            logger.error("Autosave failed: %s", e)
            self.error = f"Autosave failed: {e}"
            self.autosave_status = AUTOSAVE_IDLE
            return
        self.autosave_status = AUTOSAVE_SAVED
        self._refresh()

    def _refresh(self) -> None:
        """Replace local pages with the stored ones so uploads become URLs."""
        try:
            comic = comics.get_comic(self.comic_id, db=self.db)
        except ComicPersistenceError as e:
            logger.error("Error reloading comic %s: %s", self.comic_id, e)
            self.error = str(e)
            return
        if comic is not None:
            self.title = comic.title
            self._set_pages_from(comic)

    def take_autosave_status(self) -> str:
        """Return the auto-save status once, then fall back to idle."""
        status = self.autosave_status
        if status == AUTOSAVE_SAVED:
            self.autosave_status = AUTOSAVE_IDLE
        return status

    def take_error(self) -> Optional[str]:
        error, self.error = self.error, None
        return error

    def new_comic(self) -> None:
        """Drop everything and start a fresh, unsaved comic."""
        self.pages = []
        self.current_index = 0
        self.title = ""
        self.comic_id = None
        self.is_editing_caption = False
        self.edit_text = ""
        self.autosave_status = AUTOSAVE_IDLE
        self.error = None


class EditorSessionStore:
    """
    Keeps one ComicEditor per browser session.

    At most `max_sessions` editors are held; the least recently used one is
    dropped when a new session would exceed that.
    """

    def __init__(
        self, factory: Callable[[], ComicEditor], max_sessions: int = 1000
    ):
        self._factory = factory
        self.max_sessions = max_sessions
        self._sessions: "OrderedDict[str, ComicEditor]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> tuple[str, ComicEditor]:
        session_id = uuid.uuid4().hex
        editor = self._factory()
        self._sessions[session_id] = editor
        while len(self._sessions) > self.max_sessions:
            evicted, _ = self._sessions.popitem(last=False)
            logger.info("Evicted editor session %s", evicted)
        return session_id, editor

    def get(self, session_id: Optional[str]) -> Optional[ComicEditor]:
        if not session_id:
            return None
        editor = self._sessions.get(session_id)
        if editor is not None:
            self._sessions.move_to_end(session_id)
        return editor

    def get_or_create(self, session_id: Optional[str]) -> tuple[str, ComicEditor]:
        editor = self.get(session_id)
        if editor is not None:
            return session_id, editor
        return self.create()

    def reset(self) -> None:
        self._sessions.clear()
