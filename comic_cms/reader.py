"""
Read-only pagination over a stored comic.
"""

from __future__ import annotations

from typing import Optional

from comic_cms.comics import Comic
from comic_cms.db import PageRecord

PREVIOUS_KEYS = frozenset({"ArrowLeft", "ArrowUp"})
NEXT_KEYS = frozenset({"ArrowRight", "ArrowDown"})


class ComicReader:
    """Shows one page at a time; the cursor is clamped to the page range."""

    def __init__(self, comic: Comic, index: int = 0):
        self.comic = comic
        self.index = 0
        self.go_to(index + 1)

    @property
    def page_count(self) -> int:
        return len(self.comic.pages)

    @property
    def current_page(self) -> Optional[PageRecord]:
        if not self.comic.pages:
            return None
        return self.comic.pages[self.index]

    @property
    def position(self) -> int:
        """1-based position of the current page."""
        return self.index + 1

    @property
    def has_previous(self) -> bool:
        return self.index > 0

    @property
    def has_next(self) -> bool:
        return self.index < self.page_count - 1

    def previous(self) -> None:
        if self.has_previous:
            self.index -= 1

    def next(self) -> None:
        if self.has_next:
            self.index += 1

    def go_to(self, position: int) -> None:
        """Jump to a 1-based position, clamped to the first and last page."""
        last = max(self.page_count - 1, 0)
        self.index = min(max(position - 1, 0), last)

    def handle_key(self, key: str) -> bool:
        """Apply a keyboard key. Returns True if the key is a navigation key."""
        if key in PREVIOUS_KEYS:
            self.previous()
            return True
        if key in NEXT_KEYS:
            self.next()
            return True
        return False

    def handle_click(self, fraction: float) -> None:
        """A click on the left half goes back, on the right half forward."""
        if fraction < 0.5:
            self.previous()
        else:
            self.next()
