"""
Exception types shared across the comic CMS.
"""


class StoreError(Exception):
    """A row store or blob store call failed."""


class ComicPersistenceError(Exception):
    """A save, update or read of a comic failed at some remote step."""


class EditorError(Exception):
    """A user action in the editor could not be applied."""


class InvalidImageError(ValueError):
    """An uploaded payload is not an accepted image."""
