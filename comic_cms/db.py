"""
Database abstraction for Postgres and an in-memory test implementation.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, Optional, Protocol

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from comic_cms.errors import StoreError

logger = logging.getLogger(__name__)


class DbClient(Protocol):
    """Interface for row store access."""

    def insert_comic(self, comic_id: str, title: str) -> "ComicRecord":
        ...

    def update_comic_title(self, comic_id: str, title: str) -> None:
        ...

    def get_comic(self, comic_id: str) -> Optional["ComicRecord"]:
        ...

    def list_comics(self, limit: int = 100) -> list["ComicRecord"]:
        ...

    def list_page_ids(self, comic_id: str) -> list[str]:
        ...

    def list_pages(self, comic_id: str) -> list["PageRecord"]:
        ...

    def insert_pages(self, pages: Iterable["PageRecord"]) -> None:
        ...

    def update_page(
        self,
        page_id: str,
        *,
        page_number: int,
        image_url: Optional[str],
        caption: str,
    ) -> None:
        ...

    def delete_pages(self, page_ids: Iterable[str]) -> int:
        ...


@dataclass
class ComicRecord:
    id: str
    title: str
    created_at: float = field(default_factory=lambda: time.time())
    updated_at: float = field(default_factory=lambda: time.time())

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass
class PageRecord:
    id: str
    comic_id: str
    page_number: int
    caption: str
    image_url: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            "id": self.id,
            "comic_id": self.comic_id,
            "page_number": self.page_number,
            "image_url": self.image_url,
            "caption": self.caption,
        }


class InMemoryDbClient:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        self.comics: Dict[str, ComicRecord] = {}
        self.pages: Dict[str, PageRecord] = {}

    def insert_comic(self, comic_id: str, title: str) -> ComicRecord:
        if comic_id in self.comics:
            raise StoreError(f"duplicate key value violates unique constraint: {comic_id}")
        record = ComicRecord(id=comic_id, title=title)
        self.comics[comic_id] = record
        return record

    def update_comic_title(self, comic_id: str, title: str) -> None:
        comic = self.comics.get(comic_id)
        if not comic:
            raise StoreError(f"Comic {comic_id} does not exist")
        comic.title = title
        comic.updated_at = time.time()

    def get_comic(self, comic_id: str) -> Optional[ComicRecord]:
        return self.comics.get(comic_id)

    def list_comics(self, limit: int = 100) -> list[ComicRecord]:
        ordered = sorted(
            self.comics.values(), key=lambda c: c.updated_at, reverse=True
        )
        return ordered[:limit]

    def list_page_ids(self, comic_id: str) -> list[str]:
        return [p.id for p in self.pages.values() if p.comic_id == comic_id]

    def list_pages(self, comic_id: str) -> list[PageRecord]:
        pages = [p for p in self.pages.values() if p.comic_id == comic_id]
        return sorted(pages, key=lambda p: p.page_number)

    def insert_pages(self, pages: Iterable[PageRecord]) -> None:
        pages = list(pages)
        for page in pages:
            if page.comic_id not in self.comics:
                raise StoreError(
                    f"insert violates foreign key constraint: comic {page.comic_id}"
                )
            if page.id in self.pages:
                raise StoreError(f"duplicate key value violates unique constraint: {page.id}")
        for page in pages:
            self.pages[page.id] = page

    def update_page(
        self,
        page_id: str,
        *,
        page_number: int,
        image_url: Optional[str],
        caption: str,
    ) -> None:
        page = self.pages.get(page_id)
        if not page:
            raise StoreError(f"Page {page_id} does not exist")
        page.page_number = page_number
        page.image_url = image_url
        page.caption = caption

    def delete_pages(self, page_ids: Iterable[str]) -> int:
        deleted = 0
        for page_id in list(page_ids):
            if self.pages.pop(page_id, None) is not None:
                deleted += 1
        return deleted

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.comics.clear()
        self.pages.clear()


class PostgresDbClient:
    """
    SQLAlchemy-backed implementation. Accepts any SQLAlchemy URL (e.g., Postgres or SQLite for tests).
    """

    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for PostgresDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    @contextmanager
    def _session(self) -> Iterator[Session]:
        try:
            with self.Session() as session:
                yield session
        except SQLAlchemyError as e:
            logger.error("Database call failed: %s", e)
            raise StoreError(str(e)) from e

    @staticmethod
    def _to_comic_record(row: "ComicRow") -> ComicRecord:
        return ComicRecord(
            id=row.id,
            title=row.title,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    @staticmethod
    def _to_page_record(row: "PageRow") -> PageRecord:
        return PageRecord(
            id=row.id,
            comic_id=row.comic_id,
            page_number=row.page_number,
            image_url=row.image_url,
            caption=row.caption,
        )

    def insert_comic(self, comic_id: str, title: str) -> ComicRecord:
        now = time.time()
        with self._session() as session:
            row = ComicRow(id=comic_id, title=title, created_at=now, updated_at=now)
            session.add(row)
            session.commit()
            session.refresh(row)
            return self._to_comic_record(row)

    def update_comic_title(self, comic_id: str, title: str) -> None:
        with self._session() as session:
            row = session.get(ComicRow, comic_id)
            if not row:
                raise StoreError(f"Comic {comic_id} does not exist")
            row.title = title
            row.updated_at = time.time()
            session.commit()

    def get_comic(self, comic_id: str) -> Optional[ComicRecord]:
        with self._session() as session:
            row = session.get(ComicRow, comic_id)
            if not row:
                return None
            return self._to_comic_record(row)

    def list_comics(self, limit: int = 100) -> list[ComicRecord]:
        with self._session() as session:
            stmt = select(ComicRow).order_by(ComicRow.updated_at.desc()).limit(limit)
            rows = session.execute(stmt).scalars().all()
            return [self._to_comic_record(row) for row in rows]

    def list_page_ids(self, comic_id: str) -> list[str]:
        with self._session() as session:
            stmt = select(PageRow.id).where(PageRow.comic_id == comic_id)
            return list(session.execute(stmt).scalars().all())

    def list_pages(self, comic_id: str) -> list[PageRecord]:
        with self._session() as session:
            stmt = (
                select(PageRow)
                .where(PageRow.comic_id == comic_id)
                .order_by(PageRow.page_number.asc())
            )
            rows = session.execute(stmt).scalars().all()
            return [self._to_page_record(row) for row in rows]

    def insert_pages(self, pages: Iterable[PageRecord]) -> None:
        with self._session() as session:
            for page in pages:
                session.add(
                    PageRow(
                        id=page.id,
                        comic_id=page.comic_id,
                        page_number=page.page_number,
                        image_url=page.image_url,
                        caption=page.caption,
                    )
                )
            session.commit()

    def update_page(
        self,
        page_id: str,
        *,
        page_number: int,
        image_url: Optional[str],
        caption: str,
    ) -> None:
        with self._session() as session:
            row = session.get(PageRow, page_id)
            if not row:
                raise StoreError(f"Page {page_id} does not exist")
            row.page_number = page_number
            row.image_url = image_url
            row.caption = caption
            session.commit()

    def delete_pages(self, page_ids: Iterable[str]) -> int:
        page_ids = list(page_ids)
        if not page_ids:
            return 0
        with self._session() as session:
            result = session.execute(delete(PageRow).where(PageRow.id.in_(page_ids)))
            session.commit()
            return result.rowcount or 0


Base = declarative_base()


class ComicRow(Base):
    __tablename__ = "comics"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False, default="")
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False, index=True)


class PageRow(Base):
    __tablename__ = "comic_pages"

    id = Column(String, primary_key=True)
    comic_id = Column(
        String, ForeignKey("comics.id", ondelete="CASCADE"), nullable=False, index=True
    )
    page_number = Column(Integer, nullable=False)
    image_url = Column(Text, nullable=True)
    caption = Column(Text, nullable=False, default="")
