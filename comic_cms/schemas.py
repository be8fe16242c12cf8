"""
Pydantic schemas for the comic CMS JSON API.
"""

from __future__ import annotations

from typing import Literal, Optional

from pydantic import BaseModel, Field, model_validator


class PageIn(BaseModel):
    id: Optional[str] = None
    image_url: Optional[str] = Field(default=None, max_length=2048)
    caption: str = Field(default="", max_length=4096)


class CreateComicRequest(BaseModel):
    title: str = Field(default="", max_length=256)
    pages: list[PageIn] = Field(default_factory=list)


class UpdateComicRequest(BaseModel):
    title: str = Field(..., max_length=256)
    pages: list[PageIn]

    @model_validator(mode="after")
    def _unique_page_ids(self) -> "UpdateComicRequest":
        ids = [page.id for page in self.pages if page.id]
        if len(ids) != len(set(ids)):
            raise ValueError("Page ids must be unique")
        return self


class PageOut(BaseModel):
    id: str
    comic_id: str
    page_number: int
    image_url: Optional[str] = None
    caption: str


class ComicResponse(BaseModel):
    id: str
    title: str
    created_at: float
    updated_at: float
    pages: list[PageOut]


class CreateComicResponse(BaseModel):
    id: str
    view_url: str
    edit_url: str


class ComicSummary(BaseModel):
    id: str
    title: str
    updated_at: float


class ListComicsResponse(BaseModel):
    comics: list[ComicSummary]


class UploadImageResponse(BaseModel):
    url: str


class HealthResponse(BaseModel):
    status: Literal["ok"]
