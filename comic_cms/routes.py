"""
JSON API routes for creating, updating and reading comics.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile

from comic_cms import comics
from comic_cms.comics import Comic, PageInput
from comic_cms.config import get_settings
from comic_cms.db import DbClient
from comic_cms.dependencies import get_db_client, get_storage_client
from comic_cms.errors import ComicPersistenceError, InvalidImageError
from comic_cms.images import validate_image
from comic_cms.schemas import (
    ComicResponse,
    ComicSummary,
    CreateComicRequest,
    CreateComicResponse,
    HealthResponse,
    ListComicsResponse,
    PageIn,
    PageOut,
    UpdateComicRequest,
    UploadImageResponse,
)
from comic_cms.storage import StorageClient

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_page_inputs(pages: list[PageIn]) -> list[PageInput]:
    return [
        PageInput(id=page.id, image_url=page.image_url, caption=page.caption)
        for page in pages
    ]


def _to_response(comic: Comic) -> ComicResponse:
    return ComicResponse(
        id=comic.id,
        title=comic.title,
        created_at=comic.created_at,
        updated_at=comic.updated_at,
        pages=[PageOut(**page.as_dict()) for page in comic.pages],
    )


def _upstream_error(e: ComicPersistenceError) -> HTTPException:
    return HTTPException(status_code=502, detail=str(e))


@router.get("/health", response_model=HealthResponse)
def health():
    return HealthResponse(status="ok")


@router.post("/comics", response_model=CreateComicResponse, status_code=201)
def create_comic(
    payload: CreateComicRequest,
    request: Request,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    settings = get_settings()
    try:
        comic_id = comics.save_comic(
            _to_page_inputs(payload.pages),
            payload.title or comics.DEFAULT_TITLE,
            db=db,
            storage=storage,
            id_style=settings.comic_id_style,
            id_length=settings.short_comic_id_length,
        )
    except ComicPersistenceError as e:
        raise _upstream_error(e) from e
    links = comics.share_links(str(request.base_url), comic_id)
    return CreateComicResponse(
        id=comic_id, view_url=links.view_url, edit_url=links.edit_url
    )


@router.get("/comics", response_model=ListComicsResponse)
def list_comics(
    limit: int = Query(100, ge=1, le=500),
    db: DbClient = Depends(get_db_client),
):
    try:
        records = comics.list_comics(db=db, limit=limit)
    except ComicPersistenceError as e:
        raise _upstream_error(e) from e
    return ListComicsResponse(
        comics=[ComicSummary(**record.as_dict()) for record in records]
    )


@router.get("/comics/{comic_id}", response_model=ComicResponse)
def get_comic(comic_id: str, db: DbClient = Depends(get_db_client)):
    try:
        comic = comics.get_comic(comic_id, db=db)
    except ComicPersistenceError as e:
        raise _upstream_error(e) from e
    if comic is None:
        raise HTTPException(status_code=404, detail="Comic not found")
    return _to_response(comic)


@router.put("/comics/{comic_id}", response_model=ComicResponse)
def update_comic(
    comic_id: str,
    payload: UpdateComicRequest,
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    try:
        if comics.get_comic(comic_id, db=db) is None:
            raise HTTPException(status_code=404, detail="Comic not found")
        comics.update_comic(
            comic_id,
            _to_page_inputs(payload.pages),
            payload.title,
            db=db,
            storage=storage,
        )
        comic = comics.get_comic(comic_id, db=db)
    except ComicPersistenceError as e:
        raise _upstream_error(e) from e
    if comic is None:
        # Deleted out-of-band between the update and the re-read.
        raise HTTPException(status_code=404, detail="Comic not found")
    return _to_response(comic)


@router.post("/comics/{comic_id}/images", response_model=UploadImageResponse, status_code=201)
async def upload_comic_image(
    comic_id: str,
    file: UploadFile = File(...),
    db: DbClient = Depends(get_db_client),
    storage: StorageClient = Depends(get_storage_client),
):
    data = await file.read()
    try:
        image = validate_image(file.filename or "", data)
    except InvalidImageError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    try:
        url = comics.upload_page_image(comic_id, image, db=db, storage=storage)
    except ComicPersistenceError as e:
        raise _upstream_error(e) from e
    if url is None:
        raise HTTPException(status_code=404, detail="Comic not found")
    return UploadImageResponse(url=url)
