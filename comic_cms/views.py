"""
Server-rendered editor and reader pages.

The editor keeps its state in a ComicEditor bound to a cookie; each form post
applies one editor action and redirects back to the editor (303).
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from fastapi.responses import HTMLResponse, RedirectResponse, Response
from fastapi.templating import Jinja2Templates

from comic_cms import comics
from comic_cms.db import DbClient
from comic_cms.dependencies import (
    get_db_client,
    get_editor_sessions,
    get_storage_client,
)
from comic_cms.editor import ComicEditor, EditorSessionStore
from comic_cms.errors import (
    ComicPersistenceError,
    EditorError,
    InvalidImageError,
    StoreError,
)
from comic_cms.images import ImageUpload, validate_image
from comic_cms.reader import ComicReader
from comic_cms.storage import StorageClient

logger = logging.getLogger(__name__)

APP_ROOT = Path(__file__).resolve().parent
TEMPLATES = Jinja2Templates(directory=str(APP_ROOT / "templates"))

EDITOR_COOKIE = "comic_editor"

router = APIRouter()


def _editor_url(editor: ComicEditor) -> str:
    return f"/?id={editor.comic_id}" if editor.comic_id else "/"


def _redirect(session_id: str, url: str) -> RedirectResponse:
    response = RedirectResponse(url=url, status_code=303)
    response.set_cookie(EDITOR_COOKIE, session_id, httponly=True, samesite="lax")
    return response


def _session(request: Request, sessions: EditorSessionStore) -> tuple[str, ComicEditor]:
    return sessions.get_or_create(request.cookies.get(EDITOR_COOKIE))


async def _read_upload(upload: Optional[UploadFile]) -> Optional[ImageUpload]:
    if upload is None or not upload.filename:
        return None
    return validate_image(upload.filename, await upload.read())


@router.get("/", response_class=HTMLResponse)
def editor_page(
    request: Request,
    id: Optional[str] = None,
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    if id and editor.comic_id != id:
        editor.new_comic()
        try:
            editor.load(id)
        except EditorError as e:
            logger.info("Editor could not load comic %s: %s", id, e)
    elif not id and editor.comic_id:
        # Plain "/" starts over, like the "New Comic" action.
        editor.new_comic()

    links = (
        comics.share_links(str(request.base_url), editor.comic_id)
        if editor.comic_id
        else None
    )
    response = TEMPLATES.TemplateResponse(
        request,
        "editor.html",
        {
            "editor": editor,
            "page": editor.current_page,
            "links": links,
            "autosave_status": editor.take_autosave_status(),
            "error": editor.take_error(),
        },
    )
    response.set_cookie(EDITOR_COOKIE, session_id, httponly=True, samesite="lax")
    return response


@router.post("/editor/pages")
async def add_page(
    request: Request,
    caption: str = Form(""),
    image_url: str = Form(""),
    image: Optional[UploadFile] = File(None),
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    try:
        upload = await _read_upload(image)
        editor.insert_page(upload or image_url.strip() or None, caption)
    except (InvalidImageError, EditorError) as e:
        editor.error = str(e)
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/pages/remove")
def remove_page(
    request: Request,
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    editor.remove_current()
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/image")
async def replace_image(
    request: Request,
    image: Optional[UploadFile] = File(None),
    image_url: str = Form(""),
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    try:
        upload = await _read_upload(image)
        editor.replace_current_image(upload or image_url.strip())
    except InvalidImageError as e:
        editor.error = str(e)
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/caption/edit")
def start_caption_edit(
    request: Request,
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    editor.start_editing_caption()
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/caption")
def finish_caption_edit(
    request: Request,
    caption: str = Form(""),
    action: str = Form("save"),
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    if action == "cancel":
        editor.cancel_editing_caption()
    else:
        editor.commit_caption(caption)
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/navigate")
def navigate(
    request: Request,
    direction: str = Form(...),
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    if direction == "previous":
        editor.previous()
    elif direction == "next":
        editor.next()
    else:
        raise HTTPException(status_code=400, detail=f"Unknown direction: {direction}")
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/title")
def set_title(
    request: Request,
    title: str = Form(""),
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    editor.set_title(title)
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/save")
def save(
    request: Request,
    title: Optional[str] = Form(None),
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    if title is not None:
        editor.title = title
    try:
        editor.save()
    except EditorError as e:
        editor.error = str(e)
    return _redirect(session_id, _editor_url(editor))


@router.post("/editor/new")
def new_comic(
    request: Request,
    sessions: EditorSessionStore = Depends(get_editor_sessions),
):
    session_id, editor = _session(request, sessions)
    editor.new_comic()
    return _redirect(session_id, "/")


@router.get("/comic/{comic_id}", response_class=HTMLResponse)
def reader_page(
    request: Request,
    comic_id: str,
    page: int = 1,
    key: Optional[str] = None,
    click: Optional[float] = None,
    db: DbClient = Depends(get_db_client),
):
    """
    Render one page of a comic.

    `key` carries a keyboard key and `click` the horizontal click position
    (0 to 1) on the panel; either moves the reader from `page` and
    redirects to the resulting page.
    """
    error = None
    comic = None
    try:
        comic = comics.get_comic(comic_id, db=db)
    except ComicPersistenceError as e:
        logger.error("Error loading comic %s: %s", comic_id, e)
        error = "Failed to load comic"

    if comic is None or not comic.pages:
        return TEMPLATES.TemplateResponse(
            request,
            "not_found.html",
            {"error": error},
            status_code=404,
        )

    reader = ComicReader(comic)
    reader.go_to(page)
    if key is not None:
        reader.handle_key(key)
    if click is not None:
        reader.handle_click(click)
    if reader.position != page or key is not None or click is not None:
        return RedirectResponse(
            url=f"/comic/{comic_id}?page={reader.position}", status_code=303
        )

    page_url = f"/comic/{comic_id}?page={reader.position}"
    prev_url = f"/comic/{comic_id}?page={reader.position - 1}" if reader.has_previous else None
    next_url = f"/comic/{comic_id}?page={reader.position + 1}" if reader.has_next else None
    return TEMPLATES.TemplateResponse(
        request,
        "reader.html",
        {
            "comic": comic,
            "page": reader.current_page,
            "position": reader.position,
            "page_count": reader.page_count,
            "page_url": page_url,
            "prev_url": prev_url,
            "next_url": next_url,
        },
    )


@router.get("/media/{path:path}")
def media(path: str, storage: StorageClient = Depends(get_storage_client)):
    try:
        stored = storage.get_object(path)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Image not found")
    except StoreError as e:
        raise HTTPException(status_code=502, detail=f"Failed to load image: {e}") from e
    return Response(content=stored.data, media_type=stored.content_type)
