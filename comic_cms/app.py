"""
FastAPI application entry point for the comic CMS.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from comic_cms.config import get_settings
from comic_cms.routes import router
from comic_cms.views import router as views_router


def create_app() -> FastAPI:
    settings = get_settings()
    logging.basicConfig(level=settings.log_level)
    app = FastAPI(title="Comic CMS", version="0.1.0")
    app.include_router(router, prefix=settings.api_prefix)
    app.include_router(views_router)
    return app


app = create_app()
