"""
FastAPI route: landing page.

    GET /   — root.html rendered inside base.html
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import HTMLResponse

from brocast.app.core.templating import TemplateRenderer, get_template_renderer

router = APIRouter(tags=["root"])


@router.get("/", response_class=HTMLResponse)
async def root(renderer: TemplateRenderer = Depends(get_template_renderer)):
    return HTMLResponse(renderer.render("root.html"))
