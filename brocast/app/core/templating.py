"""
Template rendering capability.

Wraps a Jinja2 environment rooted at TEMPLATE_DIR. Handlers depend on a
``TemplateRenderer`` through ``get_template_renderer`` so tests can swap the
template source without touching module state.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from jinja2 import Environment, FileSystemLoader, StrictUndefined, select_autoescape
from jinja2.exceptions import TemplateError, TemplateNotFound

from brocast.app.core.config import settings
from brocast.app.core.errors import TemplateRenderError


class TemplateRenderer:
    """Render named templates from a directory to text."""

    def __init__(self, template_dir: str):
        self.template_dir = template_dir
        self._env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
            undefined=StrictUndefined,
        )

    def render(self, name: str, context: Optional[Dict[str, Any]] = None) -> str:
        try:
            return self._env.get_template(name).render(**(context or {}))
        except TemplateNotFound as exc:
            raise TemplateRenderError(
                f"template {exc.name!r} not found in {self.template_dir}"
            ) from exc
        except (TemplateError, OSError) as exc:
            raise TemplateRenderError(str(exc) or type(exc).__name__) from exc


_renderer: Optional[TemplateRenderer] = None


def get_template_renderer() -> TemplateRenderer:
    """FastAPI dependency: the renderer for TEMPLATE_DIR."""
    global _renderer
    if _renderer is None or _renderer.template_dir != settings.TEMPLATE_DIR:
        _renderer = TemplateRenderer(settings.TEMPLATE_DIR)
    return _renderer
