"""
composer.py — Broadcast email composition.

Email body layout:

    I'm at {maps_url}

    {body}

    Send your own Brocasts at {service_url}/

The map URL is MAPS_BASE_URL followed by the record's geolocation verbatim.
The geolocation is not URL-escaped; "40.0,-70.0" is what the maps service
expects and free-form values are passed through as submitted.

One OutboundMessage is built per broadcast, addressed to every recipient.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from jinja2 import Environment, StrictUndefined
from jinja2.exceptions import TemplateError

from brocast.app.broadcasts.models import BroadcastRecord, OutboundMessage
from brocast.app.core.config import settings
from brocast.app.core.errors import TemplateRenderError

EMAIL_TEXT = """I'm at {{ maps_url }}

{{ body }}

Send your own Brocasts at {{ service_url }}/"""

_text_env = Environment(autoescape=False, undefined=StrictUndefined, keep_trailing_newline=True)
_email_template = _text_env.from_string(EMAIL_TEXT)


@dataclass(frozen=True)
class EmailContext:
    maps_url: str
    body: str
    service_url: str


def build_maps_url(geo_location: str, base_url: Optional[str] = None) -> str:
    return f"{base_url if base_url is not None else settings.MAPS_BASE_URL}{geo_location}"


def render_email_body(ctx: EmailContext) -> str:
    """Render the plain-text email body for ``ctx``."""
    try:
        return _email_template.render(
            maps_url=ctx.maps_url,
            body=ctx.body,
            service_url=ctx.service_url,
        )
    except TemplateError as exc:
        raise TemplateRenderError(str(exc)) from exc


def build_subject(record: BroadcastRecord) -> str:
    return f"Brocast from {record.display_name}"


def build_from_header(record: BroadcastRecord, mailbox: Optional[str] = None) -> str:
    return f"{record.display_name} <{mailbox or settings.BROCAST_EMAIL}>"


def compose_message(record: BroadcastRecord) -> OutboundMessage:
    """Build the single outbound message for a stored broadcast."""
    body = render_email_body(EmailContext(
        maps_url=build_maps_url(record.geo_location),
        body=record.body,
        service_url=settings.SERVICE_URL.rstrip("/"),
    ))
    return OutboundMessage(
        sender=build_from_header(record),
        to=list(record.recipients),
        subject=build_subject(record),
        body=body,
    )
