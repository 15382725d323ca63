"""
Pydantic schemas for the broadcast API.

Field names on the wire follow the client's camelCase (``geoLocation``).
Fields the server owns (account, timestamp) are not part of the request;
if a client sends them they are ignored. A JSON null reads as the empty value.
"""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from brocast.app.broadcasts.models import BroadcastRecord


class BroadcastRequest(BaseModel):
    """Request body for POST /broadcasts."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    geo_location: str = Field(
        "", alias="geoLocation",
        description="Free-form location, usually 'lat,long'",
        examples=["40.0,-70.0"],
    )
    body: str = Field("", description="Message text", examples=["Meet me here"])
    recipients: List[str] = Field(
        default_factory=list,
        description="Email addresses; one message is sent to all of them",
        examples=[["a@example.com", "b@example.com"]],
    )
    sender: Optional[str] = Field(
        None,
        description="Display name for the From header; defaults to the account",
        examples=["Alice"],
    )

    @field_validator("geo_location", "body", mode="before")
    @classmethod
    def _null_as_empty_text(cls, value):
        return "" if value is None else value

    @field_validator("recipients", mode="before")
    @classmethod
    def _null_as_no_recipients(cls, value):
        return [] if value is None else value

    def to_record(self) -> BroadcastRecord:
        return BroadcastRecord(
            geo_location=self.geo_location,
            body=self.body,
            recipients=list(self.recipients),
            sender=self.sender or None,
        )
