"""Pydantic schemas for the contact form endpoint."""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field


class ContactMessageInput(BaseModel):
    """Fields a visitor submits through the storefront contact form."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200, description="Visitor name.")
    phone: str = Field(..., min_length=3, max_length=40, description="Contact phone number.")
    email: EmailStr = Field(..., description="Reply address of the visitor.")
    subject: str | None = Field(
        default=None,
        max_length=200,
        description="Optional subject; a default subject is used when empty.",
    )
    message: str | None = Field(
        default=None,
        max_length=5000,
        description="Optional free-text message.",
    )


class ContactRequest(BaseModel):
    """Request envelope: the form fields are nested under ``data``."""

    data: ContactMessageInput


class ContactMessage(BaseModel):
    """An accepted contact message as returned to the client."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(..., description="Identifier of the CMS entry.")
    name: str
    phone: str
    email: EmailStr
    subject: str
    message: str = Field(default="", description="Message text, empty when omitted.")
    status: str = Field(default="new", description="Workflow status in the CMS.")
    created_at: datetime = Field(
        ...,
        validation_alias=AliasChoices("createdAt", "created_at"),
        serialization_alias="createdAt",
        description="UTC time the message was accepted.",
    )


class ContactMeta(BaseModel):
    message: str = Field(..., description="Confirmation text for the visitor.")


class ContactResponse(BaseModel):
    """Response envelope mirroring the CMS shape (data + meta)."""

    data: ContactMessage
    meta: ContactMeta
