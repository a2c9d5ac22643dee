"""Provider credential and OAuth schemas."""

from __future__ import annotations

from pydantic import BaseModel, Field


class CredentialsUpdate(BaseModel):
    """Credential form submission. Blank or omitted fields keep stored values."""

    client_id: str | None = Field(default=None, max_length=512)
    client_secret: str | None = Field(default=None, max_length=2048)
    tenant_id: str | None = Field(default=None, max_length=256)
    refresh_token: str | None = Field(default=None, max_length=4096)


class ProviderResponse(BaseModel):
    service: str
    label: str
    connected: bool
    has_client: bool
    client_id: str = ""
    tenant_id: str = ""
    redirect_uri: str


class AuthorizeResponse(BaseModel):
    authorization_url: str


class NoticeResponse(BaseModel):
    notice: str
