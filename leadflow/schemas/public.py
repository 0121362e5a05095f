"""Schemas for the public bootstrap endpoint."""

from pydantic import BaseModel

from leadflow.schemas.submissions import CamelModel


class BootstrapGeo(CamelModel):
    country: str | None = None
    region: str | None = None
    country_type: str
    country_blocked: bool


class BootstrapResponse(BaseModel):
    success: bool = True
    geo: BootstrapGeo
    campaign: str | None = None
    email: str | None = None
