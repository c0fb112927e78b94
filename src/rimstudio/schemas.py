"""Backend response schemas.

Each endpoint has exactly one accepted response shape. The sign-in endpoint
answers in snake_case and the refresh endpoint in camelCase; both are
validated as declared here rather than probed at runtime.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class GoogleLoginResponse(BaseModel):
    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)

    model_config = {"extra": "ignore"}


class RefreshResponse(BaseModel):
    access_token: str = Field(alias="accessToken", min_length=1)
    refresh_token: str = Field(alias="refreshToken", min_length=1)

    model_config = {"extra": "ignore"}


class UploadResponse(BaseModel):
    id: str

    model_config = {"extra": "ignore", "coerce_numbers_to_str": True}


class ProcessResponse(BaseModel):
    processed_image_url: str

    model_config = {"extra": "ignore"}


class GenerationRecord(BaseModel):
    id: str
    status: str
    car_image_url: str | None = None
    rim_image_url: str | None = None
    processed_image_url: str | None = None
    error_message: str | None = None
    created_at: datetime | None = None

    model_config = {"extra": "ignore", "coerce_numbers_to_str": True}
