"""Pydantic schemas for media module."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from vodstream.modules.media.models import AssetStatus


class AssetStatusResponse(BaseModel):
    """Response schema for an asset's processing status."""

    id: str
    status: AssetStatus
    progress: float = Field(0.0, ge=0.0, le=100.0, description="Transcode progress percent")
    error: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class HealthResponse(BaseModel):
    status: str = "healthy"
