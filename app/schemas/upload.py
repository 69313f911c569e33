"""
Pydantic schemas for upload operations
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class DocumentUploadResponse(BaseModel):
    """Schema for upload response."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    document_type: str
    original_filename: Optional[str] = None
    content_type: str
    file_size_mb: float
    s3_key: str
    url: str
    created_at: datetime


class HealthCheck(BaseModel):
    """Schema for health check response."""

    status: str = "healthy"
    timestamp: datetime
    version: str = "1.0.0"
    database_connected: bool = True
    providers: List[str] = []
