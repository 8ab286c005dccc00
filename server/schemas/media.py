"""
Pydantic schemas for Media Upload API.
"""

from server.schemas.accounts import ApiModel


class UploadResponse(ApiModel):
    """Schema for /api/upload-media result"""

    success: bool = True
    url: str
    filename: str
    size: int
    mimetype: str


__all__ = ["UploadResponse"]
