"""
Pydantic schemas for request and response data validation.
Defines data structures for API endpoints with automatic validation and serialization.
"""
from pydantic import BaseModel, ConfigDict, field_validator
from typing import Dict, List, Optional


class GalleryImageResponse(BaseModel):
    """
    Response schema for one gallery image.
    ``urls`` maps each configured version to its public URL, or None when
    the version file does not exist.
    """
    id: int
    name: Optional[str] = None
    description: Optional[str] = None
    rank: int
    urls: Dict[str, Optional[str]] = {}

    model_config = ConfigDict(
        from_attributes=True
    )


class GalleryResponse(BaseModel):
    """
    Response schema for a whole gallery.
    Used by GET /api/gallery/{type}/{gallery_id}/images endpoint.
    """
    type: str
    gallery_id: str
    temporary: bool
    has_name: bool
    has_description: bool
    images: List[GalleryImageResponse]


class ImageDataUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


class ImagesDataRequest(BaseModel):
    """
    Request schema for changing names and descriptions.
    Keys are image ids.
    """
    images: Dict[int, ImageDataUpdate]


class BulkDeleteRequest(BaseModel):
    image_ids: List[int]


class ArrangeRequest(BaseModel):
    """
    Request schema for reordering gallery images.
    Keys are image ids in the desired display order; a value is a provisional
    rank, or null to keep the image's own id as provisional rank.
    """
    order: Dict[int, Optional[int]]

    @field_validator('order')
    @classmethod
    def validate_not_empty(cls, v):
        if not v:
            raise ValueError('At least one image ID is required')
        return v


class RegenerateRequest(BaseModel):
    old_extension: Optional[str] = None
    only_versions: Optional[List[str]] = None


class RegenerateResponse(BaseModel):
    succeeded: int
    failed: int


class OrphanReapResponse(BaseModel):
    reaped: List[str]
    count: int


class TicketResponse(BaseModel):
    temporary_index: str
    image_ids: List[int]


class TicketRotateRequest(BaseModel):
    new_token: str
