"""
Product image DTOs
"""

from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime


class ImagePayload(BaseModel):
    """One binary upload, as read from a multipart request"""

    filename: str
    content_type: str
    content: bytes

    @property
    def size(self) -> int:
        return len(self.content)


class ReorderImageItem(BaseModel):
    """
    One entry of a reorder request. Position in the list becomes the index.
    image_key and uploaded_at are immutable and only checked when supplied.
    """

    id: int
    is_main: bool
    image_key: Optional[str] = None
    image_url: Optional[str] = None
    uploaded_at: Optional[datetime] = None


class ReorderImagesDto(BaseModel):
    """DTO for reordering a product's images"""

    images: List[ReorderImageItem] = Field(..., min_length=1)


class ProductImageResponse(BaseModel):
    """Response model for ProductImage, image_url is a signed URL"""

    id: int
    product_id: int
    image_key: str
    image_url: str
    is_main: bool
    index: int
    uploaded_at: datetime

    class Config:
        from_attributes = True
