"""
Product DTOs
"""

from decimal import Decimal
from pydantic import BaseModel, Field
from typing import Optional, List
from datetime import datetime

from gallery.modules.product_images.schemas import ProductImageResponse


class CreateProductDto(BaseModel):
    """DTO for creating a product"""

    title: str = Field(..., min_length=1, max_length=255)
    description: str = Field(default="", max_length=10000)
    price: Decimal = Field(..., ge=0, max_digits=15, decimal_places=2)
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = Field(None, max_length=255)
    sub_category: Optional[str] = Field(None, max_length=255)

    class Config:
        from_attributes = True


class ProductResponse(BaseModel):
    """Product in list views, carrying only its main image"""

    id: int
    title: str
    slug: str
    description: str
    price: Decimal
    tags: List[str]
    category: Optional[str] = None
    sub_category: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    main_image: Optional[ProductImageResponse] = None

    class Config:
        from_attributes = True


class ProductDetailResponse(BaseModel):
    """Product with its full image collection in display order"""

    id: int
    title: str
    slug: str
    description: str
    price: Decimal
    tags: List[str]
    category: Optional[str] = None
    sub_category: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    images: List[ProductImageResponse]

    class Config:
        from_attributes = True
