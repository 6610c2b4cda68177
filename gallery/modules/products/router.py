"""
Products Router - admin product endpoints.
Products are created from multipart forms so initial images travel with them.
"""

from decimal import Decimal
from typing import List, Optional
from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from gallery.core.auth import TokenData, require_admin
from gallery.core.db.engine import get_db_util
from gallery.core.exceptions import ValidationError
from gallery.core.response_interceptor import CustomAPIRoute, skip_interceptor
from gallery.core.s3 import get_storage
from gallery.modules.product_images.router import read_payloads
from .service import ProductService
from .schemas import CreateProductDto, ProductDetailResponse, ProductResponse

router = APIRouter(prefix="/products", tags=["products"], route_class=CustomAPIRoute)


@router.post("", response_model=ProductDetailResponse)
async def create_product(
    title: str = Form(...),
    price: Decimal = Form(...),
    description: str = Form(""),
    tags: str = Form("", description="Comma-separated tags"),
    category: Optional[str] = Form(None),
    sub_category: Optional[str] = Form(None),
    images: List[UploadFile] = File(default=[]),
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """Create a product with optional initial images (Admin only)"""
    try:
        dto = CreateProductDto(
            title=title,
            description=description,
            price=price,
            tags=[tag for tag in tags.split(",") if tag.strip()],
            category=category,
            sub_category=sub_category,
        )
    except PydanticValidationError as e:
        raise ValidationError(str(e))

    payloads = await read_payloads(images)
    product = await ProductService.create(db, dto, payloads, storage)
    product = await ProductService.find_one(db, product.id)
    return ProductService.to_detail_response(product, storage)


@router.get("", response_model=List[ProductResponse])
async def get_all_products(
    category: Optional[str] = Query(None, description="Category filter, 'all' for none"),
    search: Optional[str] = Query(None, description="Search title, slug, description, category"),
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """List products with their main image"""
    products = await ProductService.find_all(db, category, search)
    return [ProductService.to_response(product, storage) for product in products]


@router.get("/{product_id}", response_model=ProductDetailResponse)
async def get_product_by_id(
    product_id: int,
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """Get a product with all its images in display order"""
    product = await ProductService.find_one(db, product_id)
    return ProductService.to_detail_response(product, storage)


@router.delete("/{product_id}")
@skip_interceptor
async def delete_product(
    product_id: int,
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """Delete a product, its images and their blobs (Admin only)"""
    keys = await ProductService.remove(db, product_id, storage)
    return {
        "success": True,
        "message": "Product and all related images deleted successfully",
        "deleted_images": len(keys),
    }
