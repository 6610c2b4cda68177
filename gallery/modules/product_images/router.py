"""
Product Images Router - image store endpoints nested under a product.
Admin only.
"""

from typing import List
from fastapi import APIRouter, Depends, File, Query, UploadFile
from sqlalchemy.ext.asyncio import AsyncSession

from gallery.core.auth import TokenData, require_admin
from gallery.core.db.engine import get_db_util
from gallery.core.response_interceptor import CustomAPIRoute
from gallery.core.s3 import get_storage
from .service import ProductImageService
from .schemas import ImagePayload, ProductImageResponse, ReorderImagesDto

router = APIRouter(prefix="/products", tags=["product-images"], route_class=CustomAPIRoute)


async def read_payloads(files: List[UploadFile]) -> List[ImagePayload]:
    """Read multipart uploads into memory; size limits are checked by the validator."""
    return [
        ImagePayload(
            filename=file.filename or "image",
            content_type=file.content_type or "",
            content=await file.read(),
        )
        for file in files
    ]


@router.get("/{product_id}/images", response_model=List[ProductImageResponse])
async def list_product_images(
    product_id: int,
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """Get a product's images in display order, with signed URLs"""
    images = await ProductImageService.list_images(db, product_id)
    return ProductImageService.to_responses(images, storage)


@router.post("/{product_id}/images", response_model=List[ProductImageResponse])
async def upload_product_images(
    product_id: int,
    images: List[UploadFile] = File(...),
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """Append images to a product. The first image of a product becomes main."""
    payloads = await read_payloads(images)
    created = await ProductImageService.add_images(db, product_id, payloads, storage)
    return ProductImageService.to_responses(created, storage)


@router.put("/{product_id}/images/order", response_model=List[ProductImageResponse])
async def reorder_product_images(
    product_id: int,
    dto: ReorderImagesDto,
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """
    Reorder a product's images. The body must list every image of the
    product exactly once, with exactly one marked main.
    """
    images = await ProductImageService.reorder_images(db, product_id, dto.images)
    return ProductImageService.to_responses(images, storage)


@router.delete("/{product_id}/images/{image_id}", response_model=List[ProductImageResponse])
async def delete_product_image(
    product_id: int,
    image_id: int,
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """Delete an image and return the re-sequenced remaining images"""
    remaining = await ProductImageService.delete_image(
        db, product_id, image_id=image_id, storage=storage
    )
    return ProductImageService.to_responses(remaining, storage)


@router.delete("/{product_id}/images", response_model=List[ProductImageResponse])
async def delete_product_image_by_key(
    product_id: int,
    image_key: str = Query(..., min_length=1, description="Object-store key of the image"),
    db: AsyncSession = Depends(get_db_util),
    storage=Depends(get_storage),
    current_user: TokenData = Depends(require_admin),
):
    """Delete an image by its storage key"""
    remaining = await ProductImageService.delete_image(
        db, product_id, image_key=image_key, storage=storage
    )
    return ProductImageService.to_responses(remaining, storage)
