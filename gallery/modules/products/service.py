"""
ProductService - products as owners of image collections.
Creation stores initial images through the image store; removal deletes
every blob of the product before the delete commits.
"""

import logging
from typing import Any, List, Optional
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gallery.core.exceptions import DatabaseError, NotFoundError
from gallery.core.locks import product_image_locks
from gallery.core.s3 import S3Service
from gallery.core.utils import run_blocking, slugify
from gallery.modules.product_images.models import ProductImage
from gallery.modules.product_images.schemas import ImagePayload, ProductImageResponse
from gallery.modules.product_images.service import ProductImageService
from gallery.modules.product_images.validators import validate_image_payloads
from .models import Product
from .schemas import CreateProductDto, ProductDetailResponse, ProductResponse

logger = logging.getLogger(__name__)

# Attempts at inserting a product when a concurrent create takes the same slug
SLUG_INSERT_ATTEMPTS = 3


class ProductService:
    """
    Product service. All methods use async/await and explicit eager loading.
    """

    @staticmethod
    async def _generate_unique_slug(db: AsyncSession, title: str) -> str:
        """Slug from the title, suffixed -1, -2, ... until unused."""
        base_slug = slugify(title) or "product"
        slug = base_slug
        counter = 1
        while await db.scalar(select(Product.id).where(Product.slug == slug)) is not None:
            slug = f"{base_slug}-{counter}"
            counter += 1
        return slug

    @staticmethod
    async def create(
        db: AsyncSession,
        dto: CreateProductDto,
        payloads: Optional[List[ImagePayload]] = None,
        storage: Any = S3Service,
    ) -> Product:
        """
        Create a product, optionally with its initial images.
        Product and images commit together; the first image becomes main.

        The product is the first write of the session's transaction. If a
        concurrent create takes the chosen slug first, the insert is rolled
        back and retried with the next free slug.

        Raises:
            ValidationError: If an image payload fails validation
            StorageError: If an upload fails (nothing is committed)
            DatabaseError: If no free slug could be inserted
        """
        if payloads:
            validate_image_payloads(payloads)

        for attempt in range(1, SLUG_INSERT_ATTEMPTS + 1):
            slug = await ProductService._generate_unique_slug(db, dto.title)
            product = Product(
                title=dto.title,
                slug=slug,
                description=dto.description,
                price=dto.price,
                tags=[tag.strip().lower() for tag in dto.tags if tag.strip()],
                category=dto.category,
                sub_category=dto.sub_category,
            )
            db.add(product)
            try:
                await db.flush()
                break
            except IntegrityError as e:
                await db.rollback()
                logger.warning(
                    f"Slug {slug} was taken concurrently (attempt {attempt})"
                )
                if attempt == SLUG_INSERT_ATTEMPTS:
                    raise DatabaseError(
                        f"Could not find a free slug for '{dto.title}'"
                    ) from e

        if payloads:
            await ProductImageService.add_images(db, product.id, payloads, storage)
        else:
            await db.commit()

        logger.info(f"Created product {product.id} ({product.slug})")
        return product

    @staticmethod
    async def find_one(db: AsyncSession, product_id: int) -> Product:
        """
        Find a product with its images.

        Raises:
            NotFoundError: If product not found
        """
        query = (
            select(Product)
            .where(Product.id == product_id)
            .options(selectinload(Product.images))
            .execution_options(populate_existing=True)
        )
        product = (await db.execute(query)).scalar_one_or_none()

        if not product:
            raise NotFoundError("Product", product_id)

        return product

    @staticmethod
    async def find_all(
        db: AsyncSession,
        category: Optional[str] = None,
        search: Optional[str] = None,
    ) -> List[Product]:
        """
        Find products, newest first, filtered by category and/or a search
        string over title, slug, description and category.
        """
        query = select(Product).options(selectinload(Product.images))

        if category and category.lower() != "all":
            query = query.where(Product.category.ilike(category))

        if search:
            search_pattern = f"%{search}%"
            query = query.where(
                or_(
                    Product.title.ilike(search_pattern),
                    Product.slug.ilike(search_pattern),
                    Product.description.ilike(search_pattern),
                    Product.category.ilike(search_pattern),
                    Product.sub_category.ilike(search_pattern),
                )
            )

        query = query.order_by(Product.created_at.desc(), Product.id.desc())

        result = await db.execute(query)
        return list(result.scalars().all())

    @staticmethod
    async def remove(db: AsyncSession, product_id: int, storage: Any = S3Service) -> List[str]:
        """
        Delete a product, its image records and their blobs.

        Records are deleted (cascade) and flushed first, then the blobs one
        by one. A failing blob delete rolls the product delete back; records
        of blobs deleted before the failure are then dropped, so no record is
        left pointing at a missing blob.

        Returns:
            Keys of the deleted blobs

        Raises:
            NotFoundError: If product not found
            StorageError: If a blob delete fails
        """
        async with product_image_locks.hold(product_id):
            product = (
                await db.execute(
                    select(Product).where(Product.id == product_id).with_for_update()
                )
            ).scalar_one_or_none()

            if not product:
                raise NotFoundError("Product", product_id)

            keys = list(
                (
                    await db.execute(
                        select(ProductImage.image_key)
                        .where(ProductImage.product_id == product_id)
                        .order_by(ProductImage.index)
                    )
                ).scalars().all()
            )

            deleted_keys: List[str] = []
            try:
                await db.delete(product)
                await db.flush()
                for key in keys:
                    await run_blocking(storage.delete_file, key)
                    deleted_keys.append(key)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                await ProductImageService.forget_images(db, product_id, deleted_keys)
                raise DatabaseError(f"Failed to delete product {product_id}") from e
            except Exception:
                await db.rollback()
                await ProductImageService.forget_images(db, product_id, deleted_keys)
                raise

        logger.info(f"Deleted product {product_id} and {len(keys)} image blob(s)")
        return keys

    @staticmethod
    def to_response(product: Product, storage: Any = S3Service) -> ProductResponse:
        main_image: Optional[ProductImageResponse] = None
        main = next((img for img in product.images if img.is_main), None)
        if main is not None:
            main_image = ProductImageService.to_responses([main], storage)[0]

        return ProductResponse(
            id=product.id,
            title=product.title,
            slug=product.slug,
            description=product.description,
            price=product.price,
            tags=product.tags or [],
            category=product.category,
            sub_category=product.sub_category,
            created_at=product.created_at,
            updated_at=product.updated_at,
            main_image=main_image,
        )

    @staticmethod
    def to_detail_response(product: Product, storage: Any = S3Service) -> ProductDetailResponse:
        return ProductDetailResponse(
            id=product.id,
            title=product.title,
            slug=product.slug,
            description=product.description,
            price=product.price,
            tags=product.tags or [],
            category=product.category,
            sub_category=product.sub_category,
            created_at=product.created_at,
            updated_at=product.updated_at,
            images=ProductImageService.to_responses(
                sorted(product.images, key=lambda img: img.index), storage
            ),
        )
