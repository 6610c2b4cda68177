"""
ProductImageService - the product image store.

Owns each product's ordered image collection, its single main image and the
blobs behind it. Every mutation:
- is serialised per product (in-process lock + row lock on the product)
- writes all records in one transaction and commits exactly once
- re-checks the single-main and contiguous-index invariants before commit
"""

import logging
from datetime import timezone
from typing import Any, Iterable, List, Optional
from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from gallery.core.exceptions import (
    DatabaseError,
    InvariantViolationError,
    NotFoundError,
    ValidationError,
)
from gallery.core.image_processing import fit_within_bounds
from gallery.core.locks import product_image_locks
from gallery.core.s3 import S3Service
from gallery.core.utils import run_blocking
from gallery.modules.products.models import Product
from .models import ProductImage
from .schemas import ImagePayload, ProductImageResponse, ReorderImageItem
from .validators import validate_image_payloads

logger = logging.getLogger(__name__)


class ProductImageService:
    """
    Image store operations: add, delete, reorder, list.
    `storage` is the object store; S3Service unless a caller injects another.
    """

    @staticmethod
    async def _lock_product(db: AsyncSession, product_id: int) -> Product:
        """
        Take the row lock on the product for the rest of the transaction.
        PostgreSQL honours FOR UPDATE; SQLite ignores it and serialises writers itself.
        """
        result = await db.execute(
            select(Product).where(Product.id == product_id).with_for_update()
        )
        product = result.scalar_one_or_none()
        if not product:
            raise NotFoundError("Product", product_id)
        return product

    @staticmethod
    async def _fetch_images(db: AsyncSession, product_id: int) -> List[ProductImage]:
        result = await db.execute(
            select(ProductImage)
            .where(ProductImage.product_id == product_id)
            .order_by(ProductImage.index.asc(), ProductImage.id.asc())
        )
        return list(result.scalars().all())

    @staticmethod
    async def _resequence(db: AsyncSession, product_id: int) -> List[ProductImage]:
        """Renumber the images 0..n-1 in their current order; index 0 becomes main."""
        images = await ProductImageService._fetch_images(db, product_id)
        for new_index, img in enumerate(images):
            img.index = new_index
            img.is_main = new_index == 0
        await db.flush()
        return images

    @staticmethod
    async def _verify_invariants(db: AsyncSession, product_id: int) -> None:
        """
        Check the flushed collection: indices are exactly 0..n-1 and
        exactly one image is main (none when the collection is empty).

        Raises:
            InvariantViolationError: If either invariant is broken
        """
        images = await ProductImageService._fetch_images(db, product_id)

        if sorted(img.index for img in images) != list(range(len(images))):
            raise InvariantViolationError(product_id, "contiguous_index")

        main_count = sum(1 for img in images if img.is_main)
        if main_count != (1 if images else 0):
            raise InvariantViolationError(product_id, "single_main")

    @staticmethod
    async def _discard_blobs(keys: Iterable[str], storage: Any) -> None:
        """Compensating delete for blobs whose records never committed."""
        for key in keys:
            logger.warning(f"Removing orphaned blob {key}")
            try:
                await run_blocking(storage.delete_file, key)
            except Exception:
                logger.error(f"Failed to remove orphaned blob {key}", exc_info=True)

    @staticmethod
    def to_responses(
        images: Iterable[ProductImage], storage: Any = S3Service
    ) -> List[ProductImageResponse]:
        """Map records to responses carrying freshly signed URLs."""
        return [
            ProductImageResponse(
                id=img.id,
                product_id=img.product_id,
                image_key=img.image_key,
                image_url=storage.generate_presigned_url(img.image_key),
                is_main=img.is_main,
                index=img.index,
                uploaded_at=img.uploaded_at,
            )
            for img in images
        ]

    @staticmethod
    async def list_images(db: AsyncSession, product_id: int) -> List[ProductImage]:
        """
        Get a product's images in display order.

        Raises:
            NotFoundError: If product not found
        """
        product_exists = await db.scalar(
            select(Product.id).where(Product.id == product_id)
        )
        if product_exists is None:
            raise NotFoundError("Product", product_id)

        return await ProductImageService._fetch_images(db, product_id)

    @staticmethod
    async def add_images(
        db: AsyncSession,
        product_id: int,
        payloads: List[ImagePayload],
        storage: Any = S3Service,
    ) -> List[ProductImage]:
        """
        Store new images for a product and append them to its collection.

        New images continue the index sequence. The first image a product
        ever gets becomes its main image. If anything fails after a blob was
        written, the transaction rolls back and the blobs written by this
        call are deleted again.

        Args:
            product_id: Owning product
            payloads: Image uploads, validated before any write

        Returns:
            The created records in index order

        Raises:
            ValidationError: Empty list or a payload failing validation
            NotFoundError: If product not found
            StorageError: If an upload fails
        """
        validate_image_payloads(payloads)

        async with product_image_locks.hold(product_id):
            await ProductImageService._lock_product(db, product_id)

            result = await db.execute(
                select(func.max(ProductImage.index), func.count(ProductImage.id)).where(
                    ProductImage.product_id == product_id
                )
            )
            max_index, image_count = result.one()
            next_index = 0 if max_index is None else max_index + 1

            uploaded_keys: List[str] = []
            created: List[ProductImage] = []
            try:
                for offset, payload in enumerate(payloads):
                    content = await run_blocking(fit_within_bounds, payload.content)
                    key = storage.generate_image_key(product_id, payload.filename)
                    key, url = await run_blocking(
                        storage.upload_file, content, key, payload.content_type
                    )
                    uploaded_keys.append(key)

                    created.append(
                        ProductImage(
                            product_id=product_id,
                            image_key=key,
                            image_url=url,
                            is_main=image_count == 0 and offset == 0,
                            index=next_index + offset,
                        )
                    )

                db.add_all(created)
                await db.flush()
                await ProductImageService._verify_invariants(db, product_id)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                await ProductImageService._discard_blobs(uploaded_keys, storage)
                raise DatabaseError(f"Failed to store images for product {product_id}") from e
            except Exception:
                await db.rollback()
                await ProductImageService._discard_blobs(uploaded_keys, storage)
                raise

        logger.info(
            f"Stored {len(created)} image(s) for product {product_id} "
            f"at indices {next_index}..{next_index + len(created) - 1}"
        )
        return created

    @staticmethod
    async def delete_image(
        db: AsyncSession,
        product_id: int,
        image_id: Optional[int] = None,
        image_key: Optional[str] = None,
        storage: Any = S3Service,
    ) -> List[ProductImage]:
        """
        Delete one image and re-sequence the rest.

        Remaining images are renumbered 0, 1, 2, ... in their current order
        and the one now at index 0 becomes main, whichever image was removed.
        The blob is deleted last, before commit: if the object store refuses,
        the whole operation rolls back and the record stays.

        Args:
            product_id: Owning product
            image_id: Image to delete (or pass image_key instead)
            image_key: Object-store key of the image to delete

        Returns:
            Remaining images in index order

        Raises:
            ValidationError: If neither or both identifiers are given
            NotFoundError: If product or image not found
            StorageError: If the blob delete fails
            DatabaseError: If the commit fails; a record whose blob is already
                gone is dropped first
        """
        if (image_id is None) == (image_key is None):
            raise ValidationError("Provide exactly one of image_id or image_key")

        async with product_image_locks.hold(product_id):
            await ProductImageService._lock_product(db, product_id)

            query = select(ProductImage).where(ProductImage.product_id == product_id)
            if image_id is not None:
                query = query.where(ProductImage.id == image_id)
            else:
                query = query.where(ProductImage.image_key == image_key)

            image = (await db.execute(query)).scalar_one_or_none()
            if not image:
                raise NotFoundError(
                    "ProductImage", image_id if image_id is not None else image_key
                )

            deleted_key = image.image_key
            blob_deleted = False
            try:
                await db.delete(image)
                await db.flush()

                remaining = await ProductImageService._resequence(db, product_id)

                await ProductImageService._verify_invariants(db, product_id)
                await run_blocking(storage.delete_file, deleted_key)
                blob_deleted = True
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                if blob_deleted:
                    await ProductImageService.forget_images(db, product_id, [deleted_key])
                raise DatabaseError(f"Failed to delete image {deleted_key}") from e
            except Exception:
                await db.rollback()
                raise

        logger.info(
            f"Deleted image {deleted_key} of product {product_id}, "
            f"{len(remaining)} image(s) remain"
        )
        return remaining

    @staticmethod
    def _check_immutable_fields(item: ReorderImageItem, image: ProductImage) -> None:
        if item.image_key is not None and item.image_key != image.image_key:
            raise ValidationError(f"image_key of image {image.id} cannot be changed")

        if item.uploaded_at is not None:
            supplied = item.uploaded_at
            if supplied.tzinfo is not None:
                supplied = supplied.astimezone(timezone.utc).replace(tzinfo=None)
            if supplied != image.uploaded_at:
                raise ValidationError(f"uploaded_at of image {image.id} cannot be changed")

    @staticmethod
    async def reorder_images(
        db: AsyncSession,
        product_id: int,
        items: List[ReorderImageItem],
    ) -> List[ProductImage]:
        """
        Apply a caller-supplied order to a product's images.

        The list must be a permutation of the product's images. Each image
        gets its list position as index and the submitted is_main flag;
        exactly one entry must be main. All checks run before any write.

        Returns:
            The images in their new order

        Raises:
            ValidationError: Empty list, duplicates, not a permutation,
                not exactly one main, or a changed immutable field
            NotFoundError: If product not found or an id is not one of its images
        """
        if not items:
            raise ValidationError("images must not be empty")

        ids = [item.id for item in items]
        if len(set(ids)) != len(ids):
            raise ValidationError("images contains duplicate ids")

        async with product_image_locks.hold(product_id):
            await ProductImageService._lock_product(db, product_id)

            images = await ProductImageService._fetch_images(db, product_id)
            by_id = {img.id: img for img in images}

            unknown = [image_id for image_id in ids if image_id not in by_id]
            if unknown:
                raise NotFoundError("ProductImage", unknown)

            missing = sorted(set(by_id) - set(ids))
            if missing:
                raise ValidationError(
                    f"Reorder must list every image of product {product_id}; missing {missing}"
                )

            main_count = sum(1 for item in items if item.is_main)
            if main_count != 1:
                raise ValidationError(
                    f"Exactly one image must be main, got {main_count}"
                )

            for item in items:
                ProductImageService._check_immutable_fields(item, by_id[item.id])

            try:
                for position, item in enumerate(items):
                    image = by_id[item.id]
                    image.index = position
                    image.is_main = item.is_main
                await db.flush()

                await ProductImageService._verify_invariants(db, product_id)
                await db.commit()
            except SQLAlchemyError as e:
                await db.rollback()
                raise DatabaseError(f"Failed to reorder images of product {product_id}") from e
            except Exception:
                await db.rollback()
                raise

        logger.info(f"Reordered {len(items)} image(s) of product {product_id}")
        return [by_id[image_id] for image_id in ids]

    @staticmethod
    async def forget_images(db: AsyncSession, product_id: int, keys: List[str]) -> None:
        """
        Drop the records of images whose blobs are already deleted and
        re-sequence the rest, in a transaction of its own.

        For callers that deleted some blobs and then rolled back; they must
        hold the product lock and are already propagating an error, so a
        failure here is logged rather than raised.
        """
        if not keys:
            return

        try:
            await ProductImageService._lock_product(db, product_id)
            await db.execute(
                delete(ProductImage).where(
                    ProductImage.product_id == product_id,
                    ProductImage.image_key.in_(keys),
                )
            )
            await ProductImageService._resequence(db, product_id)
            await ProductImageService._verify_invariants(db, product_id)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error(
                f"Image records of product {product_id} point at deleted blobs: {keys}",
                exc_info=True,
            )
            return

        logger.warning(
            f"Dropped {len(keys)} image record(s) of product {product_id} "
            f"whose blobs were already deleted"
        )
