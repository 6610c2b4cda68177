from decimal import Decimal
from sqlalchemy import String, Text, Numeric, JSON
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING, Optional

from gallery.core.db.base import BaseModel

if TYPE_CHECKING:
    from gallery.modules.product_images.models import ProductImage


class Product(BaseModel):
    """
    Storefront product. Owns an ordered collection of images;
    deleting the product deletes its image records.
    """

    __tablename__ = "product"

    title: Mapped[str] = mapped_column(String(255), nullable=False)

    slug: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)

    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    price: Mapped[Decimal] = mapped_column(
        Numeric(precision=15, scale=2), nullable=False
    )

    tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    category: Mapped[Optional[str]] = mapped_column(String(255), nullable=True, index=True)

    sub_category: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    # Relationships
    images: Mapped[list["ProductImage"]] = relationship(
        "ProductImage",
        back_populates="product",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="ProductImage.index",
    )

    def __repr__(self) -> str:
        return f"<Product(id={self.id}, title='{self.title}', slug='{self.slug}')>"


# Register the related mapper whenever Product is imported
from gallery.modules.product_images.models import ProductImage  # noqa: E402, F401
