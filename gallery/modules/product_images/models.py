from datetime import datetime
from sqlalchemy import String, Integer, Boolean, DateTime, ForeignKey, Index, func
from sqlalchemy.orm import Mapped, mapped_column, relationship
from typing import TYPE_CHECKING

from gallery.core.db.base import Base

if TYPE_CHECKING:
    from gallery.modules.products.models import Product


class ProductImage(Base):
    """
    One stored image of a product.

    Per product: exactly one image has is_main=True while any exist, and
    the index values are exactly 0..n-1 in display order.
    """

    __tablename__ = "product_image"

    __table_args__ = (
        Index("idx_product_image_product_index", "product_id", "index"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    product_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("product.id", ondelete="CASCADE"), nullable=False
    )

    image_key: Mapped[str] = mapped_column(String(1024), nullable=False, unique=True)

    # Permanent object URL; responses carry a signed URL instead
    image_url: Mapped[str] = mapped_column(String(2048), nullable=False)

    is_main: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    index: Mapped[int] = mapped_column(Integer, nullable=False)

    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=False),
        server_default=func.now(),
        default=datetime.utcnow,
        nullable=False,
    )

    product: Mapped["Product"] = relationship("Product", back_populates="images")

    def __repr__(self) -> str:
        return (
            f"<ProductImage(id={self.id}, product_id={self.product_id}, "
            f"index={self.index}, is_main={self.is_main})>"
        )
