from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List
import os


class Config(BaseSettings):
    # Database Configuration (SQLite by default, PostgreSQL via asyncpg in production)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./data/gallery.db", alias="DB_URL"
    )

    # JWT Configuration (tokens are issued by the auth service)
    jwt_secret: str = Field(default="", alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")

    # S3-compatible object store (AWS S3, Cloudflare R2, MinIO)
    s3_region: str = Field(default="auto", alias="S3_REGION")
    s3_endpoint: str = Field(default="", alias="S3_ENDPOINT")
    s3_access_key_id: str = Field(default="", alias="S3_ACCESS_KEY_ID")
    s3_secret_access_key: str = Field(default="", alias="S3_SECRET_ACCESS_KEY")
    s3_bucket: str = Field(default="gallery-images", alias="S3_BUCKET")
    s3_product_images_prefix: str = Field(
        default="products/", alias="S3_PRODUCT_IMAGES_PREFIX"
    )
    signed_url_expiration: int = Field(default=3600, alias="SIGNED_URL_EXPIRATION")

    # Image upload limits
    max_image_size: int = Field(default=10 * 1024 * 1024, alias="MAX_IMAGE_SIZE")
    allowed_image_types: str = Field(
        default="image/jpeg,image/png,image/webp,image/gif",
        alias="ALLOWED_IMAGE_TYPES",
    )
    max_images_per_upload: int = Field(default=10, alias="MAX_IMAGES_PER_UPLOAD")
    max_image_width: int = Field(default=1920, alias="MAX_IMAGE_WIDTH")
    max_image_height: int = Field(default=1080, alias="MAX_IMAGE_HEIGHT")
    # Decoded pixel area limit, checked from the header before any full decode
    max_image_pixels: int = Field(default=40_000_000, alias="MAX_IMAGE_PIXELS")

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:3001", alias="CORS_ORIGINS"
    )

    is_production: bool = (
        os.getenv("ENVIRONMENT", "development").lower() == "production"
    )

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"

    @property
    def allowed_image_type_list(self) -> List[str]:
        return [t.strip().lower() for t in self.allowed_image_types.split(",") if t.strip()]

    @property
    def cors_origin_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


# Instantiate the settings
config = Config()
