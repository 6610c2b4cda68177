"""Upload validation for product images: count, size, type allow-list, decodability, pixel area."""

from typing import List

from gallery.core.config import config
from gallery.core.exceptions import ValidationError
from gallery.core.image_processing import (
    FORMAT_MIME_TYPES,
    ImageDecodeError,
    ImageTooLargeError,
    inspect_image,
)
from .schemas import ImagePayload


def validate_image_payloads(payloads: List[ImagePayload]) -> None:
    """
    Validate every payload before anything is written.

    Raises:
        ValidationError: On the first payload that fails a check
    """
    if not payloads:
        raise ValidationError("At least one image is required")

    if len(payloads) > config.max_images_per_upload:
        raise ValidationError(
            f"Too many images: {len(payloads)} (max {config.max_images_per_upload})"
        )

    allowed_types = config.allowed_image_type_list

    for payload in payloads:
        if payload.size == 0:
            raise ValidationError(f"Image '{payload.filename}' is empty")

        if payload.size > config.max_image_size:
            raise ValidationError(
                f"Image '{payload.filename}' is {payload.size} bytes "
                f"(max {config.max_image_size})"
            )

        content_type = (payload.content_type or "").lower()
        if content_type not in allowed_types:
            raise ValidationError(
                f"Unsupported content type '{payload.content_type}' for '{payload.filename}'. "
                f"Allowed: {', '.join(allowed_types)}"
            )

        try:
            image_format = inspect_image(payload.content)
        except ImageTooLargeError as e:
            raise ValidationError(f"Image '{payload.filename}' is too large: {e}")
        except ImageDecodeError:
            raise ValidationError(f"'{payload.filename}' is not a valid image")

        detected_type = FORMAT_MIME_TYPES.get(image_format)
        if detected_type != content_type:
            raise ValidationError(
                f"'{payload.filename}' is declared as {content_type} "
                f"but contains {image_format or 'unknown'} data"
            )
