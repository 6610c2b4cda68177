"""
Product image processing with Pillow.
Downscales oversized images to fit the configured box, keeping their format.
"""

import io

from PIL import Image, UnidentifiedImageError

from gallery.core.config import config

# Pillow format name -> MIME type accepted for it
FORMAT_MIME_TYPES = {
    "JPEG": "image/jpeg",
    "PNG": "image/png",
    "WEBP": "image/webp",
    "GIF": "image/gif",
}


class ImageDecodeError(ValueError):
    """Bytes could not be decoded as an image."""


class ImageTooLargeError(ImageDecodeError):
    """Pixel area above max_image_pixels, or a decompression bomb."""


def inspect_image(image_bytes: bytes) -> str:
    """
    Return the Pillow format name (e.g. "PNG") of an image.

    Only the header is read for the size check, so oversized images are
    refused before their pixel data is touched.

    Raises:
        ImageTooLargeError: Pixel area over max_image_pixels
        ImageDecodeError: Anything Pillow cannot read
    """
    try:
        with Image.open(io.BytesIO(image_bytes)) as img:
            width, height = img.size
            if width * height > config.max_image_pixels:
                raise ImageTooLargeError(
                    f"{width}x{height} exceeds {config.max_image_pixels} pixels"
                )
            img.verify()
            return img.format or ""
    except Image.DecompressionBombError as e:
        raise ImageTooLargeError(str(e)) from e
    except (UnidentifiedImageError, OSError, SyntaxError) as e:
        raise ImageDecodeError(str(e)) from e


def fit_within_bounds(image_bytes: bytes) -> bytes:
    """
    Shrink the image to fit max_image_width x max_image_height.
    Never enlarges; images already within bounds are returned unchanged,
    and so are animated images (resizing would drop all but the first frame).
    """
    max_w, max_h = config.max_image_width, config.max_image_height

    with Image.open(io.BytesIO(image_bytes)) as img:
        w, h = img.size
        if w <= max_w and h <= max_h:
            return image_bytes
        if getattr(img, "n_frames", 1) > 1:
            return image_bytes

        image_format = img.format or "PNG"
        resized = img.copy()
        resized.thumbnail((max_w, max_h), Image.Resampling.LANCZOS)

    # JPEG has no alpha channel
    if image_format == "JPEG" and resized.mode not in ("RGB", "L"):
        resized = resized.convert("RGB")

    out = io.BytesIO()
    save_kw: dict = {"format": image_format}
    if image_format in ("JPEG", "WEBP"):
        save_kw["quality"] = 85
    resized.save(out, **save_kw)
    return out.getvalue()
