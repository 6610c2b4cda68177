"""Core utility functions for the application"""

import asyncio
import re
import unicodedata
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, TypeVar

T = TypeVar("T")

# Thread pool for blocking work (boto3 calls, Pillow resizing)
_executor = ThreadPoolExecutor(max_workers=4)

SLUG_MAX_LENGTH = 100


async def run_blocking(func: Callable[..., T], *args: Any) -> T:
    """Run a blocking callable in the shared thread pool without blocking the event loop."""
    loop = asyncio.get_event_loop()
    return await loop.run_in_executor(_executor, func, *args)


def slugify(text: str, max_length: int = SLUG_MAX_LENGTH) -> str:
    """
    Convert a title to a URL slug: lowercase ASCII words joined by hyphens.

    Examples:
        "Hand-Painted Vase (Blue)" -> "hand-painted-vase-blue"
    """
    normalized = unicodedata.normalize("NFKD", text).encode("ascii", "ignore").decode("ascii")
    normalized = re.sub(r"[*+~.()'\"!:@]", "", normalized.lower())
    slug = re.sub(r"[^a-z0-9]+", "-", normalized).strip("-")
    return slug[:max_length].rstrip("-")


def is_valid_slug(slug: str) -> bool:
    return re.fullmatch(r"[a-z0-9]+(-[a-z0-9]+)*", slug) is not None
