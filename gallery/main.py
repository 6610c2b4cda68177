import logging
import sys
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from gallery.core.config import config
from gallery.core.db.engine import check_database_connection
from gallery.core.error_handler import global_exception_handler
from gallery.core.response_interceptor import (
    SuccessResponseInterceptor,
    CustomAPIRoute,
)
from gallery.modules.products.router import router as products_router
from gallery.modules.product_images.router import router as product_images_router

# Configure logging to output to console
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)
logger.info("Starting Gallery Store API...")

app = FastAPI(
    title="Gallery Store API",
    description="Admin API for the gallery storefront catalog and product images",
    version="1.0.0",
)

app.router.route_class = CustomAPIRoute

app.add_exception_handler(Exception, global_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origin_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Must be added after CORS
app.add_middleware(SuccessResponseInterceptor)

app.include_router(products_router, prefix="/api")
app.include_router(product_images_router, prefix="/api")


@app.get("/healthz")
async def healthz():
    """Health check: reports whether the database answers."""
    database_ok = await check_database_connection()
    return JSONResponse(
        status_code=200 if database_ok else 503,
        content={"status": "ok" if database_ok else "degraded", "database": database_ok},
    )
