"""
Response envelope for the admin API.

2xx JSON bodies become {"success": true, "data": ..., "count"?: n}.
Error bodies carrying FastAPI's "detail" become {"success": false, "detail": ...}.
"""

import json
from typing import Any, Callable, Dict, Optional
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi.routing import APIRoute
from starlette.middleware.base import BaseHTTPMiddleware


SKIP_INTERCEPTOR_KEY = "skip_interceptor"

UNWRAPPED_PATHS = frozenset({"/openapi.json", "/docs", "/redoc", "/healthz"})


def build_envelope(status_code: int, payload: Any) -> Optional[Dict[str, Any]]:
    """Envelope for a decoded body, or None when the body should pass through."""
    if 200 <= status_code < 300:
        envelope: Dict[str, Any] = {"success": True, "data": payload}
        if isinstance(payload, list):
            envelope["count"] = len(payload)
        return envelope

    if isinstance(payload, dict) and "detail" in payload and "success" not in payload:
        return {"success": False, "detail": payload["detail"]}

    return None


class SuccessResponseInterceptor(BaseHTTPMiddleware):
    """
    Rewrites JSON responses into the envelope above.
    Documentation, the health check and @skip_interceptor routes are left alone.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)

        if request.url.path in UNWRAPPED_PATHS:
            return response
        if getattr(request.state, SKIP_INTERCEPTOR_KEY, False):
            return response
        if "application/json" not in response.headers.get("content-type", ""):
            return response

        body = b"".join([chunk async for chunk in response.body_iterator])
        headers = {
            name: value
            for name, value in response.headers.items()
            if name.lower() != "content-length"
        }

        try:
            envelope = build_envelope(response.status_code, json.loads(body))
        except (json.JSONDecodeError, UnicodeDecodeError):
            envelope = None

        if envelope is None:
            return Response(content=body, status_code=response.status_code, headers=headers)

        return JSONResponse(content=envelope, status_code=response.status_code, headers=headers)


def skip_interceptor(func: Callable) -> Callable:
    """
    Mark a route whose body is already in its final shape.

    Usage:
        @router.delete("/{product_id}")
        @skip_interceptor
        async def delete_product(product_id: int):
            return {"success": True, "message": "deleted"}
    """
    setattr(func, SKIP_INTERCEPTOR_KEY, True)
    return func


class CustomAPIRoute(APIRoute):
    """Route class that exposes the endpoint's skip flag on request.state."""

    def get_route_handler(self) -> Callable:
        handler = super().get_route_handler()
        skip = getattr(self.endpoint, SKIP_INTERCEPTOR_KEY, False)

        async def route_handler(request: Request) -> Response:
            if skip:
                request.state.skip_interceptor = True
            return await handler(request)

        return route_handler
