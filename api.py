"""HTTP routes for the auth service.

Routes
------
POST   <base>/signup     Register a new account
POST   <base>/signin     Exchange Basic credentials for a token pair
POST   <base>/refresh    Exchange a refresh token for a new pair
GET    /<anything>       Static fallback page (404 if none configured)
"""
from __future__ import annotations

from pathlib import Path

from fastapi import APIRouter
from fastapi.responses import HTMLResponse, Response

from handlers import Handler


def build_auth_router(
    sign_up: Handler,
    sign_in: Handler,
    refresh: Handler,
    base_path: str = "",
) -> APIRouter:
    """Route the three handlers under ``base_path``."""
    router = APIRouter(prefix=base_path, tags=["auth"])
    router.add_api_route(
        "/signup", sign_up, methods=["POST"], status_code=201,
        response_model=None,
    )
    router.add_api_route(
        "/signin", sign_in, methods=["POST"], response_model=None,
    )
    router.add_api_route(
        "/refresh", refresh, methods=["POST"], response_model=None,
    )
    return router


def build_fallback_router(index_html: Path | None = None) -> APIRouter:
    """Serve ``index_html`` for every unmatched GET path."""
    router = APIRouter(tags=["static"])
    page = index_html.read_bytes() if index_html is not None else None

    @router.get("/{path:path}", include_in_schema=False)
    def fallback(path: str) -> Response:
        if page is None:
            return Response(status_code=404)
        return HTMLResponse(content=page)

    return router
