"""Application factory and entry point.

Run with:
    uvicorn app:app --reload
or:
    bwt-auth
"""
from __future__ import annotations

import logging
from typing import Callable

import uvicorn
from fastapi import FastAPI

from api import build_auth_router, build_fallback_router
from config import Settings, get_settings
from handlers import (
    FailureSink,
    create_refresh_handler,
    create_sign_in_handler,
    create_sign_up_handler,
    log_failure,
)
from models import TokenTTLOptions
from store import InMemoryUserStore, UserStore
from tokens import KeyPair, PeerPublicKey, generate_keypair, now_ms

logger = logging.getLogger(__name__)


def create_app(
    store: UserStore | None = None,
    settings: Settings | None = None,
    own_keypair: KeyPair | None = None,
    resource_peer_key: PeerPublicKey | None = None,
    crashed: FailureSink = log_failure,
    clock: Callable[[], int] = now_ms,
) -> FastAPI:
    """Build and return the FastAPI application.

    Accepts an optional store, settings, keys and clock for testing.
    Missing keys are generated; a generated resource key pair is only
    useful for local experiments, since its private half is discarded.
    """
    if store is None:
        store = InMemoryUserStore()
    if settings is None:
        settings = get_settings()
    if own_keypair is None:
        own_keypair = generate_keypair()
    if resource_peer_key is None:
        resource_peer_key = generate_keypair().peer

    ttl = TokenTTLOptions(
        access_token_ttl=settings.access_token_ttl,
        refresh_token_ttl=settings.refresh_token_ttl,
    )

    sign_up = create_sign_up_handler(settings.role, store, crashed)
    sign_in = create_sign_in_handler(
        own_keypair, resource_peer_key, store, crashed, ttl, clock
    )
    refresh = create_refresh_handler(
        own_keypair, resource_peer_key, store, crashed, ttl, clock
    )

    app = FastAPI(
        title="BWT Auth API",
        description=(
            "Credential and token authentication service. Sign up, sign in "
            "with Basic credentials and rotate sessions with refresh tokens."
        ),
        version="0.1.0",
    )
    app.include_router(
        build_auth_router(sign_up, sign_in, refresh, settings.base_path)
    )
    app.include_router(build_fallback_router(settings.index_html))
    logger.debug("Auth app ready (kid=%s)", own_keypair.kid)
    return app


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("serving @ %s:%d", settings.host, settings.port)
    uvicorn.run(create_app(settings=settings), host=settings.host, port=settings.port)


# Default app instance for `uvicorn app:app`
app = create_app()


if __name__ == "__main__":
    main()
