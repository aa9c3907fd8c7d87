"""FastAPI dependencies for resource servers.

A resource server holds its own key pair and the auth service's public
key. Access tokens sealed for it open here; refresh tokens (sealed for
the auth service itself) do not.

Branches: AUTHZ-NO-TOKEN, AUTHZ-INVALID-TOKEN, AUTHZ-ALLOWED, AUTHZ-DENIED
"""
from __future__ import annotations

from typing import Callable

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from models import ACCESS, TokenPayload
from tokens import KeyPair, PeerPublicKey, TokenCodec, now_ms

_security = HTTPBearer(auto_error=False)


def access_token_guard(
    resource_keypair: KeyPair,
    auth_peer_key: PeerPublicKey,
    clock: Callable[[], int] = now_ms,
) -> Callable:
    """Dependency factory: yield the verified access-token payload."""
    codec = TokenCodec(resource_keypair, auth_peer_key, clock=clock)

    async def current_principal(
        credentials: HTTPAuthorizationCredentials | None = Depends(_security),
    ) -> TokenPayload:
        if credentials is None:                                   # AUTHZ-NO-TOKEN
            raise HTTPException(status_code=401, detail="Not authenticated")

        contents = codec.verify(credentials.credentials, expected_subtype=ACCESS)
        if contents is None:                                      # AUTHZ-INVALID-TOKEN
            raise HTTPException(
                status_code=401, detail="Invalid or expired access token"
            )
        return contents.payload

    return current_principal


def require_role(guard: Callable, role: str) -> Callable:
    """Dependency factory: require that the principal has ``role``."""

    async def _check_role(
        principal: TokenPayload = Depends(guard),
    ) -> TokenPayload:
        if principal.role == role:                                # AUTHZ-ALLOWED
            return principal
        raise HTTPException(                                      # AUTHZ-DENIED
            status_code=403,
            detail=f"Role '{role}' required",
        )

    return _check_role
