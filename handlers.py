"""Sign-up, sign-in and refresh request handlers.

Each factory returns an async handler ``(Request) -> Response``. Every
decision branch is annotated with its branch id (see ``rules.BRANCHES``)
so white-box tests can trace coverage back to it.

Status codes: 400 malformed input, 401 authentication failure, 403 wrong
token class, 409 duplicate email, 500 anything unexpected. A 500 is
always reported to the injected failure sink first.
"""
from __future__ import annotations

import base64
import json
import logging
from typing import Awaitable, Callable

from fastapi import Request, Response
from fastapi.responses import JSONResponse

from auth import (
    PasswordCanonicalizationError,
    generate_salt,
    hash_password,
    verify_password,
)
from models import (
    ACCESS,
    REFRESH,
    SignUpRequest,
    TokenPair,
    TokenPayload,
    TokenTTLOptions,
    UserPrivate,
)
from rules import DIGEST_BYTES, valid_email, valid_password
from store import DuplicateEmailError, UserStore
from tokens import KeyPair, PeerPublicKey, TokenCodec, now_ms

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]
FailureSink = Callable[[BaseException], None]

# Hashed against when the email is unknown, so that path costs the same
# as a wrong password.
_DUMMY_SALT = generate_salt()
_DUMMY_DIGEST = bytes(DIGEST_BYTES)


def log_failure(err: BaseException) -> None:
    """Default failure sink."""
    logger.error("Auth handler crashed", exc_info=err)


def _split_authorization(request: Request) -> tuple[str, str]:
    """Return (lowercased scheme, credentials); empty if absent."""
    value = request.headers.get("Authorization", "")
    scheme, _, credentials = value.strip().partition(" ")
    return scheme.lower(), credentials.strip()


class _TokenIssuer:
    """Mints access/refresh pairs for one auth key pair."""

    def __init__(
        self,
        own_keypair: KeyPair,
        resource_peer_key: PeerPublicKey,
        ttl: TokenTTLOptions,
        clock: Callable[[], int],
    ) -> None:
        self.access = TokenCodec(
            own_keypair, resource_peer_key, ttl.access_token_ttl, clock
        )
        self.refresh = TokenCodec(
            own_keypair, own_keypair.peer, ttl.refresh_token_ttl, clock
        )

    def pair(self, user_id: str, role: str) -> TokenPair:
        return TokenPair(
            access_token=self.access.issue(
                TokenPayload(subtype=ACCESS, id=user_id, role=role)
            ),
            refresh_token=self.refresh.issue(
                TokenPayload(subtype=REFRESH, id=user_id, role=role)
            ),
        )


def _pair_response(pair: TokenPair) -> JSONResponse:
    return JSONResponse(status_code=200, content=pair.model_dump(by_alias=True))


# ---------------------------------------------------------------------------
# Sign-up
# ---------------------------------------------------------------------------

def create_sign_up_handler(
    role: str,
    store: UserStore,
    crashed: FailureSink = log_failure,
) -> Handler:
    """Create a sign-up handler assigning ``role`` to new accounts.

    Branches: SIGNUP-SUCCESS, SIGNUP-BAD-INPUT, SIGNUP-DUP, SIGNUP-CRASH
    """

    async def sign_up(request: Request) -> Response:
        try:
            document = json.loads(await request.body())

            if not isinstance(document, dict):                    # SIGNUP-BAD-INPUT
                return Response(status_code=400)
            if not valid_email(document.get("email")) or not valid_password(
                document.get("password")
            ):                                                    # SIGNUP-BAD-INPUT
                return Response(status_code=400)
            form = SignUpRequest.model_validate(document)

            if await store.exists(form.email):                    # SIGNUP-DUP
                return Response(status_code=409)

            salt = generate_salt()
            try:
                digest = hash_password(form.password, salt)
            except PasswordCanonicalizationError:                 # SIGNUP-BAD-INPUT
                return Response(status_code=400)

            user = UserPrivate(
                **form.attributes(),
                role=role,
                email=form.email,
                password_digest=digest,
                salt=salt,
            )
            try:
                await store.create(user)
            except DuplicateEmailError:                           # SIGNUP-DUP
                return Response(status_code=409)
        except Exception as err:                                  # SIGNUP-CRASH
            crashed(err)
            return Response(status_code=500)

        logger.info("Registered account %s", user.id)
        return Response(status_code=201)                          # SIGNUP-SUCCESS

    return sign_up


# ---------------------------------------------------------------------------
# Sign-in
# ---------------------------------------------------------------------------

def create_sign_in_handler(
    own_keypair: KeyPair,
    resource_peer_key: PeerPublicKey,
    store: UserStore,
    crashed: FailureSink = log_failure,
    ttl: TokenTTLOptions | None = None,
    clock: Callable[[], int] = now_ms,
) -> Handler:
    """Create a sign-in handler for HTTP Basic credentials.

    Access tokens are sealed for ``resource_peer_key``; refresh tokens
    for the service's own key pair.

    Branches: SIGNIN-SUCCESS, SIGNIN-BAD-SCHEME, SIGNIN-BAD-INPUT,
    SIGNIN-NO-USER, SIGNIN-BAD-PASS, SIGNIN-CRASH
    """
    issuer = _TokenIssuer(
        own_keypair, resource_peer_key, ttl or TokenTTLOptions(), clock
    )

    async def sign_in(request: Request) -> Response:
        scheme, credentials = _split_authorization(request)
        if scheme != "basic":                                     # SIGNIN-BAD-SCHEME
            return Response(status_code=400)

        try:
            decoded = base64.b64decode(credentials, validate=True).decode("utf-8")
        except ValueError:                                        # SIGNIN-BAD-INPUT
            return Response(status_code=400)

        email, sep, password = decoded.partition(":")
        if not sep or not valid_email(email) or not valid_password(password):
            return Response(status_code=400)                      # SIGNIN-BAD-INPUT

        try:
            user = await store.read_by_email(email)

            if user is None:
                salt, expected = _DUMMY_SALT, _DUMMY_DIGEST
            else:
                salt, expected = user.salt, user.password_digest

            try:
                matched = verify_password(password, salt, expected)
            except PasswordCanonicalizationError:                 # SIGNIN-BAD-INPUT
                return Response(status_code=400)

            if user is None:                                      # SIGNIN-NO-USER
                return Response(status_code=401)
            if not matched:                                       # SIGNIN-BAD-PASS
                return Response(status_code=401)

            pair = issuer.pair(user.id, user.role)
        except Exception as err:                                  # SIGNIN-CRASH
            crashed(err)
            return Response(status_code=500)

        return _pair_response(pair)                               # SIGNIN-SUCCESS

    return sign_in


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

def create_refresh_handler(
    own_keypair: KeyPair,
    resource_peer_key: PeerPublicKey,
    store: UserStore,
    crashed: FailureSink = log_failure,
    ttl: TokenTTLOptions | None = None,
    clock: Callable[[], int] = now_ms,
) -> Handler:
    """Create a refresh handler for Bearer refresh tokens.

    The role in the new pair is always re-read from the store.

    Branches: REFRESH-SUCCESS, REFRESH-BAD-SCHEME, REFRESH-INVALID,
    REFRESH-WRONG-SUBTYPE, REFRESH-NO-USER, REFRESH-CRASH
    """
    issuer = _TokenIssuer(
        own_keypair, resource_peer_key, ttl or TokenTTLOptions(), clock
    )

    async def refresh(request: Request) -> Response:
        scheme, token = _split_authorization(request)
        if scheme != "bearer":                                    # REFRESH-BAD-SCHEME
            return Response(status_code=400)

        contents = issuer.refresh.verify(token)
        if contents is None:                                      # REFRESH-INVALID
            return Response(status_code=401)

        if contents.payload.subtype != REFRESH:                   # REFRESH-WRONG-SUBTYPE
            return Response(status_code=403)

        try:
            user = await store.read_by_id(contents.payload.id)
            if user is None:                                      # REFRESH-NO-USER
                return Response(status_code=401)

            pair = issuer.pair(user.id, user.role)
        except Exception as err:                                  # REFRESH-CRASH
            crashed(err)
            return Response(status_code=500)

        return _pair_response(pair)                               # REFRESH-SUCCESS

    return refresh
