"""Signed bearer tokens (BWT).

A token is sealed with ChaCha20-Poly1305 under a key derived from an
X25519 exchange between the issuer's private key and the intended
verifier's public key. Only the holder of the other half of that pair
can open it: a token issued for the resource server's public key is
unusable at the auth service and vice versa.

Token format::

    base64url(header_json) . base64url(nonce || ciphertext) . base64url(tag)

The header travels in clear and is bound as associated data.

Branches: TOKEN-VALID, TOKEN-MALFORMED, TOKEN-BAD-SIG, TOKEN-WRONG-KID,
TOKEN-EXPIRED, TOKEN-WRONG-SUBTYPE
"""
from __future__ import annotations

import base64
import json
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import ChaCha20Poly1305
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from models import TokenContents, TokenHeader, TokenPayload
from rules import ONE_HOUR

PROTOCOL_TAG = "BWTv0"

_NONCE_BYTES = 12
_TAG_BYTES = 16
_KID_BYTES = 16


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Keys
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PeerPublicKey:
    """A counterparty's public key and key id."""

    public_key: bytes
    kid: str


@dataclass(frozen=True)
class KeyPair:
    """An X25519 key pair (raw 32-byte keys) and its key id."""

    private_key: bytes = field(repr=False)
    public_key: bytes
    kid: str

    @property
    def peer(self) -> PeerPublicKey:
        """This key pair as seen by a counterparty."""
        return PeerPublicKey(public_key=self.public_key, kid=self.kid)


def generate_keypair() -> KeyPair:
    """Create a fresh X25519 key pair with a random key id."""
    sk = X25519PrivateKey.generate()
    return KeyPair(
        private_key=sk.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        ),
        public_key=sk.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        ),
        kid=os.urandom(_KID_BYTES).hex(),
    )


def _shared_key(private_key: bytes, peer: PeerPublicKey) -> bytes:
    sk = X25519PrivateKey.from_private_bytes(private_key)
    secret = sk.exchange(X25519PublicKey.from_public_bytes(peer.public_key))
    return HKDF(
        algorithm=hashes.SHA256(),
        length=32,
        salt=None,
        info=PROTOCOL_TAG.encode("ascii"),
    ).derive(secret)


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------

def _b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def _b64url_decode(s: str) -> bytes:
    padding = 4 - len(s) % 4
    if padding != 4:
        s += "=" * padding
    return base64.urlsafe_b64decode(s.encode("ascii"))


def _dumps(obj: dict) -> bytes:
    return json.dumps(obj, separators=(",", ":")).encode("utf-8")


# ---------------------------------------------------------------------------
# Signing capability
# ---------------------------------------------------------------------------

def sign(
    private_key: bytes,
    peer: PeerPublicKey,
    header: TokenHeader,
    payload: TokenPayload,
) -> str:
    """Seal ``payload`` for ``peer`` under ``header``."""
    header_b64 = _b64url_encode(_dumps(header.model_dump()))
    nonce = os.urandom(_NONCE_BYTES)
    sealed = ChaCha20Poly1305(_shared_key(private_key, peer)).encrypt(
        nonce, _dumps(payload.model_dump()), header_b64.encode("ascii")
    )
    ciphertext, tag = sealed[:-_TAG_BYTES], sealed[-_TAG_BYTES:]
    return ".".join(
        (header_b64, _b64url_encode(nonce + ciphertext), _b64url_encode(tag))
    )


def verify(
    private_key: bytes,
    peer: PeerPublicKey,
    token: str,
) -> TokenContents | None:
    """Open a token sealed between ``private_key`` and ``peer``.

    Returns None for anything that does not authenticate. Expiry is not
    checked here; see ``TokenCodec.verify``.
    """
    if not isinstance(token, str):
        return None
    parts = token.split(".")
    if len(parts) != 3:                                           # TOKEN-MALFORMED
        return None

    header_b64, body_b64, tag_b64 = parts
    try:
        header = TokenHeader.model_validate_json(_b64url_decode(header_b64))
        body = _b64url_decode(body_b64)
        tag = _b64url_decode(tag_b64)
    except ValueError:                                            # TOKEN-MALFORMED
        return None

    if len(body) < _NONCE_BYTES or len(tag) != _TAG_BYTES:        # TOKEN-MALFORMED
        return None

    nonce, ciphertext = body[:_NONCE_BYTES], body[_NONCE_BYTES:]
    try:
        plaintext = ChaCha20Poly1305(_shared_key(private_key, peer)).decrypt(
            nonce, ciphertext + tag, header_b64.encode("ascii")
        )
    except InvalidTag:                                            # TOKEN-BAD-SIG
        return None

    try:
        payload = TokenPayload.model_validate_json(plaintext)
    except ValueError:                                            # TOKEN-MALFORMED
        return None

    return TokenContents(header=header, payload=payload)


# ---------------------------------------------------------------------------
# Codec bound to one (own key, counterparty key) pair
# ---------------------------------------------------------------------------

class TokenCodec:
    """Issues and verifies tokens between one key pair and one peer.

    Configure with the resource server's public key to mint access
    tokens, or with the service's own public key to mint and verify
    refresh tokens.
    """

    def __init__(
        self,
        own_keypair: KeyPair,
        peer: PeerPublicKey,
        ttl: int = ONE_HOUR,
        clock: Callable[[], int] = now_ms,
    ) -> None:
        self._own = own_keypair
        self._peer = peer
        self._ttl = ttl
        self._clock = clock

    def issue(
        self,
        payload: TokenPayload | dict[str, Any],
        header: dict[str, Any] | None = None,
    ) -> str:
        """Stamp the default header, apply overrides and sign."""
        now = self._clock()
        fields: dict[str, Any] = {
            "typ": PROTOCOL_TAG,
            "iat": now,
            "exp": now + self._ttl,
            "kid": self._own.kid,
        }
        fields.update(header or {})
        if isinstance(payload, dict):
            payload = TokenPayload.model_validate(payload)
        return sign(
            self._own.private_key,
            self._peer,
            TokenHeader.model_validate(fields),
            payload,
        )

    def verify(
        self,
        token: str,
        expected_subtype: str | None = None,
    ) -> TokenContents | None:
        """Return the token contents, or None if it must not be trusted."""
        contents = verify(self._own.private_key, self._peer, token)
        if contents is None:
            return None

        header = contents.header
        if header.typ != PROTOCOL_TAG:                            # TOKEN-MALFORMED
            return None

        if header.kid != self._peer.kid:                          # TOKEN-WRONG-KID
            return None

        if header.exp <= self._clock():                           # TOKEN-EXPIRED
            return None

        if (
            expected_subtype is not None
            and contents.payload.subtype != expected_subtype      # TOKEN-WRONG-SUBTYPE
        ):
            return None

        return contents                                           # TOKEN-VALID
