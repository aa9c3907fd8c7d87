"""Credential primitives.

Provides the constant-time equality check, SASLprep password
canonicalization, salt generation and salted BLAKE2b password hashing.
Decision branches in the handlers that use these are listed in
``rules.BRANCHES``.
"""
from __future__ import annotations

import hashlib
import os
import stringprep
import unicodedata

from rules import DIGEST_BYTES, SALT_BYTES


class PasswordCanonicalizationError(ValueError):
    """Raised when a password contains characters SASLprep prohibits."""


# ---------------------------------------------------------------------------
# Constant-time equality
# ---------------------------------------------------------------------------

def equal(a: bytes, b: bytes) -> bool:
    """Compare two byte strings without exiting at the first mismatch.

    Every position of the longer input is visited. Differing lengths
    make the result False but do not shorten the scan.
    """
    diff = 0 if len(a) == len(b) else 1
    len_a = len(a)
    len_b = len(b)
    for i in range(max(len_a, len_b)):
        x = a[i] if i < len_a else 0
        y = b[i] if i < len_b else 0
        diff |= x ^ y
    return diff == 0


# ---------------------------------------------------------------------------
# SASLprep (RFC 4013)
# ---------------------------------------------------------------------------

_PROHIBITED = (
    stringprep.in_table_c12,
    stringprep.in_table_c21_c22,
    stringprep.in_table_c3,
    stringprep.in_table_c4,
    stringprep.in_table_c5,
    stringprep.in_table_c6,
    stringprep.in_table_c7,
    stringprep.in_table_c8,
    stringprep.in_table_c9,
)


def saslprep(data: str) -> str:
    """Canonicalize a password with the SASLprep profile of stringprep.

    Equivalent spellings (composed vs. decomposed accents, compatibility
    forms, non-ASCII spaces) map to the same string.
    """
    # B.1 maps to nothing, C.1.2 maps to SPACE.
    mapped = "".join(
        " " if stringprep.in_table_c12(c) else c
        for c in data
        if not stringprep.in_table_b1(c)
    )
    # Unicode 3.2 tables, as stringprep requires.
    normalized = unicodedata.ucd_3_2_0.normalize("NFKC", mapped)
    if not normalized:
        return normalized

    for c in normalized:
        if any(in_table(c) for in_table in _PROHIBITED):
            raise PasswordCanonicalizationError(
                f"Prohibited character U+{ord(c):04X} in password"
            )
        if stringprep.in_table_a1(c):
            raise PasswordCanonicalizationError(
                f"Unassigned code point U+{ord(c):04X} in password"
            )

    if any(stringprep.in_table_d1(c) for c in normalized):
        if any(stringprep.in_table_d2(c) for c in normalized):
            raise PasswordCanonicalizationError(
                "Password mixes RandALCat and LCat characters"
            )
        if not (
            stringprep.in_table_d1(normalized[0])
            and stringprep.in_table_d1(normalized[-1])
        ):
            raise PasswordCanonicalizationError(
                "RandALCat password must start and end with RandALCat"
            )

    return normalized


# ---------------------------------------------------------------------------
# Password hashing (BLAKE2b, salt as personalization)
# ---------------------------------------------------------------------------

def generate_salt() -> bytes:
    """Return a fresh random salt from the OS CSPRNG."""
    return os.urandom(SALT_BYTES)


def hash_password(password: str, salt: bytes) -> bytes:
    """Derive the 32-byte digest of ``password`` under ``salt``.

    Raises ValueError for a salt of the wrong size and
    PasswordCanonicalizationError for prohibited characters.
    """
    if len(salt) != SALT_BYTES:
        raise ValueError(f"Salt must be {SALT_BYTES} bytes, got {len(salt)}")

    canonical = saslprep(password)
    if not canonical:
        raise PasswordCanonicalizationError("Password is empty after SASLprep")

    return hashlib.blake2b(
        canonical.encode("utf-8"),
        digest_size=DIGEST_BYTES,
        person=salt,
    ).digest()


def verify_password(password: str, salt: bytes, digest: bytes) -> bool:
    """Check a plaintext password against a stored salt and digest."""
    return equal(hash_password(password, salt), digest)
