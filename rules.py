"""Validation rules and branch map for the auth service.

Input predicates run before any lookup or mutation. Record rules run on
every store write. The branch map lists every decision point in the
handlers and the token codec so white-box tests can trace coverage back
to it.

Layers
------
valid_email       structural email check (RFC 5322-like grammar)
valid_password    minimum-length password check
Rule              named validation predicate over a UserPrivate record
validate_user()   runs every record rule and returns a report
BranchSpec        every decision point white-box tests must cover
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable

# ---------------------------------------------------------------------------
# Configuration constants
# ---------------------------------------------------------------------------

MIN_PASSWORD_LENGTH = 8
SALT_BYTES = 16
DIGEST_BYTES = 32

# Token TTLs in milliseconds.
ONE_HOUR = 1000 * 60 * 60
TWO_HOURS = 2 * ONE_HOUR

EMAIL_PATTERN = re.compile(
    r"(?:[a-z0-9!#$%&'*+/=?^_`{|}~-]+(?:\.[a-z0-9!#$%&'*+/=?^_`{|}~-]+)*"
    r'|"(?:[\x01-\x08\x0b\x0c\x0e-\x1f\x21\x23-\x5b\x5d-\x7f]'
    r'|\\[\x01-\x09\x0b\x0c\x0e-\x7f])*")'
    r"@"
    r"(?:(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z0-9](?:[a-z0-9-]*[a-z0-9])?"
    r"|\[(?:(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)\.){3}"
    r"(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?"
    r"|[a-z0-9-]*[a-z0-9]:(?:[\x01-\x08\x0b\x0c\x0e-\x1f\x21-\x5a\x53-\x7f]"
    r"|\\[\x01-\x09\x0b\x0c\x0e-\x7f])+)\])",
    re.IGNORECASE,
)


# ---------------------------------------------------------------------------
# Input predicates
# ---------------------------------------------------------------------------

def valid_email(candidate: Any) -> bool:
    """True if ``candidate`` is a string matching the email grammar."""
    if not isinstance(candidate, str):
        return False
    return EMAIL_PATTERN.fullmatch(candidate) is not None


def valid_password(candidate: Any) -> bool:
    """True if ``candidate`` is a string of at least 8 characters.

    Length only; there is no complexity requirement.
    """
    return isinstance(candidate, str) and len(candidate) >= MIN_PASSWORD_LENGTH


# ---------------------------------------------------------------------------
# Rule: a named, executable predicate over a user record
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Rule:
    """A named validation rule for stored user records."""

    id: str
    name: str
    description: str
    check: Callable[[Any], bool]


def _user_has_id(u: Any) -> bool:
    return bool(getattr(u, "id", None))


def _user_email_valid(u: Any) -> bool:
    return valid_email(getattr(u, "email", None))


def _user_has_role(u: Any) -> bool:
    role = getattr(u, "role", "")
    return isinstance(role, str) and bool(role.strip())


def _user_digest_length(u: Any) -> bool:
    digest = getattr(u, "password_digest", b"")
    return isinstance(digest, bytes) and len(digest) == DIGEST_BYTES


def _user_salt_length(u: Any) -> bool:
    salt = getattr(u, "salt", b"")
    return isinstance(salt, bytes) and len(salt) == SALT_BYTES


USER_RULES: list[Rule] = [
    Rule(
        id="USER-ID",
        name="user_has_id",
        description="User must have a non-empty id",
        check=_user_has_id,
    ),
    Rule(
        id="USER-EMAIL",
        name="user_email_valid",
        description="User email must match the email grammar",
        check=_user_email_valid,
    ),
    Rule(
        id="USER-ROLE",
        name="user_has_role",
        description="User must have a non-blank role",
        check=_user_has_role,
    ),
    Rule(
        id="USER-DIGEST",
        name="user_digest_length",
        description=f"Password digest must be {DIGEST_BYTES} bytes",
        check=_user_digest_length,
    ),
    Rule(
        id="USER-SALT",
        name="user_salt_length",
        description=f"Salt must be {SALT_BYTES} bytes",
        check=_user_salt_length,
    ),
]


# ---------------------------------------------------------------------------
# Validation report
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ValidationResult:
    rule_id: str
    rule_name: str
    passed: bool
    description: str


@dataclass(frozen=True)
class ValidationReport:
    results: list[ValidationResult]

    @property
    def passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failures(self) -> list[ValidationResult]:
        return [r for r in self.results if not r.passed]

    def summary(self) -> str:
        total = len(self.results)
        failed = len(self.failures)
        if failed == 0:
            return f"All {total} rules passed"
        lines = [f"{failed}/{total} rules failed:"]
        for f in self.failures:
            lines.append(f"  [{f.rule_id}] {f.rule_name}: {f.description}")
        return "\n".join(lines)


def validate_user(user: Any) -> ValidationReport:
    """Run all record rules against a user and return a report."""
    results = []
    for rule in USER_RULES:
        try:
            passed = rule.check(user)
        except Exception:
            passed = False
        results.append(
            ValidationResult(
                rule_id=rule.id,
                rule_name=rule.name,
                passed=passed,
                description=rule.description,
            )
        )
    return ValidationReport(results=results)


# ---------------------------------------------------------------------------
# Branch map
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class BranchSpec:
    """A decision point in the implementation that must be exercised."""

    id: str
    description: str
    condition: str
    operation: str


BRANCHES: list[BranchSpec] = [
    # Token verification
    BranchSpec(
        "TOKEN-VALID",
        "Token passes all verification checks",
        "signature valid, typ/kid match, not expired",
        "verify",
    ),
    BranchSpec(
        "TOKEN-MALFORMED",
        "Token rejected: cannot split/decode/parse",
        "not three segments, bad base64 or bad JSON",
        "verify",
    ),
    BranchSpec(
        "TOKEN-BAD-SIG",
        "Token rejected: authentication tag mismatch",
        "AEAD open fails for the bound key pair",
        "verify",
    ),
    BranchSpec(
        "TOKEN-WRONG-KID",
        "Token rejected: header kid is not the bound peer's",
        "header.kid != peer.kid",
        "verify",
    ),
    BranchSpec(
        "TOKEN-EXPIRED",
        "Token rejected: expiry time passed",
        "header.exp <= now",
        "verify",
    ),
    BranchSpec(
        "TOKEN-WRONG-SUBTYPE",
        "Token rejected: subtype differs from the expected one",
        "payload.subtype != expected_subtype",
        "verify",
    ),
    # Sign-up
    BranchSpec(
        "SIGNUP-SUCCESS",
        "New account created",
        "valid input and email not taken",
        "sign_up",
    ),
    BranchSpec(
        "SIGNUP-BAD-INPUT",
        "Sign-up rejected: missing document, bad email or password",
        "not valid_email or not valid_password",
        "sign_up",
    ),
    BranchSpec(
        "SIGNUP-DUP",
        "Sign-up rejected: email already registered",
        "store.exists(email)",
        "sign_up",
    ),
    BranchSpec(
        "SIGNUP-CRASH",
        "Sign-up failed unexpectedly",
        "body parse error or store failure",
        "sign_up",
    ),
    # Sign-in
    BranchSpec(
        "SIGNIN-SUCCESS",
        "Credentials match; token pair issued",
        "equal(hash(password, salt), digest)",
        "sign_in",
    ),
    BranchSpec(
        "SIGNIN-BAD-SCHEME",
        "Sign-in rejected: Authorization is not Basic",
        "scheme != 'basic'",
        "sign_in",
    ),
    BranchSpec(
        "SIGNIN-BAD-INPUT",
        "Sign-in rejected: malformed credentials",
        "bad base64 or not valid_email or not valid_password",
        "sign_in",
    ),
    BranchSpec(
        "SIGNIN-NO-USER",
        "Sign-in rejected: unknown email",
        "store.read_by_email(email) is None",
        "sign_in",
    ),
    BranchSpec(
        "SIGNIN-BAD-PASS",
        "Sign-in rejected: password mismatch",
        "not equal(hash(password, salt), digest)",
        "sign_in",
    ),
    BranchSpec(
        "SIGNIN-CRASH",
        "Sign-in failed unexpectedly",
        "store failure",
        "sign_in",
    ),
    # Refresh
    BranchSpec(
        "REFRESH-SUCCESS",
        "Refresh token accepted; new pair issued",
        "valid refresh token and user exists",
        "refresh",
    ),
    BranchSpec(
        "REFRESH-BAD-SCHEME",
        "Refresh rejected: Authorization is not Bearer",
        "scheme != 'bearer'",
        "refresh",
    ),
    BranchSpec(
        "REFRESH-INVALID",
        "Refresh rejected: token invalid or expired",
        "codec.verify(token) is None",
        "refresh",
    ),
    BranchSpec(
        "REFRESH-WRONG-SUBTYPE",
        "Refresh rejected: token is not a refresh token",
        "payload.subtype != 'refresh'",
        "refresh",
    ),
    BranchSpec(
        "REFRESH-NO-USER",
        "Refresh rejected: subject no longer exists",
        "store.read_by_id(id) is None",
        "refresh",
    ),
    BranchSpec(
        "REFRESH-CRASH",
        "Refresh failed unexpectedly",
        "store failure",
        "refresh",
    ),
    # Resource-side authorization
    BranchSpec(
        "AUTHZ-NO-TOKEN",
        "No bearer token provided",
        "authorization header missing or not Bearer",
        "authorize",
    ),
    BranchSpec(
        "AUTHZ-INVALID-TOKEN",
        "Bearer token is not a live access token for this server",
        "codec.verify(token, ACCESS) is None",
        "authorize",
    ),
    BranchSpec(
        "AUTHZ-ALLOWED",
        "Principal has the required role",
        "principal.role == required_role",
        "authorize",
    ),
    BranchSpec(
        "AUTHZ-DENIED",
        "Principal lacks the required role",
        "principal.role != required_role",
        "authorize",
    ),
]
