"""Shared fixtures for auth tests."""
from __future__ import annotations

import asyncio
import base64

import pytest
from fastapi.testclient import TestClient

from app import create_app
from auth import generate_salt, hash_password
from config import Settings
from models import UserPrivate
from store import InMemoryUserStore
from tokens import KeyPair, generate_keypair


VALID_EMAIL = "u@it.wtf"
VALID_PASSWORD = "weakweak"


def run(coro):
    """Drive a store coroutine from a synchronous test."""
    return asyncio.run(coro)


def basic_auth(email: str, password: str) -> dict:
    raw = f"{email}:{password}".encode("utf-8")
    return {"Authorization": "Basic " + base64.b64encode(raw).decode("ascii")}


def bearer(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


class FakeClock:
    """Millisecond clock the tests can move forward."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


class FailureRecorder:
    """Failure sink that keeps what it was given."""

    def __init__(self) -> None:
        self.errors: list[BaseException] = []

    def __call__(self, err: BaseException) -> None:
        self.errors.append(err)


@pytest.fixture
def store() -> InMemoryUserStore:
    return InMemoryUserStore()


@pytest.fixture
def auth_keys() -> KeyPair:
    return generate_keypair()


@pytest.fixture
def resource_keys() -> KeyPair:
    return generate_keypair()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def failures() -> FailureRecorder:
    return FailureRecorder()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        role="CUSTOMER",
        access_token_ttl=60_000,
        refresh_token_ttl=120_000,
    )


@pytest.fixture
def client(store, settings, auth_keys, resource_keys, failures, clock):
    app = create_app(
        store=store,
        settings=settings,
        own_keypair=auth_keys,
        resource_peer_key=resource_keys.peer,
        crashed=failures,
        clock=clock,
    )
    return TestClient(app)


@pytest.fixture
def sample_user() -> UserPrivate:
    """A stored-form record for VALID_EMAIL / VALID_PASSWORD."""
    salt = generate_salt()
    return UserPrivate(
        role="CUSTOMER",
        email=VALID_EMAIL,
        password_digest=hash_password(VALID_PASSWORD, salt),
        salt=salt,
    )
