import time
import typing as t

import jwt
import pytest

TOKEN_SECRET = "chorus-test-secret-with-enough-bytes-for-hs256"


def make_token(
    sub: str = "user-1",
    expires_in: float | None = 3600,
    **claims: t.Any,
) -> str:
    """
    Build a signed access token.

    Parameters
    ----------
    sub : str
        Subject claim.
    expires_in : float | None
        Seconds from now until ``exp``; ``None`` omits the claim.

    Returns
    -------
    str
        Encoded JWT.
    """
    payload: dict[str, t.Any] = {"sub": sub, **claims}
    if expires_in is not None:
        payload["exp"] = int(time.time() + expires_in)
    return jwt.encode(payload, TOKEN_SECRET, algorithm="HS256")


class FakeClient:
    """Stand-in client handle recording the token it was built with."""

    def __init__(self, token: str):
        self.token = token


class CountingFactory:
    """Client factory that counts how many clients it has built."""

    def __init__(self):
        self.built: list[FakeClient] = []

    def __call__(self, token: str) -> FakeClient:
        client = FakeClient(token)
        self.built.append(client)
        return client


@pytest.fixture
def token_factory() -> t.Callable[..., str]:
    return make_token


@pytest.fixture
def counting_factory() -> CountingFactory:
    return CountingFactory()


@pytest.fixture(autouse=True)
def test_set_env(monkeypatch):
    monkeypatch.setenv("CHORUS_BACKEND_URL", "http://backend.test")
    monkeypatch.setenv("CHORUS_BACKEND_API_KEY", "anon-test-key")
