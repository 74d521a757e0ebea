"""
Tests for translating errors into HTTP responses.
"""

import json

import pytest

from chorus.exceptions import (
    NotFoundError,
    UnauthorizedError,
    error_response,
    handle_api_error,
    success_response,
)
from chorus.services.errors import RateLimitError, ServiceError, ServiceUnavailableError


def body_of(response) -> dict:
    return json.loads(response.body)


@pytest.mark.parametrize(
    ("error", "status_code", "code"),
    [
        (UnauthorizedError("Token expired"), 401, "AUTH_ERROR"),
        (NotFoundError("Clip not found"), 404, "NOT_FOUND"),
        (RateLimitError("backend"), 429, "RATE_LIMITED"),
        (ServiceUnavailableError("down"), 503, "SERVICE_UNAVAILABLE"),
        (ServiceError("HTTP 502: bad gateway", status_code=502), 502, "SERVICE_ERROR"),
        (RuntimeError("authentication required"), 401, "AUTH_ERROR"),
        (KeyError("clip not found"), 404, "NOT_FOUND"),
        (ValueError("invalid dialect"), 400, "VALIDATION_ERROR"),
        (RuntimeError("disk full"), 500, "INTERNAL_ERROR"),
    ],
)
def test_handle_api_error(error, status_code, code):
    response = handle_api_error(error)

    assert response.status_code == status_code
    assert body_of(response)["code"] == code


def test_error_response_includes_details_only_when_given():
    assert body_of(error_response("boom")) == {"error": "boom"}
    assert body_of(error_response("boom", 400, "BAD", {"field": "language"})) == {
        "error": "boom",
        "code": "BAD",
        "details": {"field": "language"},
    }


def test_success_response():
    response = success_response({"id": "clip-1"}, status_code=201)

    assert response.status_code == 201
    assert body_of(response) == {"success": True, "data": {"id": "clip-1"}}
