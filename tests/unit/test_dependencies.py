"""Tests for request-scoped dependencies and best-effort outcomes."""

import pytest
from starlette.requests import Request

from booksage.core.outcome import attempt
from booksage.dependencies import get_client_identity, get_user_id


def _request(headers: dict[str, str] | None = None, client: tuple | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "GET",
        "path": "/",
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": client,
    }
    return Request(scope)


class TestClientIdentity:
    @pytest.mark.parametrize(
        ("headers", "client", "expected"),
        [
            ({"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}, ("10.0.0.1", 80), "203.0.113.7"),
            ({"X-Forwarded-For": " , 10.0.0.1"}, ("10.0.0.2", 80), "10.0.0.2"),
            ({}, ("192.0.2.5", 5000), "192.0.2.5"),
            ({}, None, "unknown"),
        ],
    )
    def test_identity_resolution(
        self, headers: dict[str, str], client: tuple | None, expected: str
    ) -> None:
        assert get_client_identity(_request(headers, client)) == expected


class TestUserId:
    def test_header_is_used(self) -> None:
        assert get_user_id(_request({"X-User-ID": " reader-1 "})) == "reader-1"

    @pytest.mark.parametrize("headers", [{}, {"X-User-ID": "   "}])
    def test_missing_or_blank(self, headers: dict[str, str]) -> None:
        assert get_user_id(_request(headers)) is None


class TestAttempt:
    @pytest.mark.asyncio
    async def test_success_carries_value(self) -> None:
        async def write() -> int:
            return 7

        outcome = await attempt("write", write())

        assert outcome.ok is True
        assert outcome.value == 7

    @pytest.mark.asyncio
    async def test_failure_is_captured(self) -> None:
        async def write() -> None:
            raise RuntimeError("disk full")

        outcome = await attempt("write", write(), book_id="b1")

        assert outcome.ok is False
        assert outcome.value is None
        assert outcome.error == "disk full"
