"""Tests for application-level error rendering and shared helpers."""

import json
import logging

import pytest
from fastapi import FastAPI
from httpx import AsyncClient
from sqlalchemy.exc import IntegrityError
from starlette.requests import Request

import app as app_module
from api.v1.pagination import build_page_info
from core import ApiError, Conflict, Forbidden, InvalidCredential, NotFound, ValidationFailure
from db.errors import is_unique_violation


def _request() -> Request:
    return Request({"type": "http", "method": "GET", "path": "/boom", "headers": [], "query_string": b""})


class _PgError(Exception):
    sqlstate = "23505"


def test_error_kinds_carry_status_and_message() -> None:
    assert ValidationFailure().status_code == 400
    assert InvalidCredential().to_body() == {"error": "Invalid or expired token"}
    assert InvalidCredential("Invalid email or password", status_code=401).status_code == 401
    assert Forbidden("nope").to_body() == {"error": "nope"}
    assert NotFound().status_code == 404
    assert Conflict().status_code == 400
    assert ValidationFailure("bad", details="why").to_body() == {"error": "bad", "details": "why"}


def test_is_unique_violation_detects_postgres_and_sqlite() -> None:
    pg_error = IntegrityError("INSERT", {}, _PgError("duplicate"))
    sqlite_error = IntegrityError(
        "INSERT",
        {},
        Exception("UNIQUE constraint failed: likes.user_id, likes.post_id"),
    )
    fk_error = IntegrityError("INSERT", {}, Exception("FOREIGN KEY constraint failed"))

    assert is_unique_violation(pg_error) is True
    assert is_unique_violation(sqlite_error) is True
    assert is_unique_violation(fk_error) is False


def test_build_page_info() -> None:
    info = build_page_info(page=3, limit=10, total=25)

    assert info.total_pages == 3
    assert info.has_next_page is False
    assert info.has_prev_page is True


@pytest.mark.asyncio
async def test_unexpected_errors_hide_details_outside_development(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
) -> None:
    monkeypatch.setattr(app_module.settings, "app_env", "production")

    with caplog.at_level(logging.ERROR, logger="app"):
        response = await app_module.handle_unexpected_error(_request(), RuntimeError("db exploded"))

    assert response.status_code == 500
    assert json.loads(response.body) == {"error": "Internal server error"}
    assert "Unhandled error on GET /boom" in caplog.text


@pytest.mark.asyncio
async def test_unexpected_errors_expose_details_in_development(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app_module.settings, "app_env", "development")

    response = await app_module.handle_unexpected_error(_request(), RuntimeError("db exploded"))

    assert json.loads(response.body) == {"error": "Internal server error", "details": "db exploded"}


@pytest.mark.asyncio
async def test_api_error_handler_renders_body() -> None:
    response = await app_module.handle_api_error(_request(), ApiError("Teapot", status_code=418))

    assert response.status_code == 418
    assert json.loads(response.body) == {"error": "Teapot"}


@pytest.mark.asyncio
async def test_unknown_route_and_method_render_error_body(async_client: AsyncClient) -> None:
    missing = await async_client.get("/api/v1/nowhere")
    wrong_method = await async_client.patch("/api/v1/posts/like")

    assert missing.status_code == 404
    assert missing.json() == {"error": "Route not found"}
    assert wrong_method.status_code == 405
    assert "error" in wrong_method.json()


@pytest.mark.asyncio
async def test_malformed_json_is_a_validation_failure(async_client: AsyncClient) -> None:
    response = await async_client.post(
        "/api/v1/posts/like",
        content="{not json",
        headers={"Content-Type": "application/json"},
    )

    assert response.status_code == 400
    assert response.json()["error"] == "Validation failed"


def test_app_mounts_versioned_routes(app: FastAPI) -> None:
    paths = {getattr(route, "path", "") for route in app.routes}

    assert "/api/v1/auth/register" in paths
    assert "/api/v1/posts/search" in paths
    assert "/api/v1/posts/{post_id}/comments" in paths
    assert "/api/v1/users/{user_id}/commented-posts" in paths
    assert "/api/v1/media/avatars/{user_id}" in paths
