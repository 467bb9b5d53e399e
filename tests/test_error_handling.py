from fastapi import FastAPI
from fastapi.testclient import TestClient
from httpx import AsyncClient

from fuel_analyzer.core.errors import ReportNotFound


def _make_app_with_error_routes() -> FastAPI:
    """Return a minimal app with the service's error handlers and failing routes."""
    from fuel_analyzer.main import app as main_app

    test_app = FastAPI()
    for exc_cls, handler in main_app.exception_handlers.items():
        test_app.add_exception_handler(exc_cls, handler)  # type: ignore[arg-type]

    @test_app.get("/boom")
    async def _boom() -> None:
        raise RuntimeError("internal detail")

    @test_app.get("/empty-bucket")
    async def _empty_bucket() -> None:
        raise ReportNotFound("No files found in bucket", details={"bucket": "b"})

    return test_app


def test_unhandled_exception_returns_generic_500_envelope() -> None:
    test_app = _make_app_with_error_routes()
    with TestClient(test_app, raise_server_exceptions=False) as c:
        response = c.get("/boom")
    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "InternalError"
    assert "detail" not in body
    assert "internal detail" not in response.text


def test_pipeline_error_uses_its_status_and_kind() -> None:
    test_app = _make_app_with_error_routes()
    with TestClient(test_app) as c:
        response = c.get("/empty-bucket")
    assert response.status_code == 404
    assert response.json() == {
        "error": "ReportNotFound",
        "message": "No files found in bucket",
        "details": {"bucket": "b"},
    }


async def test_unknown_route_uses_error_envelope(client: AsyncClient) -> None:
    response = await client.get("/nope")
    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "NotFound"
    assert "detail" not in body


async def test_wrong_method_uses_error_envelope(client: AsyncClient) -> None:
    response = await client.get(
        "/api/v1/analyze-text", headers={"X-API-Key": "test-api-key"}
    )
    assert response.status_code == 405
    assert response.json()["error"] == "MethodNotAllowed"
