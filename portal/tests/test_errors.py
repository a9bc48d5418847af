"""Tests for standardized error handling."""

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient


class TestAPIErrors:
    """Test custom API error classes."""

    def test_not_found_error_with_context(self):
        """Test NotFoundError with custom context."""
        from portal.errors import NotFoundError

        error = NotFoundError(detail="Event not found", event_id="abc")
        assert error.status_code == 404
        assert error.detail == "Event not found"
        assert error.context == {"event_id": "abc"}

    def test_duplicate_registration(self):
        from portal.errors import DuplicateRegistrationError

        error = DuplicateRegistrationError()
        assert error.status_code == 409
        assert error.error == "duplicate_registration"

    def test_store_unavailable_is_service_unavailable(self):
        from portal.errors import ServiceUnavailableError, StoreUnavailableError

        error = StoreUnavailableError()
        assert isinstance(error, ServiceUnavailableError)
        assert error.status_code == 503
        assert error.error == "store_unavailable"
        assert "try again" in error.detail

    def test_registration_failed(self):
        from portal.errors import RegistrationFailedError

        assert RegistrationFailedError().status_code == 500

    def test_validation_error(self):
        from portal.errors import ValidationError

        error = ValidationError(detail="Name and email are required", missing=["name"])
        assert error.status_code == 422
        assert error.context == {"missing": ["name"]}


class TestErrorResponse:
    def test_to_response(self):
        from portal.errors import AuthError

        error = AuthError(detail="Invalid email or password", error_code="INVALID_CREDENTIALS")
        data = error.to_response().model_dump(exclude_none=True)
        assert data == {
            "error": "auth_error",
            "detail": "Invalid email or password",
            "error_code": "INVALID_CREDENTIALS",
        }


class TestExceptionHandlers:
    """Test exception handlers registered on an app."""

    def _app(self):
        from portal.errors import ForbiddenError, register_exception_handlers

        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/forbidden")
        async def forbidden():
            raise ForbiddenError(detail="Only admins can do this")

        @app.get("/http")
        async def http():
            raise HTTPException(status_code=409, detail="clash")

        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaput")

        return app

    def test_api_error_handler(self):
        client = TestClient(self._app())
        res = client.get("/forbidden")
        assert res.status_code == 403
        assert res.json() == {"error": "forbidden", "detail": "Only admins can do this"}

    def test_http_exception_handler(self):
        client = TestClient(self._app())
        res = client.get("/http")
        assert res.status_code == 409
        assert res.json() == {"error": "conflict", "detail": "clash"}

    def test_general_exception_handler(self):
        """Unhandled errors become a generic 500 body."""
        client = TestClient(self._app(), raise_server_exceptions=False)
        res = client.get("/boom")
        assert res.status_code == 500
        assert res.json()["error"] == "internal_error"


class TestStatusMapping:
    def test_known_and_unknown(self):
        from portal.errors import _status_to_error_type

        assert _status_to_error_type(404) == "not_found"
        assert _status_to_error_type(503) == "service_unavailable"
        assert _status_to_error_type(418) == "error"
