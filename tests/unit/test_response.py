"""
Unit tests for HTTP response building.
"""

from datetime import datetime, timedelta, timezone

import pytest

from devsrv.http.response import (
    HTTPResponse,
    ResponseBuilder,
    error_response,
    format_http_date,
    method_not_allowed,
    not_found,
    forbidden,
    internal_error,
)
from devsrv.http.status_codes import HTTPStatus
from devsrv.http.mime_types import get_content_type, get_mime_type, is_text_type


class TestHTTPResponse:
    """Tests for HTTPResponse class."""

    def test_to_bytes_basic(self):
        """Test basic response serialization."""
        response = HTTPResponse(status=HTTPStatus.OK, body=b"Hello")
        raw = response.to_bytes()

        assert raw.startswith(b"HTTP/1.1 200 OK\r\n")
        assert b"Content-Length: 5\r\n" in raw
        assert b"Server: dev-srv\r\n" in raw
        assert b"Date: " in raw
        assert raw.endswith(b"\r\n\r\nHello")

    def test_to_bytes_without_body(self):
        """HEAD keeps Content-Length but sends no body."""
        response = HTTPResponse(status=HTTPStatus.OK, body=b"Hello")
        raw = response.to_bytes(include_body=False)

        assert b"Content-Length: 5\r\n" in raw
        assert raw.endswith(b"\r\n\r\n")
        assert b"Hello" not in raw

    def test_explicit_headers_win(self):
        response = HTTPResponse(
            status=HTTPStatus.NOT_MODIFIED,
            headers={"Content-Length": "0", "Server": "custom"},
        )
        raw = response.to_bytes(server_name="dev-srv/1.0.0")

        assert raw.startswith(b"HTTP/1.1 304 Not Modified\r\n")
        assert b"Server: custom\r\n" in raw
        assert raw.count(b"Content-Length") == 1

    def test_set_header_chains(self):
        response = HTTPResponse().set_header("X-A", "1").set_header("X-B", "2")

        assert response.headers == {"X-A": "1", "X-B": "2"}

    def test_status_line(self):
        assert HTTPResponse(status=HTTPStatus.NOT_FOUND).status_line == "HTTP/1.1 404 Not Found"


class TestResponseBuilder:
    """Tests for ResponseBuilder class."""

    def test_builder_chain(self):
        """Test fluent builder pattern."""
        response = (ResponseBuilder()
            .status(HTTPStatus.OK)
            .content_type("text/css; charset=utf-8")
            .header("ETag", '"1-2"')
            .body("body {}")
            .build())

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Type"] == "text/css; charset=utf-8"
        assert response.headers["ETag"] == '"1-2"'
        assert response.body == b"body {}"

    def test_headers_bulk(self):
        response = ResponseBuilder().headers({"A": "1", "B": "2"}).build()

        assert response.headers == {"A": "1", "B": "2"}

    def test_text_and_html(self):
        text = ResponseBuilder().text("héllo").build()
        html = ResponseBuilder().html("<p>hi</p>").build()

        assert text.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert text.body == "héllo".encode("utf-8")
        assert html.headers["Content-Type"] == "text/html; charset=utf-8"

    def test_redirect(self):
        permanent = ResponseBuilder().redirect("/docs/", permanent=True).build()
        temporary = ResponseBuilder().redirect("/elsewhere").build()

        assert permanent.status == HTTPStatus.MOVED_PERMANENTLY
        assert permanent.headers["Location"] == "/docs/"
        assert temporary.status == HTTPStatus.FOUND

    def test_close_connection(self):
        response = ResponseBuilder().close_connection().build()

        assert response.headers["Connection"] == "close"


class TestErrorResponses:
    """Tests for the plain-text error helpers."""

    def test_not_found(self):
        response = not_found()

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b"404 page not found\n"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"

    def test_forbidden_and_internal(self):
        assert forbidden().body == b"403 forbidden\n"
        assert internal_error().status == HTTPStatus.INTERNAL_SERVER_ERROR

    def test_default_message_uses_phrase(self):
        response = error_response(HTTPStatus.SERVICE_UNAVAILABLE)

        assert response.body == b"503 service unavailable\n"

    def test_method_not_allowed_sets_allow(self):
        response = method_not_allowed(["GET", "HEAD", "OPTIONS"])

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD, OPTIONS"


class TestHTTPDate:
    def test_format(self):
        dt = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

        assert format_http_date(dt) == "Thu, 01 Jan 2026 12:00:00 GMT"

    def test_aware_datetime_converted_to_gmt(self):
        dt = datetime(2026, 1, 1, 14, 30, 5, tzinfo=timezone(timedelta(hours=2)))

        assert format_http_date(dt) == "Thu, 01 Jan 2026 12:30:05 GMT"


class TestHTTPStatus:
    """Tests for HTTPStatus enum."""

    def test_phrases(self):
        assert HTTPStatus.OK.phrase == "OK"
        assert HTTPStatus.MOVED_PERMANENTLY.phrase == "Moved Permanently"
        assert HTTPStatus.NOT_MODIFIED.phrase == "Not Modified"

    def test_parse_error_codes_are_members(self):
        """Every status a parse error can carry maps to a member."""
        for code in (400, 405, 413, 505):
            assert HTTPStatus(code) == code


class TestMimeTypes:
    @pytest.mark.parametrize("name, expected", [
        ("index.html", "text/html; charset=utf-8"),
        ("site.CSS", "text/css; charset=utf-8"),
        ("app.js", "text/javascript; charset=utf-8"),
        ("data.json", "application/json; charset=utf-8"),
        ("logo.svg", "image/svg+xml; charset=utf-8"),
        ("logo.png", "image/png"),
        ("font.woff2", "font/woff2"),
    ])
    def test_content_type(self, name, expected):
        assert get_content_type(name) == expected

    def test_unknown_extension(self):
        assert get_mime_type("blob.devsrv-unknown") == "application/octet-stream"
        assert get_mime_type("blob.devsrv-unknown", default="text/plain") == "text/plain"

    def test_is_text_type(self):
        assert is_text_type("text/markdown")
        assert not is_text_type("image/png")
