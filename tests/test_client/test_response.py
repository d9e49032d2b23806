"""Tests for Response variants and the response formatting bridge."""

from __future__ import annotations

from unittest.mock import MagicMock

import httpx

from fetchkit.client.response import SyntheticResponse, TransportResponse, format_api_response
from fetchkit.output import set_output


def _httpx_response(status_code: int = 200, **kwargs) -> httpx.Response:
    return httpx.Response(
        status_code=status_code,
        request=httpx.Request("GET", "https://api.example.com/test"),
        **kwargs,
    )


class TestTransportResponse:
    def test_exposes_status_headers_and_body(self) -> None:
        resp = TransportResponse(_httpx_response(201, json={"id": 1}, headers={"ETag": '"a"'}))
        assert resp.status_code == 201
        assert resp.ok
        assert resp.header("etag") == '"a"'
        assert resp.json() == {"id": 1}
        assert resp.raw.status_code == 201

    def test_missing_header_returns_default(self) -> None:
        resp = TransportResponse(_httpx_response())
        assert resp.header("x-missing") is None
        assert resp.header("x-missing", "fallback") == "fallback"


class TestSyntheticResponse:
    def test_json_sets_content_type(self) -> None:
        resp = SyntheticResponse(200, json={"a": 1})
        assert resp.header("Content-Type") == "application/json"
        assert resp.data == {"a": 1}

    def test_text_body(self) -> None:
        resp = SyntheticResponse(200, content="hello")
        assert resp.content == b"hello"
        assert resp.data == "hello"

    def test_empty_body_has_no_data(self) -> None:
        resp = SyntheticResponse(204)
        assert resp.data is None
        assert resp.ok

    def test_non_2xx_is_not_ok(self) -> None:
        assert not SyntheticResponse(503).ok
        assert repr(SyntheticResponse(503)) == "<SyntheticResponse [503]>"

    def test_snapshot_detaches_from_source(self) -> None:
        source = TransportResponse(
            _httpx_response(json={"id": 1}, headers=[("Set-Cookie", "a=1"), ("Set-Cookie", "b=2")])
        )
        snap = SyntheticResponse.snapshot(source)
        assert isinstance(snap, SyntheticResponse)
        assert snap.status_code == 200
        assert snap.json() == {"id": 1}
        assert snap.headers.get_list("set-cookie") == ["a=1", "b=2"]


class TestFormatApiResponse:
    def test_status_to_info_and_body_to_format_response(self) -> None:
        output = MagicMock()
        set_output(output)
        format_api_response(SyntheticResponse(200, json={"id": 1}))
        output.info.assert_called_once_with("HTTP 200")
        output.format_response.assert_called_once_with({"id": 1}, "application/json")

    def test_empty_body_prints_status_only(self) -> None:
        output = MagicMock()
        set_output(output)
        format_api_response(SyntheticResponse(204))
        output.info.assert_called_once_with("HTTP 204")
        output.format_response.assert_not_called()
