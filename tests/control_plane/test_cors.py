"""Unit tests for the CORS header helpers."""

from __future__ import annotations

from fastapi import Response

from deskgate.control_plane.cors import allowed_origin, apply_cors


def test_allowed_origin() -> None:
    assert allowed_origin("http://a.test", ["*"]) == "*"
    assert allowed_origin("http://a.test", ["http://a.test"]) == "http://a.test"
    assert allowed_origin("http://b.test", ["http://a.test"]) is None
    assert allowed_origin(None, ["http://a.test"]) is None


def test_vary_is_appended_once() -> None:
    response = Response(headers={"Vary": "Accept-Encoding"})
    apply_cors(response, "http://a.test", ["*"])
    assert response.headers["vary"] == "Accept-Encoding, Origin"

    apply_cors(response, "http://a.test", ["*"])
    assert response.headers["vary"] == "Accept-Encoding, Origin"


def test_vary_set_when_absent() -> None:
    response = apply_cors(Response(), None, ["http://a.test"])
    assert response.headers["vary"] == "Origin"
    assert "access-control-allow-origin" not in response.headers
