"""Tests for URL resolution and cache-key normalisation."""

from __future__ import annotations

import pytest

from offlinekit.urls import is_http_url, normalize_url, resolve_url


class TestResolve:
    def test_relative_against_base(self) -> None:
        assert resolve_url("/api/matches", "https://example.com") == "https://example.com/api/matches"

    def test_base_with_path(self) -> None:
        assert resolve_url("api/x", "https://example.com/app/") == "https://example.com/app/api/x"

    def test_absolute_unchanged(self) -> None:
        assert resolve_url("https://cdn.example.com/a.png", "https://example.com") == (
            "https://cdn.example.com/a.png"
        )

    def test_no_base_unchanged(self) -> None:
        assert resolve_url("/api/matches") == "/api/matches"


class TestNormalize:
    @pytest.mark.parametrize(
        "url,expected",
        [
            ("HTTPS://Example.COM/a", "https://example.com/a"),
            ("https://example.com:443/a", "https://example.com/a"),
            ("http://example.com:80/a", "http://example.com/a"),
            ("https://example.com:8443/a", "https://example.com:8443/a"),
            ("https://example.com/a#section", "https://example.com/a"),
            ("https://example.com", "https://example.com/"),
            ("https://example.com/a?b=2&a=1", "https://example.com/a?b=2&a=1"),
        ],
    )
    def test_normalize(self, url, expected) -> None:
        assert normalize_url(url) == expected

    def test_relative_uses_base(self) -> None:
        assert normalize_url("/offline", "https://Example.com") == "https://example.com/offline"


def test_is_http_url() -> None:
    assert is_http_url("https://example.com")
    assert is_http_url("HTTP://example.com")
    assert not is_http_url("chrome-extension://abc/x.js")
    assert not is_http_url("/relative")
