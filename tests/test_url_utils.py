"""Tests for URL utilities."""

import pytest

from itest.url_utils import is_valid_url, sanitize_url


class TestIsValidUrl:
    @pytest.mark.parametrize("url", [
        "https://example.com",
        "http://localhost:3000/login",
        "https://example.com/path?q=1#frag",
    ])
    def test_valid(self, url):
        assert is_valid_url(url)

    @pytest.mark.parametrize("url", [
        "example.com",
        "ftp://example.com",
        "https://",
        "",
        "%LOGIN_URL%",
    ])
    def test_invalid(self, url):
        assert not is_valid_url(url)


class TestSanitizeUrl:
    def test_backtick_wrapped_prose(self):
        assert sanitize_url("`登录页面 https://example.com/login`") == "https://example.com/login"

    def test_quoted_url(self):
        assert sanitize_url('"https://example.com/a"') == "https://example.com/a"

    def test_url_inside_prose(self):
        assert sanitize_url("首页 https://example.com/home 这里") == "https://example.com/home"

    def test_plain_url_untouched(self):
        assert sanitize_url("https://example.com/x?y=1") == "https://example.com/x?y=1"

    def test_no_url_returned_unchanged(self):
        assert sanitize_url("登录页面") == "登录页面"
        assert sanitize_url("%LOGIN_URL%") == "%LOGIN_URL%"

    def test_empty_and_none(self):
        assert sanitize_url("") == ""
        assert sanitize_url(None) is None
