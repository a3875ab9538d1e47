"""Unit tests for auth/cookies.py -- per-tenant cookie domain and registration origin."""

import pytest

from auth.cookies import registration_domain, resolve_cookie_domain

ALLOWED = ["bonus5.ru", "rubonus.pro", "bonus.band", "mebelmobile.ru"]


class TestResolveCookieDomain:
    @pytest.mark.parametrize(
        "origin, expected",
        [
            ("https://bonus5.ru", ".bonus5.ru"),
            ("https://auth.bonus5.ru", ".bonus5.ru"),
            ("https://www.rubonus.pro", ".rubonus.pro"),
            ("https://admin.bonus.band:8443", ".bonus.band"),
            ("https://MEBELMOBILE.ru", ".mebelmobile.ru"),
        ],
    )
    def test_allowed_hosts(self, origin, expected):
        assert resolve_cookie_domain(origin, None, ALLOWED) == expected

    @pytest.mark.parametrize("origin", ["http://localhost:5173", "http://127.0.0.1:5137", "http://localhost"])
    def test_local_development_is_host_only(self, origin):
        assert resolve_cookie_domain(origin, None, ALLOWED, fallback=".fallback.test") is None

    def test_referer_used_when_origin_missing(self):
        assert resolve_cookie_domain(None, "https://auth.rubonus.pro/register?ref=abc", ALLOWED) == ".rubonus.pro"

    def test_origin_wins_over_referer(self):
        assert resolve_cookie_domain("https://bonus.band", "https://bonus5.ru/x", ALLOWED) == ".bonus.band"

    def test_no_headers_uses_fallback(self):
        assert resolve_cookie_domain(None, None, ALLOWED, fallback=".session.test") == ".session.test"

    def test_unknown_host_uses_fallback(self):
        assert resolve_cookie_domain("https://example.org", None, ALLOWED) is None
        assert resolve_cookie_domain("https://example.org", None, ALLOWED, fallback=".x.test") == ".x.test"

    def test_suffix_must_be_a_label_boundary(self):
        """evilbonus5.ru is not a subdomain of bonus5.ru."""
        assert resolve_cookie_domain("https://evilbonus5.ru", None, ALLOWED) is None


class TestRegistrationDomain:
    def test_origin_verbatim(self):
        assert registration_domain("https://bonus5.ru", "https://other.test/a", "http://default") == "https://bonus5.ru"

    def test_referer_reduced_to_origin(self):
        assert registration_domain(None, "https://rubonus.pro/signup?ref=1", "http://default") == "https://rubonus.pro"

    def test_referer_keeps_non_default_port(self):
        assert registration_domain(None, "http://localhost:5173/register", "http://default") == "http://localhost:5173"

    def test_referer_drops_default_port(self):
        assert registration_domain(None, "https://bonus.band:443/register", "http://default") == "https://bonus.band"

    def test_default(self):
        assert registration_domain(None, None, "http://localhost:5040") == "http://localhost:5040"
        assert registration_domain(None, "not a url", "http://localhost:5040") == "http://localhost:5040"
