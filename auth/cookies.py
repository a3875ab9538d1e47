"""
auth/cookies.py -- Cookie domain and registration origin resolution.

One backend serves several frontend tenants (bonus5.ru, rubonus.pro, ...).
The auth cookie has to be scoped to the registrable domain of whichever
frontend made the request, so every subdomain of that tenant shares the
session while other tenants never see it.

Origin is preferred; Referer is the fallback because some proxies strip
Origin on same-site requests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from urllib.parse import urlsplit

logger = logging.getLogger("bonusauth.auth")

_LOCAL_HOSTS = {"localhost", "127.0.0.1"}


def _host_of(value: str) -> str:
    """Extract the lowercase host from a URL; bare hosts pass through."""
    parts = urlsplit(value if "://" in value else f"//{value}")
    return (parts.hostname or value).lower()


def resolve_cookie_domain(
    origin: str | None,
    referer: str | None,
    allowed_domains: Iterable[str],
    fallback: str | None = None,
) -> str | None:
    """Return the cookie Domain attribute for a request.

    - localhost / 127.0.0.1 -> None (host-only cookie, no subdomain sharing)
    - host equal to or under an allowed domain -> ".<domain>"
    - no Origin/Referer, or an unknown host -> fallback
    """
    source = origin or referer
    if not source:
        logger.warning("No Origin or Referer header, using fallback cookie domain %s", fallback)
        return fallback

    host = _host_of(source)
    if host in _LOCAL_HOSTS:
        return None

    for domain in allowed_domains:
        domain = domain.lower().lstrip(".")
        if host == domain or host.endswith(f".{domain}"):
            logger.debug("Cookie domain resolved host=%s cookie_domain=.%s", host, domain)
            return f".{domain}"

    logger.warning("No allowed cookie domain matches host=%s source=%s", host, source)
    return fallback


def registration_domain(origin: str | None, referer: str | None, default: str) -> str:
    """Return the frontend origin a registration came from.

    Origin is taken verbatim. A Referer is reduced to scheme://host[:port],
    dropping the default ports. Without either, default (FRONTEND_URL).
    """
    if origin:
        return origin
    if referer:
        parts = urlsplit(referer)
        if parts.scheme and parts.hostname:
            domain = f"{parts.scheme}://{parts.hostname}"
            if parts.port and parts.port not in (80, 443):
                domain += f":{parts.port}"
            return domain
    return default
