"""
URL Normalizer
Cleans pasted merchant URLs, unwraps short/app links and rewrites vendor URL
shapes that are known to break a provider's own query-string wrapping.

Stages:
    normalize(raw)               -> canonical URL or BadRequestError
    resolve_redirect_chain(url)  -> final URL (best effort, never raises)
    make_provider_safe(url)      -> URL rebuilt from a per-host rule table
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

import requests

from earnko.config import REDIRECT_HOP_TIMEOUT, REDIRECT_MAX_HOPS
from earnko.core.errors import BadRequestError

logger = logging.getLogger(__name__)

_CONTROL_OR_SPACE = re.compile(r"[\s\x00-\x1f\x7f\u00a0\u200b-\u200d\ufeff]+")
_HAS_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")
_DEFAULT_PORTS = {"http": 80, "https": 443}

# Statuses on which some shorteners refuse HEAD but answer GET
_HEAD_REFUSED = {400, 403, 405}


def sanitize_pasted_url(raw: Optional[str]) -> str:
    """Trim, drop embedded whitespace/control characters, decode &amp;, ensure a scheme."""
    if raw is None:
        return ""
    s = _CONTROL_OR_SPACE.sub("", str(raw).strip())
    s = re.sub(r"&amp;", "&", s, flags=re.IGNORECASE)
    if s and not _HAS_SCHEME.match(s):
        s = f"https://{s}"
    return s


def normalize(raw: Optional[str]) -> str:
    """
    Canonicalize a pasted URL.

    Lowercases scheme and host, drops default ports, keeps path/query/fragment.
    Raises BadRequestError for anything that is not an absolute http(s) URL.
    """
    s = sanitize_pasted_url(raw)
    if not s:
        raise BadRequestError("URL required")

    try:
        parts = urlsplit(s)
        port = parts.port
    except ValueError:
        raise BadRequestError(f"Invalid URL: {raw}")

    scheme = parts.scheme.lower()
    host = (parts.hostname or "").lower()
    if scheme not in _DEFAULT_PORTS or not host or ("." not in host and host != "localhost"):
        raise BadRequestError(f"Invalid URL: {raw}")

    netloc = host
    if port and port != _DEFAULT_PORTS[scheme]:
        netloc = f"{host}:{port}"
    if parts.username:
        creds = parts.username + (f":{parts.password}" if parts.password else "")
        netloc = f"{creds}@{netloc}"

    return urlunsplit((scheme, netloc, parts.path or "/", parts.query, parts.fragment))


def host_of(url: str) -> str:
    """Lowercase host without a leading www."""
    try:
        host = (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""
    return host[4:] if host.startswith("www.") else host


def is_http_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    return parts.scheme in _DEFAULT_PORTS and bool(parts.netloc)


def _next_location(response: requests.Response, current: str) -> Optional[str]:
    if 300 <= response.status_code < 400:
        location = response.headers.get("location")
        if location:
            return urljoin(current, location)
    return None


def resolve_redirect_chain(
    url: str,
    max_hops: int = REDIRECT_MAX_HOPS,
    timeout: float = REDIRECT_HOP_TIMEOUT,
    session: Optional[requests.Session] = None,
) -> str:
    """
    Follow redirects hop by hop to unwrap short/app links (bit.ly, app shortlinks).

    HEAD first, GET when the server refuses HEAD. Any network failure or
    timeout returns the last known URL instead of failing.
    """
    if not is_http_url(url):
        return url

    http = session or requests
    current = url
    for _ in range(max_hops):
        try:
            res = http.head(current, allow_redirects=False, timeout=timeout)
            nxt = _next_location(res, current)
            if nxt is None and res.status_code in _HEAD_REFUSED:
                res = http.get(current, allow_redirects=False, timeout=timeout, stream=True)
                res.close()
                nxt = _next_location(res, current)
        except requests.RequestException as e:
            logger.warning(f"Redirect resolution stopped at {current}: {e}")
            return current

        if nxt is None:
            return current
        current = nxt

    logger.warning(f"Redirect chain exceeded {max_hops} hops, keeping {current}")
    return current


# ============================================================================
# PROVIDER-SAFE REWRITES
# ============================================================================

@dataclass(frozen=True)
class ProviderSafeRule:
    """
    Rebuild a merchant URL from an extracted product id.

    `template` is formatted with `scheme`, `host` and `id`; only the query keys
    listed in `keep_query` survive the rewrite.
    """
    host_suffix: str
    pattern: re.Pattern
    template: str
    keep_query: Tuple[str, ...] = ()


PROVIDER_SAFE_RULES: Tuple[ProviderSafeRule, ...] = (
    # Long AJIO slugs carry %, commas and brackets that corrupt Trackier's url= wrapping
    ProviderSafeRule("ajio.com", re.compile(r"/p/([0-9]+(?:_[A-Za-z0-9]+)?)"), "{scheme}://www.ajio.com/p/{id}"),
    # Myntra resolves any /<numeric id> path to the product page
    ProviderSafeRule("myntra.com", re.compile(r"/([0-9]{5,})(?:/buy)?/?$"), "{scheme}://www.myntra.com/{id}"),
    # Amazon product pages reduce to /dp/<ASIN>
    ProviderSafeRule("amazon.in", re.compile(r"/(?:dp|gp/product)/([A-Z0-9]{10})"), "{scheme}://www.amazon.in/dp/{id}"),
    # Flipkart keeps the item path, only pid/lid matter in the query
    ProviderSafeRule(
        "flipkart.com",
        re.compile(r"(/[^?#]*/p/itm[A-Za-z0-9]+)"),
        "{scheme}://www.flipkart.com{id}",
        keep_query=("pid", "lid"),
    ),
)


def _matches_host(host: str, suffix: str) -> bool:
    return host == suffix or host.endswith(f".{suffix}")


def make_provider_safe(url: str, rules: Tuple[ProviderSafeRule, ...] = PROVIDER_SAFE_RULES) -> str:
    """Apply the first matching host rule; URLs without a rule pass through unchanged."""
    host = host_of(url)
    if not host:
        return url

    parts = urlsplit(url)
    for rule in rules:
        if not _matches_host(host, rule.host_suffix):
            continue
        match = rule.pattern.search(parts.path)
        if not match:
            continue
        rebuilt = rule.template.format(scheme=parts.scheme or "https", host=host, id=match.group(1))
        if rule.keep_query:
            kept = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k in rule.keep_query]
            if kept:
                rebuilt = f"{rebuilt}?{urlencode(kept)}"
        return rebuilt

    return url
