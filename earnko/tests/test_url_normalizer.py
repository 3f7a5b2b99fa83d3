"""
URL normalization, redirect unwrapping and provider-safe rewrites
"""
import pytest
import requests

from earnko.core.errors import BadRequestError
from earnko.core.url_normalizer import host_of, make_provider_safe, normalize, resolve_redirect_chain


class FakeResponse:
    def __init__(self, status_code, location=None):
        self.status_code = status_code
        self.headers = {"location": location} if location else {}

    def close(self):
        pass


class FakeSession:
    """Maps url -> (head response, get response)"""

    def __init__(self, routes):
        self.routes = routes
        self.gets = []

    def head(self, url, allow_redirects=False, timeout=None):
        if url not in self.routes:
            raise requests.ConnectionError(f"no route to {url}")
        return self.routes[url][0]

    def get(self, url, allow_redirects=False, timeout=None, stream=False):
        self.gets.append(url)
        return self.routes[url][1]


class TestNormalize:
    def test_adds_scheme_and_lowercases_host(self):
        assert normalize("  WWW.Amazon.IN/dp/B0ABCDEFGH ") == "https://www.amazon.in/dp/B0ABCDEFGH"

    def test_strips_default_port_and_embedded_whitespace(self):
        assert normalize("https://shop.example.com:443/a b?x=1&amp;y=2") == "https://shop.example.com/ab?x=1&y=2"

    def test_keeps_non_default_port(self):
        assert normalize("http://shop.example.com:8080/p") == "http://shop.example.com:8080/p"

    @pytest.mark.parametrize("raw", ["", None, "   ", "not a url", "ftp://files.example.com/x"])
    def test_rejects_unusable_input(self, raw):
        with pytest.raises(BadRequestError):
            normalize(raw)

    def test_host_of_drops_www(self):
        assert host_of("https://www.myntra.com/123") == "myntra.com"


class TestRedirectChain:
    def test_follows_relative_and_absolute_hops(self):
        session = FakeSession({
            "https://bit.ly/abc": (FakeResponse(301, "https://amzn.to/x"), None),
            "https://amzn.to/x": (FakeResponse(302, "/dp/B0ABCDEFGH"), None),
            "https://amzn.to/dp/B0ABCDEFGH": (FakeResponse(200), None),
        })
        assert resolve_redirect_chain("https://bit.ly/abc", session=session) == "https://amzn.to/dp/B0ABCDEFGH"

    def test_falls_back_to_get_when_head_refused(self):
        session = FakeSession({
            "https://s.example.com/q": (FakeResponse(405), FakeResponse(302, "https://www.ajio.com/p/1")),
            "https://www.ajio.com/p/1": (FakeResponse(200), None),
        })
        assert resolve_redirect_chain("https://s.example.com/q", session=session) == "https://www.ajio.com/p/1"
        assert session.gets == ["https://s.example.com/q"]

    def test_network_failure_keeps_last_known_url(self):
        session = FakeSession({"https://bit.ly/abc": (FakeResponse(301, "https://dead.example.com/"), None)})
        assert resolve_redirect_chain("https://bit.ly/abc", session=session) == "https://dead.example.com/"

    def test_hop_limit(self):
        session = FakeSession({
            "https://a.example.com/": (FakeResponse(302, "https://b.example.com/"), None),
            "https://b.example.com/": (FakeResponse(302, "https://a.example.com/"), None),
        })
        assert resolve_redirect_chain("https://a.example.com/", max_hops=3, session=session) == "https://b.example.com/"


class TestProviderSafe:
    def test_ajio_reduced_to_product_id(self):
        url = "https://www.ajio.com/men-shirt-%5Bslim%5D,blue/p/469581234_blue?utm=1"
        assert make_provider_safe(url) == "https://www.ajio.com/p/469581234_blue"

    def test_myntra_numeric_path(self):
        assert make_provider_safe("https://www.myntra.com/shirts/roadster/12345678/buy") == "https://www.myntra.com/12345678"

    def test_amazon_asin(self):
        assert make_provider_safe("https://www.amazon.in/Some-Thing/dp/B0ABCDEFGH/ref=sr_1?tag=x") == \
            "https://www.amazon.in/dp/B0ABCDEFGH"

    def test_flipkart_keeps_pid_and_lid_only(self):
        url = "https://www.flipkart.com/phone/p/itmabc123?pid=PX1&lid=L9&marketplace=FK"
        assert make_provider_safe(url) == "https://www.flipkart.com/phone/p/itmabc123?pid=PX1&lid=L9"

    def test_unknown_host_unchanged(self):
        url = "https://shop.example.com/item?id=4"
        assert make_provider_safe(url) == url
