"""
Cuelinks client
GET {base}/links.json builds a short/affiliate URL for a destination,
GET {base}/campaigns.json searches campaigns (used for approval suggestions).
Auth: `token` header per docs, with two legacy Authorization styles as fallbacks.
"""
import logging
from typing import Any, Dict, List, Optional

import requests

from earnko import config
from earnko.core.errors import (
    ApprovalRequiredError,
    ForbiddenError,
    InvalidCredentialsError,
    MissingAccountIdError,
    NoDeeplinkReturnedError,
)
from earnko.core.provider_router import ProviderConfig
from earnko.core.url_normalizer import host_of
from earnko.integrations.network_adapters import (
    NetworkAdapter,
    parse_json,
    raise_for_network_status,
)

logger = logging.getLogger(__name__)

# Response shapes seen across API versions, first match wins
SHORT_URL_PATHS = (
    ("short_url",), ("shortened_url",),
    ("link", "short_url"), ("link", "shortened_url"),
    ("data", "short_url"), ("data", "shortened_url"),
)
AFFILIATE_URL_PATHS = (("affiliate_url",), ("link", "affiliate_url"), ("data", "affiliate_url"))


def _dig(body: Any, path: tuple) -> Optional[str]:
    node = body
    for key in path:
        if not isinstance(node, dict):
            return None
        node = node.get(key)
    return node if isinstance(node, str) and node else None


def extract_link(body: Any) -> Optional[str]:
    for path in SHORT_URL_PATHS + AFFILIATE_URL_PATHS:
        link = _dig(body, path)
        if link:
            return link
    return None


class CuelinksAdapter(NetworkAdapter):
    name = "cuelinks"

    def __init__(self, session: Optional[requests.Session] = None, api_key: Optional[str] = None,
                 api_base: Optional[str] = None, **kwargs):
        super().__init__(session, **kwargs)
        self.api_key = config.CUELINKS_API_KEY if api_key is None else api_key
        self.api_base = (api_base or config.CUELINKS_API_BASE).rstrip("/")

    def _header_variants(self) -> List[Dict[str, str]]:
        if not self.api_key:
            raise MissingAccountIdError("Missing CUELINKS_API_KEY", data={"provider": self.name})
        base = {"Accept": "application/json"}
        return [
            {**base, "token": self.api_key},
            {**base, "Authorization": f"Token token={self.api_key}"},
            {**base, "Authorization": f"Bearer {self.api_key}"},
        ]

    def _get(self, path: str, params: Dict[str, Any], destination_url: str = "") -> Any:
        """GET with header fallbacks; only auth failures move on to the next variant."""
        last_auth_error = None
        for headers in self._header_variants():
            res = self.request("GET", f"{self.api_base}{path}", params=params, headers=headers)
            body = parse_json(res)
            logger.debug(f"[CUELINKS] {res.status_code} {path} resp={str(body)[:400]}")
            try:
                raise_for_network_status(self.name, res, body, destination_url)
            except (InvalidCredentialsError, ForbiddenError) as e:
                last_auth_error = e
                continue
            return body
        raise last_auth_error

    def build_deeplink(self, destination_url: str, click_id: str, config: ProviderConfig) -> str:
        params = {"url": destination_url, "shorten": "true", "subid": click_id}
        channel_id = config.extra.get("channel_id") if config else None
        if channel_id:
            params["channel_id"] = channel_id

        body = self._get("/links.json", params, destination_url)

        # Cuelinks answers 200 with an error message for unapproved campaigns
        if isinstance(body, dict) and body.get("message") and not extract_link(body):
            message = str(body["message"])
            if "approval" in message.lower():
                raise ApprovalRequiredError(message, host=host_of(destination_url))

        link = extract_link(body)
        if not link:
            raise NoDeeplinkReturnedError("Cuelinks: no short_url in response", data={"provider": self.name})
        return link

    def get_campaigns(self, search_term: str = "", page: int = 1, per_page: int = 30,
                      country_id: Optional[str] = None) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"page": page, "per_page": per_page}
        if search_term:
            params["search_term"] = search_term
        cid = country_id or config.CUELINKS_COUNTRY_ID
        if cid:
            params["country_id"] = cid

        body = self._get("/campaigns.json", params)
        if isinstance(body, dict):
            campaigns = body.get("campaigns") or body.get("data") or []
            return campaigns if isinstance(campaigns, list) else []
        return body if isinstance(body, list) else []
