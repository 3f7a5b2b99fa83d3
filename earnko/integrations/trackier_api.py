"""
Trackier publisher client
POST {base}/v2/publishers/bulk-deeplink with X-Api-Key auth.
Our click id rides in adnParams.p1 and comes back as p1 on the postback.
"""
import logging
from typing import Any, Optional
from urllib.parse import parse_qsl, quote, urlencode, urlsplit

import requests

from earnko import config
from earnko.core.errors import (
    BadRequestError,
    MissingAccountIdError,
    MissingCampaignIdError,
    NoDeeplinkReturnedError,
)
from earnko.core.provider_router import ProviderConfig
from earnko.core.url_normalizer import host_of, sanitize_pasted_url
from earnko.integrations.network_adapters import (
    NetworkAdapter,
    parse_json,
    raise_for_network_status,
)

logger = logging.getLogger(__name__)

# Known VCommission click parameters; anything else is debris from a broken url= value
VCOMMISSION_ALLOWED_KEYS = frozenset({
    "campaign_id", "campaignId", "pub_id",
    "click_id", "clickid", "cid",
    "txn_id", "txnid", "transaction_id", "order_id", "orderid",
    "sale_amount", "amount", "payout", "currency",
    "conversion_status", "status",
    "p1", "p2", "p3", "p4", "p5",
})


def repair_vcommission_click_url(click_url: str) -> str:
    """
    Rebuild a VCommission click URL with a strictly encoded url= parameter.

    Trackier sometimes hands back click URLs whose destination was not
    encoded, so fragments of the merchant slug show up as extra query keys.
    Non-VCommission URLs are returned as-is.
    """
    s = sanitize_pasted_url(click_url)
    host = host_of(s)
    if not (host == "vcommission.com" or host.endswith(".vcommission.com")):
        return s

    parts = urlsplit(s)
    pairs = parse_qsl(parts.query, keep_blank_values=True)
    dest = next((v for k, v in pairs if k == "url"), None)
    if not dest:
        return s

    kept = [(k, v) for k, v in pairs if k != "url" and k in VCOMMISSION_ALLOWED_KEYS]
    encoded_dest = quote(sanitize_pasted_url(dest), safe="")
    query = f"{urlencode(kept)}&url={encoded_dest}" if kept else f"url={encoded_dest}"
    return f"{parts.scheme}://{parts.netloc}{parts.path}?{query}"


class TrackierAdapter(NetworkAdapter):
    name = "trackier"

    def __init__(self, session: Optional[requests.Session] = None, api_key: Optional[str] = None,
                 api_base: Optional[str] = None, **kwargs):
        super().__init__(session, **kwargs)
        self.api_key = config.TRACKIER_API_KEY if api_key is None else api_key
        self.api_base = (api_base or config.TRACKIER_API_BASE).rstrip("/")

    def build_deeplink(self, destination_url: str, click_id: str, config: ProviderConfig) -> str:
        if not destination_url:
            raise BadRequestError("url required")
        if not config or not config.campaign_id:
            raise MissingCampaignIdError(
                "Missing Trackier campaign id for this domain",
                data={"host": host_of(destination_url), "provider": self.name},
            )
        if not self.api_key:
            raise MissingAccountIdError("Missing TRACKIER_API_KEY", data={"provider": self.name})

        payload = {
            "deeplinks": [{"url": destination_url, "campaignIds": [str(config.campaign_id)]}],
            "encodeURL": False,
            "adnParams": {"p1": click_id},
        }
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Api-Key": self.api_key,
        }

        res = self.request("POST", f"{self.api_base}/v2/publishers/bulk-deeplink", json=payload, headers=headers)
        body = parse_json(res)
        logger.debug(f"[TRACKIER] {res.status_code} resp={str(body)[:400]}")
        raise_for_network_status(self.name, res, body, destination_url)

        link = self._first_deeplink(body)
        if not link:
            raise NoDeeplinkReturnedError("Trackier did not return a deeplink", data={"provider": self.name})
        return repair_vcommission_click_url(link)

    @staticmethod
    def _first_deeplink(body: Any) -> Optional[str]:
        if not isinstance(body, dict):
            return None
        deeplinks = body.get("deeplinks")
        if not isinstance(deeplinks, list) or not deeplinks:
            return None
        first = deeplinks[0]
        url = first.get("url") if isinstance(first, dict) else None
        return url or None
