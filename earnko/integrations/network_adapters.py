"""
Affiliate Network Adapters
Each adapter exposes one capability: build a deeplink for (destination URL, click id).
Adapters never substitute the original URL on failure; they raise an
AffiliateError and the caller decides the fallback policy.
"""
import logging
from typing import Any, Dict, Optional

import requests

from earnko.config import ADAPTER_TIMEOUT
from earnko.core.errors import (
    ApprovalRequiredError,
    ForbiddenError,
    InvalidCredentialsError,
    ProviderFailedError,
)
from earnko.core.provider_router import ProviderConfig
from earnko.core.url_normalizer import host_of

logger = logging.getLogger(__name__)

_APPROVAL_MARKERS = ("needs approval", "not approved", "approval required", "pending approval")


def looks_like_approval_block(message: str) -> bool:
    msg = (message or "").lower()
    return any(marker in msg for marker in _APPROVAL_MARKERS)


def parse_json(res: requests.Response) -> Optional[Any]:
    try:
        return res.json() if res.content else None
    except ValueError:
        return None


def error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        return str(body.get("message") or body.get("error") or default)
    return default


def raise_for_network_status(provider: str, res: requests.Response, body: Any, destination_url: str) -> None:
    """Translate a non-2xx network response into the adapter error taxonomy."""
    if res.ok:
        return

    msg = error_message(body, f"{provider} error ({res.status_code})")
    if looks_like_approval_block(msg):
        raise ApprovalRequiredError(msg, host=host_of(destination_url))
    if res.status_code == 401:
        raise InvalidCredentialsError(msg, data={"provider": provider})
    if res.status_code == 403:
        raise ForbiddenError(msg, data={"provider": provider})
    raise ProviderFailedError(msg, data={"provider": provider, "status": res.status_code})


class NetworkAdapter:
    """Base adapter: subclasses implement build_deeplink"""

    name = "base"

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = ADAPTER_TIMEOUT):
        self.http = session or requests
        self.timeout = timeout

    def build_deeplink(self, destination_url: str, click_id: str, config: ProviderConfig) -> str:
        raise NotImplementedError

    def request(self, method: str, url: str, **kwargs) -> requests.Response:
        """Outbound call bounded by the adapter timeout; transport failures become provider_failed."""
        kwargs.setdefault("timeout", self.timeout)
        try:
            return self.http.request(method, url, **kwargs)
        except requests.Timeout:
            raise ProviderFailedError(f"{self.name} timed out", data={"provider": self.name})
        except requests.RequestException as e:
            raise ProviderFailedError(f"{self.name} unreachable: {e}", data={"provider": self.name})


def build_adapters(session: Optional[requests.Session] = None) -> Dict[str, NetworkAdapter]:
    """Adapter registry keyed by provider name (composition root owns the instance)."""
    from earnko.integrations.cuelinks_api import CuelinksAdapter
    from earnko.integrations.extrape_links import ExtrapeAdapter
    from earnko.integrations.trackier_api import TrackierAdapter

    adapters = [CuelinksAdapter(session), TrackierAdapter(session), ExtrapeAdapter()]
    return {adapter.name: adapter for adapter in adapters}
