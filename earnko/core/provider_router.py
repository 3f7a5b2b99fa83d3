"""
Provider Router
Maps a destination URL's host to an affiliate-network adapter and supplies the
network-specific configuration needed to build a deeplink. Fails closed: a
host that needs a campaign id and has none configured raises
MissingCampaignIdError instead of sending unattributed traffic.
"""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from earnko import config
from earnko.core.errors import MissingAccountIdError, MissingCampaignIdError
from earnko.core.url_normalizer import host_of


@dataclass
class ProviderConfig:
    campaign_id: Optional[str] = None
    account_id: Optional[str] = None
    extra: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"campaign_id": self.campaign_id, "account_id": self.account_id, "extra": dict(self.extra)}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ProviderConfig":
        data = data or {}
        return cls(
            campaign_id=data.get("campaign_id"),
            account_id=data.get("account_id"),
            extra=dict(data.get("extra") or {}),
        )


def _lookup_host(host: str, table: Dict[str, str]) -> Optional[str]:
    """Match the host itself, then each parent domain (m.myntra.com -> myntra.com)."""
    labels = host.split(".")
    for i in range(len(labels) - 1):
        candidate = ".".join(labels[i:])
        if candidate in table:
            return table[candidate]
    return None


def select_provider(url: str, hosts: Optional[Dict[str, str]] = None) -> str:
    """Pure function of the normalized host against the static host->provider table."""
    table = config.PROVIDER_HOSTS if hosts is None else hosts
    host = host_of(url)
    return _lookup_host(host, table) or config.DEFAULT_PROVIDER


def select_provider_config(
    provider: str,
    url: str,
    campaigns: Optional[Dict[str, str]] = None,
) -> ProviderConfig:
    """
    Network-specific configuration for `provider` and this URL.

    Raises:
        MissingCampaignIdError: trackier host without a configured campaign id
        MissingAccountIdError: extrape without an affiliate id
    """
    host = host_of(url)

    if provider == "trackier":
        table = config.TRACKIER_CAMPAIGNS if campaigns is None else campaigns
        campaign_id = _lookup_host(host, table)
        if not campaign_id:
            raise MissingCampaignIdError(
                f"Missing Trackier campaign id for {host}",
                data={"host": host, "provider": provider},
            )
        return ProviderConfig(campaign_id=campaign_id)

    if provider == "extrape":
        if not config.EXTRAPE_AFFID:
            raise MissingAccountIdError(
                "Missing EXTRAPE_AFFID",
                data={"host": host, "provider": provider},
            )
        extra = {"aff_ext_param1": config.EXTRAPE_AFF_EXT_PARAM1} if config.EXTRAPE_AFF_EXT_PARAM1 else {}
        return ProviderConfig(account_id=config.EXTRAPE_AFFID, extra=extra)

    return ProviderConfig()
