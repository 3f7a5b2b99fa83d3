"""
Host -> provider routing and per-provider configuration
"""
import pytest

from earnko import config
from earnko.core.errors import MissingAccountIdError, MissingCampaignIdError
from earnko.core.provider_router import ProviderConfig, select_provider, select_provider_config


@pytest.mark.parametrize("url,provider", [
    ("https://www.flipkart.com/x/p/itm1", "extrape"),
    ("https://dl.flipkart.com/dl/x", "extrape"),
    ("https://www.myntra.com/12345", "trackier"),
    ("https://m.ajio.com/p/1", "trackier"),
    ("https://www.amazon.in/dp/B0ABCDEFGH", "cuelinks"),
    ("https://unknown.example.org/", "cuelinks"),
])
def test_select_provider(url, provider):
    assert select_provider(url) == provider


def test_trackier_config_uses_campaign_for_parent_domain():
    cfg = select_provider_config("trackier", "https://m.myntra.com/12345")
    assert cfg.campaign_id == "777"


def test_trackier_without_campaign_fails_closed(monkeypatch):
    monkeypatch.setattr(config, "TRACKIER_CAMPAIGNS", {})
    with pytest.raises(MissingCampaignIdError) as exc:
        select_provider_config("trackier", "https://www.nykaa.com/p/1")
    assert exc.value.data["host"] == "nykaa.com"


def test_extrape_requires_affid(monkeypatch):
    monkeypatch.setattr(config, "EXTRAPE_AFFID", "")
    with pytest.raises(MissingAccountIdError):
        select_provider_config("extrape", "https://www.flipkart.com/x")


def test_extrape_config_carries_ext_param(monkeypatch):
    monkeypatch.setattr(config, "EXTRAPE_AFF_EXT_PARAM1", "earnko")
    cfg = select_provider_config("extrape", "https://www.flipkart.com/x")
    assert cfg.account_id == "aff123"
    assert cfg.extra == {"aff_ext_param1": "earnko"}


def test_provider_config_survives_storage():
    cfg = ProviderConfig(campaign_id="5", extra={"channel_id": "9"})
    assert ProviderConfig.from_dict(cfg.to_dict()) == cfg
    assert ProviderConfig.from_dict(None) == ProviderConfig()
