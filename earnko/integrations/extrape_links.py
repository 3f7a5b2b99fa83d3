"""
Extrape (Flipkart) link builder
No API call: the affiliate link is the product URL with affid,
affExtParam1 and affExtParam2=<click id> set on the query string.
"""
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from earnko.core.errors import BadRequestError, MissingAccountIdError, UnsupportedDomainError
from earnko.core.provider_router import ProviderConfig
from earnko.core.url_normalizer import host_of
from earnko.integrations.network_adapters import NetworkAdapter


class ExtrapeAdapter(NetworkAdapter):
    name = "extrape"

    def build_deeplink(self, destination_url: str, click_id: str, config: ProviderConfig) -> str:
        if not destination_url or not click_id:
            raise BadRequestError("url and click id required")
        if not config or not config.account_id:
            raise MissingAccountIdError("Missing EXTRAPE_AFFID", data={"provider": self.name})

        try:
            parts = urlsplit(destination_url)
        except ValueError:
            raise BadRequestError(f"Invalid URL: {destination_url}")
        if not parts.scheme or not parts.netloc:
            raise BadRequestError(f"Invalid URL: {destination_url}")

        host = host_of(destination_url)
        if not (host == "flipkart.com" or host.endswith(".flipkart.com")):
            raise UnsupportedDomainError(
                "Extrape builder only supports flipkart.com",
                data={"host": host, "provider": self.name},
            )

        overrides = {"affid": config.account_id, "affExtParam2": click_id}
        if config.extra.get("aff_ext_param1"):
            overrides["affExtParam1"] = config.extra["aff_ext_param1"]

        query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k not in overrides]
        query.extend(overrides.items())
        return urlunsplit((parts.scheme, parts.netloc, parts.path or "/", urlencode(query), parts.fragment))
