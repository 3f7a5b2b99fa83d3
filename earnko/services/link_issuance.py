"""
Link Issuance Service
Normalizer -> Router -> Adapter -> Click Ledger, producing a share URL that
points at our redirect handler.

Modes:
    eager  deeplink built at issuance (click recorded first), stored on the link
    lazy   only the destination and provider are stored; the deeplink is built
           when the share URL is visited, around a freshly recorded click

Adapter calls go through build_deeplink(strict=...): strict flows propagate
adapter errors, redirect-time flows fall back to the plain destination.
"""
import logging
import secrets
import string
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from earnko import config
from earnko.core.errors import (
    OPERATIONAL_ERRORS,
    AffiliateError,
    ApprovalRequiredError,
    BadRequestError,
    NotFoundError,
    ProviderFailedError,
)
from earnko.core.provider_router import ProviderConfig, select_provider, select_provider_config
from earnko.core.url_normalizer import host_of, make_provider_safe, normalize, resolve_redirect_chain
from earnko.db.schemas.short_urls import ShortUrl
from earnko.db.schemas.users import UniqueLink
from earnko.integrations.network_adapters import NetworkAdapter
from earnko.services.click_ledger import ClickLedger
from earnko.services.notification_service import LoggingNotifier, Notifier
from earnko.utils.timezone import now_iso

logger = logging.getLogger(__name__)

_SLUG_ALPHABET = string.ascii_lowercase + string.digits
_CODE_ALPHABET = string.ascii_letters + string.digits


def random_token(length: int, alphabet: str = _SLUG_ALPHABET) -> str:
    return "".join(secrets.choice(alphabet) for _ in range(length))


@dataclass
class PreparedDestination:
    original_url: str
    normalized_url: str
    resolved_url: str
    destination_url: str
    provider: str
    provider_config: ProviderConfig


@dataclass
class RedirectTarget:
    url: str
    click_id: Optional[str] = None
    cookie_days: int = config.DEFAULT_COOKIE_DAYS
    fallback: bool = False


class LinkIssuanceService:
    def __init__(
        self,
        database: Database,
        adapters: Dict[str, NetworkAdapter],
        notifier: Optional[Notifier] = None,
        resolve_redirects: Callable[[str], str] = resolve_redirect_chain,
        suggest_campaigns: Optional[Callable[[str], List[Dict[str, Any]]]] = None,
        mode: str = config.LINK_MODE,
        backend_url: str = config.BACKEND_URL,
    ):
        self.users = database["users"]
        self.stores = database["stores"]
        self.products = database["products"]
        self.short_urls = database["short_urls"]
        self.clicks = ClickLedger(database)
        self.adapters = adapters
        self.notifier = notifier or LoggingNotifier()
        self.resolve_redirects = resolve_redirects
        self.suggest_campaigns = suggest_campaigns or self._cuelinks_suggestions
        self.mode = mode if mode in config.LINK_MODES else "lazy"
        self.backend_url = backend_url.rstrip("/")

    # ------------------------------------------------------------------
    # Destination & adapter invocation
    # ------------------------------------------------------------------

    def prepare_destination(self, raw_url: str) -> PreparedDestination:
        """Normalize, unwrap redirects, make provider-safe, pick the provider (fail closed)."""
        normalized = normalize(raw_url)

        resolved = normalized
        try:
            resolved = normalize(self.resolve_redirects(normalized))
        except BadRequestError:
            logger.warning(f"Redirect chain for {normalized} ended on an unusable URL, keeping original")
        except Exception as e:
            logger.warning(f"Redirect resolution failed for {normalized}: {e}")

        destination = make_provider_safe(resolved)
        provider = select_provider(destination)
        provider_config = select_provider_config(provider, destination)
        return PreparedDestination(
            original_url=str(raw_url).strip(),
            normalized_url=normalized,
            resolved_url=resolved,
            destination_url=destination,
            provider=provider,
            provider_config=provider_config,
        )

    def build_deeplink(
        self,
        provider: str,
        destination_url: str,
        click_id: str,
        provider_config: ProviderConfig,
        strict: bool = True,
    ) -> Optional[str]:
        """
        Single adapter invocation path.

        strict=True propagates adapter errors (approval_required enriched with
        campaign suggestions); strict=False logs and returns None so the caller
        can fall back to the destination URL.
        """
        try:
            adapter = self.adapters.get(provider)
            if adapter is None:
                raise ProviderFailedError(f"No adapter registered for {provider}", data={"provider": provider})
            return adapter.build_deeplink(destination_url, click_id, provider_config)
        except ApprovalRequiredError as e:
            if not strict:
                logger.warning(f"[{provider}] approval required for {e.host or host_of(destination_url)}, falling back")
                return None
            raise self._with_suggestions(e, destination_url) from e
        except AffiliateError as e:
            self._alert_if_operational(e, provider, destination_url)
            if strict:
                raise
            logger.warning(f"[{provider}] deeplink build failed ({e.code}), falling back to destination")
            return None
        except Exception:
            if strict:
                raise
            logger.exception(f"[{provider}] unexpected adapter failure, falling back to destination")
            return None

    def _with_suggestions(self, error: ApprovalRequiredError, destination_url: str) -> ApprovalRequiredError:
        host = error.host or host_of(destination_url)
        suggestions: List[Dict[str, Any]] = []
        try:
            suggestions = self.suggest_campaigns(host) if host else []
        except Exception as e:
            logger.warning(f"Campaign suggestion lookup failed for {host}: {e}")
        return ApprovalRequiredError(error.message, host=host, suggestions=suggestions)

    def _cuelinks_suggestions(self, host: str) -> List[Dict[str, Any]]:
        cuelinks = self.adapters.get("cuelinks")
        if cuelinks is None or not hasattr(cuelinks, "get_campaigns"):
            return []
        return cuelinks.get_campaigns(search_term=host, per_page=30)

    def _alert_if_operational(self, error: AffiliateError, provider: str, url: str) -> None:
        if not isinstance(error, OPERATIONAL_ERRORS):
            return
        logger.error(f"⚠️ [{provider}] {error.code}: {error.message}")
        self.notifier.alert(
            "CRITICAL",
            f"Affiliate setup gap: {error.code}",
            error.message,
            {"provider": provider, "host": host_of(url)},
        )

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def _new_slug(self) -> str:
        for _ in range(10):
            slug = random_token(8)
            if not self.users.find_one({"affiliate_info.unique_links.custom_slug": slug}, {"_id": 1}):
                return slug
        raise AffiliateError("Could not allocate a unique slug")

    def _new_short_code(self, slug: str, user_id: Optional[str], provider: str) -> str:
        for _ in range(10):
            code = random_token(config.SHORT_CODE_LENGTH, _CODE_ALPHABET)
            try:
                self.short_urls.insert_one(ShortUrl(code=code, slug=slug, user_id=user_id, provider=provider).model_dump())
                return code
            except DuplicateKeyError:
                continue
        raise AffiliateError("Could not allocate a unique short code")

    def share_url(self, slug: str) -> str:
        return f"{self.backend_url}/api/affiliate/redirect/{slug}"

    def issue_link(
        self,
        user_id: str,
        raw_url: str,
        store_id: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Produce {shareUrl, shortUrl, provider, slug, clickId, mode} for a user.

        clickId is only set in eager mode; lazy links mint theirs per visit.
        """
        mode = mode or self.mode
        if mode not in config.LINK_MODES:
            raise BadRequestError(f"Unknown link mode '{mode}'", data={"modes": list(config.LINK_MODES)})
        if not raw_url or not str(raw_url).strip():
            raise BadRequestError("url required")
        if not self.users.find_one({"user_id": user_id}, {"_id": 1}):
            raise NotFoundError(f"User {user_id} not found")

        try:
            prepared = self.prepare_destination(raw_url)
        except AffiliateError as e:
            self._alert_if_operational(e, "router", str(raw_url))
            raise

        slug = self._new_slug()
        metadata: Dict[str, Any] = {
            "provider": prepared.provider,
            "mode": mode,
            "original_url": prepared.original_url,
            "resolved_url": prepared.resolved_url,
            "destination_url": prepared.destination_url,
            "campaign_id": prepared.provider_config.campaign_id,
            "provider_config": prepared.provider_config.to_dict(),
        }

        click_id = None
        if mode == "eager":
            click = self.clicks.record_click(
                user_id=user_id,
                store_id=store_id,
                custom_slug=slug,
                metadata={k: v for k, v in metadata.items() if k != "provider_config"},
            )
            click_id = click["click_id"]
            try:
                generated = self.build_deeplink(
                    prepared.provider, prepared.destination_url, click_id, prepared.provider_config, strict=True
                )
            except AffiliateError as e:
                # No UniqueLink will point at this click
                self.clicks.mark_link_failed(click_id, e.code)
                raise
            self.clicks.attach_generated_link(click_id, generated)
            metadata["generated_link"] = generated
            metadata["click_id"] = click_id

        code = self._new_short_code(slug, user_id, prepared.provider)
        metadata["short_code"] = code

        link = UniqueLink(store_id=store_id, custom_slug=slug, metadata=metadata)
        self.users.update_one(
            {"user_id": user_id},
            {
                "$push": {"affiliate_info.unique_links": link.model_dump()},
                "$set": {"affiliate_info.is_affiliate": True},
            },
        )
        self.users.update_one(
            {"user_id": user_id, "affiliate_info.affiliate_since": None},
            {"$set": {"affiliate_info.affiliate_since": now_iso()}},
        )

        logger.info(f"🔗 Issued {mode} link {slug} via {prepared.provider} for {user_id}")
        return {
            "shareUrl": self.share_url(slug),
            "shortUrl": f"{self.backend_url}/r/{code}",
            "provider": prepared.provider,
            "slug": slug,
            "clickId": click_id,
            "mode": mode,
            "destinationUrl": prepared.destination_url,
        }

    def issue_links_bulk(
        self,
        user_id: str,
        urls: List[str],
        store_id: Optional[str] = None,
        mode: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Issue up to BULK_LINK_LIMIT links; per-item failures never abort the batch."""
        if not isinstance(urls, list) or not urls:
            raise BadRequestError("urls must be a non-empty list")
        if len(urls) > config.BULK_LINK_LIMIT:
            raise BadRequestError(
                f"At most {config.BULK_LINK_LIMIT} urls per request",
                data={"limit": config.BULK_LINK_LIMIT, "received": len(urls)},
            )

        results = []
        for index, url in enumerate(urls):
            try:
                data = self.issue_link(user_id, url, store_id=store_id, mode=mode)
                results.append({"index": index, "url": url, "success": True, "data": data})
            except AffiliateError as e:
                results.append({"index": index, "url": url, **e.to_response()})
            except Exception as e:
                logger.exception(f"Bulk link item {index} failed")
                results.append({"index": index, "url": url, "success": False, "code": "server_error", "message": str(e)})
        return results

    # ------------------------------------------------------------------
    # Click-time resolution
    # ------------------------------------------------------------------

    def _cookie_days(self, store_id: Optional[str]) -> int:
        store = self.stores.find_one({"store_id": store_id}, {"cookie_duration": 1}) if store_id else None
        return int((store or {}).get("cookie_duration") or config.DEFAULT_COOKIE_DAYS)

    def _count_store_click(self, store_id: Optional[str]) -> None:
        if store_id:
            self.stores.update_one({"store_id": store_id}, {"$inc": {"stats.total_clicks": 1}})

    def resolve_redirect(self, slug: str, visitor: Optional[Dict[str, Any]] = None) -> RedirectTarget:
        """
        Visit of a share URL: record a click, count it, pick the target.

        Raises NotFoundError for unknown slugs; adapter failures fall back to
        the destination URL.
        """
        user = self.users.find_one(
            {"affiliate_info.unique_links.custom_slug": slug},
            {"user_id": 1, "affiliate_info.unique_links": 1},
        )
        if not user:
            raise NotFoundError(f"Unknown link {slug}")
        link = next(
            (l for l in (user.get("affiliate_info") or {}).get("unique_links", []) if l.get("custom_slug") == slug),
            None,
        )
        if link is None:
            raise NotFoundError(f"Unknown link {slug}")

        meta = link.get("metadata") or {}
        store_id = link.get("store_id")
        provider = meta.get("provider") or config.DEFAULT_PROVIDER
        destination = meta.get("destination_url") or meta.get("resolved_url") or meta.get("original_url")
        if not destination:
            raise NotFoundError(f"Link {slug} has no destination")

        click = self.clicks.record_click(
            user_id=user["user_id"],
            store_id=store_id,
            custom_slug=slug,
            metadata={
                "provider": provider,
                "mode": meta.get("mode"),
                "destination_url": destination,
                "campaign_id": meta.get("campaign_id"),
            },
            **(visitor or {}),
        )
        self.users.update_one(
            {"user_id": user["user_id"], "affiliate_info.unique_links.custom_slug": slug},
            {"$inc": {"affiliate_info.unique_links.$.clicks": 1}},
        )
        self._count_store_click(store_id)

        target = meta.get("generated_link") if meta.get("mode") == "eager" else None
        if not target:
            target = self.build_deeplink(
                provider,
                destination,
                click["click_id"],
                ProviderConfig.from_dict(meta.get("provider_config")),
                strict=False,
            )
        fallback = not target
        target = target or destination
        self.clicks.attach_generated_link(click["click_id"], target)

        return RedirectTarget(
            url=target,
            click_id=click["click_id"],
            cookie_days=self._cookie_days(store_id),
            fallback=fallback,
        )

    def resolve_short_code(self, code: str) -> Optional[str]:
        doc = self.short_urls.find_one({"code": code}, {"slug": 1})
        return (doc or {}).get("slug")

    def product_click(self, product_id: str, visitor: Optional[Dict[str, Any]] = None) -> RedirectTarget:
        """Anonymous click on a catalog product; conversions on it credit nobody."""
        product = self.products.find_one({"product_id": product_id, "is_active": True})
        if not product:
            raise NotFoundError(f"Product {product_id} not found")

        store_id = product.get("store_id")
        try:
            prepared = self.prepare_destination(product["deeplink"])
            destination, provider, provider_config = (
                prepared.destination_url, prepared.provider, prepared.provider_config,
            )
        except AffiliateError as e:
            logger.warning(f"Product {product_id} destination unusable for providers ({e.code}), sending raw link")
            self._alert_if_operational(e, "router", product["deeplink"])
            destination, provider, provider_config = product["deeplink"], None, None

        click = self.clicks.record_click(
            user_id=None,
            store_id=store_id,
            product_id=product_id,
            metadata={
                "provider": provider,
                "destination_url": destination,
                "category_key": product.get("category_key") or None,
                "campaign_id": provider_config.campaign_id if provider_config else None,
            },
            **(visitor or {}),
        )
        self._count_store_click(store_id)

        target = None
        if provider:
            target = self.build_deeplink(provider, destination, click["click_id"], provider_config, strict=False)
        fallback = not target
        target = target or destination
        self.clicks.attach_generated_link(click["click_id"], target)

        return RedirectTarget(
            url=target,
            click_id=click["click_id"],
            cookie_days=self._cookie_days(store_id),
            fallback=fallback,
        )
