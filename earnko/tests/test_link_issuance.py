"""
Link issuance (lazy / eager / bulk) and click-time resolution
"""
import pytest

from conftest import create_product, create_store, create_user
from earnko import config
from earnko.core.errors import (
    ApprovalRequiredError,
    BadRequestError,
    MissingAccountIdError,
    MissingCampaignIdError,
    NotFoundError,
)
from earnko.services.link_issuance import LinkIssuanceService

AMAZON = "https://www.amazon.in/Echo-Dot/dp/B0ABCDEFGH?tag=someone"


@pytest.fixture
def service(database, adapters, notifier, no_redirects):
    create_user(database, "u1")
    create_store(database, "store_1", cookie_duration=15)
    return LinkIssuanceService(
        database,
        adapters,
        notifier=notifier,
        resolve_redirects=no_redirects,
        suggest_campaigns=lambda host: [{"id": 11, "name": f"{host} campaign"}],
        mode="lazy",
        backend_url="https://api.earnko.test/",
    )


def stored_link(database, slug):
    user = database["users"].find_one({"affiliate_info.unique_links.custom_slug": slug})
    return next(l for l in user["affiliate_info"]["unique_links"] if l["custom_slug"] == slug)


class TestIssueLink:
    def test_lazy_link_defers_the_adapter(self, service, database, adapters):
        data = service.issue_link("u1", AMAZON, store_id="store_1")

        assert data["mode"] == "lazy"
        assert data["provider"] == "cuelinks"
        assert data["clickId"] is None
        assert data["destinationUrl"] == "https://www.amazon.in/dp/B0ABCDEFGH"
        assert data["shareUrl"] == f"https://api.earnko.test/api/affiliate/redirect/{data['slug']}"
        assert data["shortUrl"].startswith("https://api.earnko.test/r/")
        assert adapters["cuelinks"].calls == []
        assert database["clicks"].count_documents({}) == 0

        link = stored_link(database, data["slug"])
        assert link["store_id"] == "store_1"
        assert link["metadata"]["original_url"] == AMAZON
        user = database["users"].find_one({"user_id": "u1"})
        assert user["affiliate_info"]["is_affiliate"] is True
        assert user["affiliate_info"]["affiliate_since"]

    def test_eager_link_records_click_first(self, service, database, adapters):
        data = service.issue_link("u1", AMAZON, mode="eager")

        call = adapters["cuelinks"].calls[0]
        assert call["click_id"] == data["clickId"]
        click = database["clicks"].find_one({"click_id": data["clickId"]})
        assert click["user_id"] == "u1"
        assert click["custom_slug"] == data["slug"]
        assert click["affiliate_link"] == f"https://go.cuelinks.test/out?sub={data['clickId']}"
        assert stored_link(database, data["slug"])["metadata"]["generated_link"] == click["affiliate_link"]

    def test_trackier_link_carries_campaign(self, service, database, adapters):
        data = service.issue_link("u1", "https://www.myntra.com/shirts/roadster/12345678/buy", mode="eager")
        assert data["provider"] == "trackier"
        assert adapters["trackier"].calls[0]["config"].campaign_id == "777"
        assert adapters["trackier"].calls[0]["url"] == "https://www.myntra.com/12345678"

    def test_missing_campaign_fails_closed_and_alerts(self, service, database, notifier, monkeypatch):
        monkeypatch.setattr(config, "TRACKIER_CAMPAIGNS", {})
        with pytest.raises(MissingCampaignIdError):
            service.issue_link("u1", "https://www.ajio.com/p/469581234_blue")
        assert notifier.alerts[0]["severity"] == "CRITICAL"
        assert database["short_urls"].count_documents({}) == 0

    def test_approval_required_comes_with_suggestions(self, service, adapters):
        adapters["cuelinks"].error = ApprovalRequiredError("Campaign needs approval", host="amazon.in")
        with pytest.raises(ApprovalRequiredError) as exc:
            service.issue_link("u1", AMAZON, mode="eager")
        assert exc.value.to_response()["data"] == {
            "host": "amazon.in",
            "suggestions": [{"id": 11, "name": "amazon.in campaign"}],
        }

    def test_eager_adapter_setup_gap_alerts(self, service, adapters, notifier):
        adapters["extrape"].error = MissingAccountIdError("Missing EXTRAPE_AFFID")
        with pytest.raises(MissingAccountIdError):
            service.issue_link("u1", "https://www.flipkart.com/phone/p/itmabc123?pid=PX1", mode="eager")
        assert notifier.alerts[0]["details"]["provider"] == "extrape"

    def test_eager_failure_flags_the_click(self, service, database, adapters):
        adapters["cuelinks"].error = ApprovalRequiredError("Campaign needs approval", host="amazon.in")
        with pytest.raises(ApprovalRequiredError):
            service.issue_link("u1", AMAZON, mode="eager")

        click = database["clicks"].find_one({})
        assert click["affiliate_link"] is None
        assert click["metadata"]["link_error"] == "approval_required"
        assert database["users"].find_one({"user_id": "u1"})["affiliate_info"]["unique_links"] == []

    @pytest.mark.parametrize("url", ["", "not a url", "javascript:alert(1)"])
    def test_bad_urls(self, service, url):
        with pytest.raises(BadRequestError):
            service.issue_link("u1", url)

    def test_unknown_mode(self, service):
        with pytest.raises(BadRequestError):
            service.issue_link("u1", AMAZON, mode="instant")

    def test_unknown_user(self, service):
        with pytest.raises(NotFoundError):
            service.issue_link("ghost", AMAZON)

    def test_redirects_are_unwrapped_before_routing(self, service, database):
        service.resolve_redirects = lambda url: "https://www.myntra.com/12345678"
        data = service.issue_link("u1", "https://bit.ly/short")
        assert data["provider"] == "trackier"
        assert stored_link(database, data["slug"])["metadata"]["resolved_url"] == "https://www.myntra.com/12345678"

    def test_redirect_failure_keeps_original(self, service):
        def broken(url):
            raise RuntimeError("dns")
        service.resolve_redirects = broken
        assert service.issue_link("u1", AMAZON)["destinationUrl"] == "https://www.amazon.in/dp/B0ABCDEFGH"


class TestBulk:
    def test_mixed_results(self, service):
        results = service.issue_links_bulk("u1", [AMAZON, "not a url"])
        assert [r["success"] for r in results] == [True, False]
        assert results[1]["code"] == "bad_request"
        assert results[1]["index"] == 1

    def test_limit(self, service):
        with pytest.raises(BadRequestError):
            service.issue_links_bulk("u1", [AMAZON] * 26)

    def test_empty(self, service):
        with pytest.raises(BadRequestError):
            service.issue_links_bulk("u1", [])


class TestResolveRedirect:
    def test_lazy_visit_builds_around_fresh_click(self, service, database, adapters):
        slug = service.issue_link("u1", AMAZON, store_id="store_1")["slug"]

        target = service.resolve_redirect(slug, {"ip_address": "1.2.3.4", "user_agent": "pytest"})

        assert target.url == f"https://go.cuelinks.test/out?sub={target.click_id}"
        assert target.cookie_days == 15
        assert not target.fallback
        click = database["clicks"].find_one({"click_id": target.click_id})
        assert (click["user_id"], click["custom_slug"], click["ip_address"]) == ("u1", slug, "1.2.3.4")
        assert click["affiliate_link"] == target.url
        assert stored_link(database, slug)["clicks"] == 1
        assert database["stores"].find_one({"store_id": "store_1"})["stats"]["total_clicks"] == 1

    def test_each_visit_gets_its_own_click(self, service):
        slug = service.issue_link("u1", AMAZON)["slug"]
        first = service.resolve_redirect(slug)
        second = service.resolve_redirect(slug)
        assert first.click_id != second.click_id
        assert first.cookie_days == config.DEFAULT_COOKIE_DAYS

    def test_adapter_failure_falls_back_to_destination(self, service, adapters):
        slug = service.issue_link("u1", AMAZON)["slug"]
        adapters["cuelinks"].error = ApprovalRequiredError("not approved", host="amazon.in")

        target = service.resolve_redirect(slug)

        assert target.url == "https://www.amazon.in/dp/B0ABCDEFGH"
        assert target.fallback

    def test_eager_visit_reuses_generated_link(self, service, adapters):
        data = service.issue_link("u1", AMAZON, mode="eager")
        target = service.resolve_redirect(data["slug"])
        assert target.url == f"https://go.cuelinks.test/out?sub={data['clickId']}"
        assert len(adapters["cuelinks"].calls) == 1

    def test_unknown_slug(self, service):
        with pytest.raises(NotFoundError):
            service.resolve_redirect("nope")

    def test_short_code(self, service):
        data = service.issue_link("u1", AMAZON)
        code = data["shortUrl"].rsplit("/", 1)[1]
        assert len(code) == config.SHORT_CODE_LENGTH
        assert service.resolve_short_code(code) == data["slug"]
        assert service.resolve_short_code("missing") is None


class TestProductClick:
    def test_anonymous_click_with_category(self, service, database, adapters):
        create_product(database, "prod_1", "store_1", "https://www.flipkart.com/phone/p/itmabc123?pid=PX1",
                       category_key="mobiles")

        target = service.product_click("prod_1")

        click = database["clicks"].find_one({"click_id": target.click_id})
        assert click["user_id"] is None
        assert click["product_id"] == "prod_1"
        assert click["metadata"]["category_key"] == "mobiles"
        assert adapters["extrape"].calls[0]["url"] == "https://www.flipkart.com/phone/p/itmabc123?pid=PX1"
        assert target.cookie_days == 15

    def test_unroutable_product_sends_raw_link(self, service, database, monkeypatch):
        monkeypatch.setattr(config, "TRACKIER_CAMPAIGNS", {})
        create_product(database, "prod_2", "store_1", "https://www.nykaa.com/lipstick/p/42")

        target = service.product_click("prod_2")

        assert target.url == "https://www.nykaa.com/lipstick/p/42"
        assert target.fallback

    def test_inactive_product(self, service, database):
        create_product(database, "prod_3", "store_1", "https://shop.example.com/x", is_active=False)
        with pytest.raises(NotFoundError):
            service.product_click("prod_3")
