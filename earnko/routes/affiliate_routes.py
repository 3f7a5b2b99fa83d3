"""
Affiliate Link Routes
Issue share links (single and bulk) and resolve share-link visits.
"""
import logging
from typing import Any, Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from earnko.config import ATTRIBUTION_COOKIE_NAME, FRONTEND_URL
from earnko.core.errors import AffiliateError
from earnko.middleware.auth import get_current_user
from earnko.routes.dependencies import get_link_service
from earnko.services.link_issuance import LinkIssuanceService, RedirectTarget

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/affiliate", tags=["Affiliate"])


class IssueLinkRequest(BaseModel):
    """Create a share link for a pasted merchant URL"""
    url: str
    store_id: Optional[str] = Field(default=None, alias="storeId")
    mode: Optional[Literal["lazy", "eager"]] = None

    class Config:
        populate_by_name = True


class BulkIssueLinkRequest(BaseModel):
    urls: List[str]
    store_id: Optional[str] = Field(default=None, alias="storeId")
    mode: Optional[Literal["lazy", "eager"]] = None

    class Config:
        populate_by_name = True


def visitor_info(request: Request) -> Dict[str, Optional[str]]:
    forwarded = request.headers.get("x-forwarded-for", "")
    ip = forwarded.split(",")[0].strip() if forwarded else (request.client.host if request.client else None)
    return {
        "ip_address": ip,
        "user_agent": request.headers.get("user-agent"),
        "referrer": request.headers.get("referer"),
    }


def attribution_redirect(target: RedirectTarget) -> RedirectResponse:
    """302 to the target with the click id cookie scoped to the store's cookie duration"""
    response = RedirectResponse(target.url, status_code=302)
    if target.click_id:
        response.set_cookie(
            ATTRIBUTION_COOKIE_NAME,
            target.click_id,
            max_age=int(target.cookie_days) * 24 * 60 * 60,
            httponly=True,
            samesite="lax",
        )
    return response


def fallback_redirect() -> RedirectResponse:
    return RedirectResponse(FRONTEND_URL, status_code=302)


@router.post("/links")
def issue_link(
    body: IssueLinkRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: LinkIssuanceService = Depends(get_link_service),
):
    """
    Generate a trackable share link.

    Errors come back as {success: false, code, message, data?}; approval_required
    carries {host, suggestions}.
    """
    data = service.issue_link(user["user_id"], body.url, store_id=body.store_id, mode=body.mode)
    return {"success": True, "data": data}


@router.post("/links/bulk")
def issue_links_bulk(
    body: BulkIssueLinkRequest,
    user: Dict[str, Any] = Depends(get_current_user),
    service: LinkIssuanceService = Depends(get_link_service),
):
    """Up to 25 URLs; each result succeeds or fails on its own"""
    results = service.issue_links_bulk(user["user_id"], body.urls, store_id=body.store_id, mode=body.mode)
    succeeded = sum(1 for r in results if r.get("success"))
    return {
        "success": True,
        "data": {"results": results, "succeeded": succeeded, "failed": len(results) - succeeded},
    }


@router.get("/redirect/{slug}")
def redirect_by_slug(
    slug: str,
    request: Request,
    service: LinkIssuanceService = Depends(get_link_service),
):
    """Visitor follows a share link. Always answers with a redirect."""
    try:
        target = service.resolve_redirect(slug, visitor_info(request))
    except AffiliateError as e:
        logger.warning(f"Redirect for {slug} failed: {e.code} {e.message}")
        return fallback_redirect()
    except Exception:
        logger.exception(f"Redirect for {slug} crashed")
        return fallback_redirect()

    if target.fallback:
        logger.warning(f"Redirect for {slug} fell back to the destination URL")
    return attribution_redirect(target)
