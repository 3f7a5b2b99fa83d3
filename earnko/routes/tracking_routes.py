"""
Tracking Routes
Short codes and anonymous catalog product clicks.
"""
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import RedirectResponse

from earnko.core.errors import AffiliateError
from earnko.routes.affiliate_routes import attribution_redirect, fallback_redirect, visitor_info
from earnko.routes.dependencies import get_link_service
from earnko.services.link_issuance import LinkIssuanceService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Tracking"])


@router.get("/r/{code}")
def open_short_code(code: str, service: LinkIssuanceService = Depends(get_link_service)):
    """Short code -> share link redirect, so the click is tracked there"""
    try:
        slug = service.resolve_short_code(code)
    except Exception:
        logger.exception(f"Short code lookup failed for {code}")
        slug = None
    if not slug:
        return fallback_redirect()
    return RedirectResponse(service.share_url(slug), status_code=302)


@router.get("/api/products/{product_id}/go")
def open_product(
    product_id: str,
    request: Request,
    service: LinkIssuanceService = Depends(get_link_service),
):
    """Anonymous product click; the conversion is recorded but credits no wallet"""
    try:
        target = service.product_click(product_id, visitor_info(request))
    except AffiliateError as e:
        logger.warning(f"Product click {product_id} failed: {e.code} {e.message}")
        return fallback_redirect()
    except Exception:
        logger.exception(f"Product click {product_id} crashed")
        return fallback_redirect()
    return attribution_redirect(target)
