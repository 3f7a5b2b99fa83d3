"""
Affiliate Network Postback Handler
==================================

GET|POST /api/webhooks/{network} for cuelinks, extrape, trackier, realcash.
Query and body parameters are merged (body wins). Safe to call repeatedly
with identical payloads.

Responses:
    200 {success, data: {orderId, status, transactionId}}
    400 missing click id / order id
    404 unknown click id or unknown network
    409 unsupported status transition
    500 unexpected failure (message surfaced)
"""
import json
import logging
from typing import Any, Dict
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from earnko.core.errors import AffiliateError
from earnko.routes.dependencies import get_ingester
from earnko.services.webhook_ingester import WebhookIngester

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])


async def merged_params(request: Request) -> Dict[str, Any]:
    """Query parameters overlaid with a JSON or urlencoded body"""
    params: Dict[str, Any] = dict(request.query_params)
    raw = await request.body()
    if not raw:
        return params

    content_type = request.headers.get("content-type", "")
    if "json" in content_type:
        try:
            body = json.loads(raw)
        except ValueError:
            logger.warning("Postback body is not valid JSON, using query parameters only")
            return params
        if isinstance(body, dict):
            params.update(body)
    elif "x-www-form-urlencoded" in content_type:
        params.update(dict(parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True)))
    return params


@router.api_route("/{network}", methods=["GET", "POST"])
async def receive_postback(
    network: str,
    request: Request,
    ingester: WebhookIngester = Depends(get_ingester),
):
    payload = await merged_params(request)
    headers = dict(request.headers)

    try:
        data = await run_in_threadpool(ingester.ingest, network, payload, headers)
    except AffiliateError as e:
        return JSONResponse(status_code=e.status_code, content=e.to_response())
    except Exception as e:
        return JSONResponse(
            status_code=500,
            content={"success": False, "code": "server_error", "message": str(e) or "Server error"},
        )

    return {"success": True, "data": data}
