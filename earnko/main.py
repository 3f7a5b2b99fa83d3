import logging
import os

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from earnko.config import LOG_LEVEL
from earnko.core.errors import AffiliateError
from earnko.core.url_normalizer import resolve_redirect_chain
from earnko.db.mongo import db
from earnko.integrations.network_adapters import build_adapters
from earnko.services.notification_service import MongoNotifier

logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Earnko Affiliate Platform",
    description="Link issuance, click attribution and commission settlement for affiliate networks",
    version="1.0.0"
)

# Read CORS configuration from environment
# Example values in .env.example
cors_origins = os.getenv("CORS_ALLOW_ORIGINS", "*")
if cors_origins.strip() == "*":
    allow_origins = ["*"]
else:
    allow_origins = [o.strip() for o in cors_origins.split(",") if o.strip()]

# Only allow credentials when explicit origins are configured
allow_credentials = False
if allow_origins != ["*"]:
    allow_credentials = os.getenv("CORS_ALLOW_CREDENTIALS", "false").lower() in ("1", "true", "yes")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allow_origins,
    allow_credentials=allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Process-wide collaborators, swapped out in tests via dependency overrides
app.state.notifier = MongoNotifier(db)
app.state.adapters = build_adapters()
app.state.resolve_redirects = resolve_redirect_chain


@app.exception_handler(AffiliateError)
async def affiliate_error_handler(request: Request, exc: AffiliateError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_response())


# Import routers
from earnko.routes.affiliate_routes import router as affiliate_router
from earnko.routes.tracking_routes import router as tracking_router
from earnko.routes.webhook_routes import router as webhook_router
from earnko.routes.admin_routes import router as admin_router
from earnko.routes.wallet_routes import router as wallet_router

app.include_router(affiliate_router)
app.include_router(tracking_router)
app.include_router(webhook_router)
app.include_router(admin_router)
app.include_router(wallet_router)


@app.on_event("startup")
async def startup_event():
    """Initialize database indexes on startup"""
    from earnko.db.mongo import ensure_indexes
    ensure_indexes()
    logger.info("✓ Database indexes initialized")


@app.get("/")
def root():
    return {
        "status": "ok",
        "service": "Earnko Affiliate Platform",
        "version": "1.0.0",
        "features": [
            "Lazy and eager affiliate link issuance",
            "Click attribution with cookie-scoped redirects",
            "Postback ingestion for Cuelinks, Extrape, Trackier and RealCash",
            "Wallet settlement with referral bonuses",
        ]
    }


@app.get("/health")
def health_check():
    """Health check for load balancers"""
    try:
        # Test MongoDB connection
        db.command("ping")
        return {"status": "healthy", "database": "connected"}
    except Exception as e:
        return {"status": "unhealthy", "database": "disconnected", "error": str(e)}
