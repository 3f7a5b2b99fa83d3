"""
Earnko Platform Configuration
Master constants for link issuance, provider routing, postbacks and referral bonuses
"""
import os
from typing import Dict

from dotenv import load_dotenv

load_dotenv()


def _env_number(name: str, default: float) -> float:
    """Read a numeric env var, falling back to `default` when missing or invalid."""
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _parse_host_map(raw: str) -> Dict[str, str]:
    """Parse 'host=value,host=value' into a dict keyed by lowercase host."""
    out: Dict[str, str] = {}
    for pair in (raw or "").split(","):
        if "=" not in pair:
            continue
        host, value = pair.split("=", 1)
        host = host.strip().lower()
        if host.startswith("www."):
            host = host[4:]
        if host and value.strip():
            out[host] = value.strip()
    return out


# ============================================================================
# DATABASE & PUBLIC URLS
# ============================================================================

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
DATABASE_NAME = os.getenv("DATABASE_NAME", "earnko")

# Share links and redirect wrappers are built on top of the backend base URL
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8080").rstrip("/")

# Every redirect failure ends here
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()


# ============================================================================
# LINK ISSUANCE & ATTRIBUTION
# ============================================================================

# "lazy" builds the provider deeplink when the share URL is visited,
# "eager" builds it when the link is issued
LINK_MODE = os.getenv("LINK_MODE", "lazy").lower()
LINK_MODES = ("lazy", "eager")

BULK_LINK_LIMIT = 25

ATTRIBUTION_COOKIE_NAME = "earnko_clickId"
DEFAULT_COOKIE_DAYS = 30

SHORT_CODE_LENGTH = 7


# ============================================================================
# OUTBOUND TIMEOUTS
# ============================================================================

REDIRECT_MAX_HOPS = 8
REDIRECT_HOP_TIMEOUT = _env_number("REDIRECT_HOP_TIMEOUT", 8)  # seconds per hop
ADAPTER_TIMEOUT = _env_number("ADAPTER_TIMEOUT", 6)            # seconds per network call


# ============================================================================
# AFFILIATE NETWORK CREDENTIALS
# ============================================================================

CUELINKS_API_BASE = os.getenv("CUELINKS_API_BASE", "https://www.cuelinks.com/api/v2")
CUELINKS_API_KEY = os.getenv("CUELINKS_API_KEY", "")
CUELINKS_COUNTRY_ID = os.getenv("CUELINKS_COUNTRY_ID", "")

TRACKIER_API_BASE = os.getenv("TRACKIER_API_BASE", "https://api.trackier.com")
TRACKIER_API_KEY = os.getenv("TRACKIER_API_KEY", "")

EXTRAPE_AFFID = os.getenv("EXTRAPE_AFFID", "")
EXTRAPE_AFF_EXT_PARAM1 = os.getenv("EXTRAPE_AFF_EXT_PARAM1", "")


# ============================================================================
# PROVIDER ROUTING
# ============================================================================

DEFAULT_PROVIDER = "cuelinks"

# Matched against the normalized host and its parent domains
PROVIDER_HOSTS = {
    "flipkart.com": "extrape",
    "dl.flipkart.com": "extrape",
    "ajio.com": "trackier",
    "myntra.com": "trackier",
    "nykaa.com": "trackier",
    "tatacliq.com": "trackier",
}

# Trackier needs a campaign id per merchant host, e.g. "ajio.com=1234,myntra.com=5678"
TRACKIER_CAMPAIGNS = _parse_host_map(os.getenv("TRACKIER_CAMPAIGNS", ""))


# ============================================================================
# REFERRAL BONUS
# ============================================================================

REFERRAL_BONUS_TYPE = os.getenv("REFERRAL_BONUS_TYPE", "percentage").lower()
REFERRAL_BONUS_VALUE = _env_number("REFERRAL_BONUS_VALUE", 10)
REFERRAL_BONUS_CAP = _env_number("REFERRAL_BONUS_CAP", 0)  # 0 = no cap


# ============================================================================
# POSTBACK PROCESSING
# ============================================================================

# Optimistic update attempts before a concurrent postback gives up
WEBHOOK_UPSERT_RETRIES = 5

# Optional Slack incoming webhook for operational alerts
SLACK_WEBHOOK_URL = os.getenv("SLACK_WEBHOOK_URL", "")
