"""
Affiliate Error Taxonomy
Every failure the attribution pipeline surfaces carries a stable `code`
so callers branch on the code, never on message text.
"""
from typing import Any, Dict, Optional


class AffiliateError(Exception):
    """Base error rendered as {success: false, code, message, data?}"""

    code = "server_error"
    status_code = 500

    def __init__(self, message: str = "", data: Optional[Dict[str, Any]] = None, code: Optional[str] = None):
        super().__init__(message or self.code)
        self.message = message or self.code
        self.data = data
        if code:
            self.code = code

    def to_response(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"success": False, "code": self.code, "message": self.message}
        if self.data is not None:
            body["data"] = self.data
        return body


class BadRequestError(AffiliateError):
    code = "bad_request"
    status_code = 400


class MissingCampaignIdError(AffiliateError):
    """Host routes to a provider that needs a campaign id, and none is configured"""
    code = "missing_campaign_id"
    status_code = 422


class MissingAccountIdError(AffiliateError):
    """Provider account identifier (affid / api key) is not configured"""
    code = "missing_account_id"
    status_code = 422


class InvalidCredentialsError(AffiliateError):
    code = "invalid_credentials"
    status_code = 401


class ForbiddenError(AffiliateError):
    code = "forbidden"
    status_code = 403


class ApprovalRequiredError(AffiliateError):
    """Network has not approved this merchant/campaign for our account"""
    code = "approval_required"
    status_code = 409

    def __init__(self, message: str = "Campaign needs approval", host: str = "", suggestions: Optional[list] = None):
        super().__init__(message, data={"host": host, "suggestions": suggestions or []})
        self.host = host


class NoDeeplinkReturnedError(AffiliateError):
    code = "no_deeplink_returned"
    status_code = 502


class ProviderFailedError(AffiliateError):
    """Network error, timeout or unusable response from an affiliate network"""
    code = "provider_failed"
    status_code = 502


class UnsupportedDomainError(AffiliateError):
    code = "unsupported_domain"
    status_code = 422


class UnknownClickIdError(AffiliateError):
    code = "unknown_click_id"
    status_code = 404


class UnsupportedTransitionError(AffiliateError):
    code = "unsupported_transition"
    status_code = 409


class NotFoundError(AffiliateError):
    code = "not_found"
    status_code = 404


class ConflictError(AffiliateError):
    """Optimistic update kept losing to concurrent writers"""
    code = "conflict"
    status_code = 409


# Errors that point at a setup gap rather than a user mistake
OPERATIONAL_ERRORS = (MissingCampaignIdError, MissingAccountIdError, InvalidCredentialsError, ForbiddenError)
