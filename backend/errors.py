"""Domain errors raised by services and mapped to HTTP responses in main.py."""

from typing import Any, Optional


class DashboardError(Exception):
    """Base error for every failure scoped to a single request or sync."""

    status_code: int = 400
    error_code: str = "error"

    def __init__(self, message: str = ""):
        self.message = message or self.__class__.__doc__ or self.error_code
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.error_code, "detail": self.message}


class UnsupportedPlatform(DashboardError):
    """Platform is unknown or not available for OAuth."""

    error_code = "unsupported_platform"

    def __init__(self, platform: str, message: str = ""):
        self.platform = platform
        super().__init__(message or f"Unsupported platform: {platform}")


class MissingCredentials(UnsupportedPlatform):
    """OAuth app credentials are not configured for the platform."""

    status_code = 503

    def __init__(self, platform: str):
        super().__init__(
            platform,
            f"Missing OAuth credentials for {platform}. "
            f"Set {platform.upper()}_CLIENT_ID and {platform.upper()}_CLIENT_SECRET.",
        )


class OAuthDenied(DashboardError):
    """The user declined the authorization request."""

    error_code = "oauth_denied"


class TokenExchangeFailed(DashboardError):
    """The provider rejected the authorization code exchange."""

    error_code = "connection_failed"
    status_code = 502

    def __init__(self, platform: str, status: int, body: Any = None):
        self.platform = platform
        self.status = status
        self.body = body
        super().__init__(f"Token exchange failed for {platform}: {status} {body}")


class NoAccessToken(DashboardError):
    """No access token is available."""

    error_code = "no_token"


class ReauthRequired(DashboardError):
    """The account must be reconnected through OAuth."""

    error_code = "reauth_required"
    status_code = 400

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["requires_reauth"] = True
        return data


class TokenRefreshFailed(ReauthRequired):
    """The platform refused to refresh the access token."""

    error_code = "token_refresh_failed"


class AccountNotFound(DashboardError):
    """Account not found."""

    error_code = "account_not_found"
    status_code = 404


class ReportNotFound(DashboardError):
    """Report not found."""

    error_code = "report_not_found"
    status_code = 404


class UnsupportedExportFormat(DashboardError):
    """Unsupported export format."""

    error_code = "unsupported_format"


class UpstreamAPIError(DashboardError):
    """A platform API answered with a non-2xx status."""

    error_code = "upstream_error"
    status_code = 502

    def __init__(self, platform: str, status: int, body: Optional[str] = None):
        self.platform = platform
        self.status = status
        self.body = body
        super().__init__(f"{platform} API error: {status}")
