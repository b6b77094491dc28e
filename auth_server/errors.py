"""
Protocol error kinds (RFC 6749 §4.1.2.1, §5.2) and their JSON rendering.
"""
import logging

from fastapi import Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class OAuthError(Exception):
    error = "invalid_request"
    status_code = 400

    def __init__(self, description: str = ""):
        super().__init__(description)
        self.description = description

    def to_dict(self) -> dict:
        body = {"error": self.error}
        if self.description:
            body["error_description"] = self.description
        return body


class InvalidRequest(OAuthError):
    """Malformed or missing parameters."""


class InvalidClient(OAuthError):
    """Unknown client or bad client secret."""
    error = "invalid_client"
    status_code = 401


class InvalidGrant(OAuthError):
    """Expired, replayed or mismatched code, PKCE verifier or refresh token."""
    error = "invalid_grant"


class UnauthorizedScope(OAuthError):
    """Requested scope unknown or not permitted for the client."""
    error = "invalid_scope"


class UnauthorizedClient(OAuthError):
    error = "unauthorized_client"


class UnsupportedGrantType(OAuthError):
    error = "unsupported_grant_type"


class UnsupportedResponseType(OAuthError):
    error = "unsupported_response_type"


class AccessDenied(OAuthError):
    error = "access_denied"
    status_code = 403


async def oauth_error_handler(request: Request, exc: OAuthError) -> JSONResponse:
    headers = {"Cache-Control": "no-store", "Pragma": "no-cache"}
    if exc.status_code == 401:
        headers["WWW-Authenticate"] = "Basic"
    return JSONResponse(exc.to_dict(), status_code=exc.status_code, headers=headers)


async def server_error_handler(request: Request, exc: Exception) -> JSONResponse:
    # Internal faults end the request, never the process
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "server_error"}, status_code=500)
