"""
Product API configuration. Issuer and audience are public identifiers, not secrets.
"""
import os

# Authority (identity provider) whose JWKS signs our access tokens; iss must match
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")

# Expected aud of access tokens. Empty: audience is not validated.
API_AUDIENCE = os.environ.get("OAUTH_API_AUDIENCE", "").strip() or None

# JWKS cache lifetime (seconds)
JWKS_CACHE_SECONDS = int(os.environ.get("OAUTH_JWKS_CACHE_SECONDS", "300"))

# Allowed clock skew when checking exp/nbf (seconds)
CLOCK_SKEW_SECONDS = int(os.environ.get("OAUTH_CLOCK_SKEW_SECONDS", "0"))

# Scope required by the product API
SCOPE_DOCKET_MANAGER = os.environ.get("DOCKET_MANAGER_SCOPE", "docket-manager")
