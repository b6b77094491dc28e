"""
Identity provider configuration. Read once from the environment at import time.
No secrets in this file; the back-office client secret comes from env.
"""
import os

# Issuer URL (public identifier); also the authority the product API trusts
ISSUER = os.environ.get("OAUTH_ISSUER", "http://127.0.0.1:9000").rstrip("/")

# Audience stamped on access tokens
API_AUDIENCE = os.environ.get("OAUTH_API_AUDIENCE", f"{ISSUER}/resources")

# Transient state (codes, refresh tokens, audit) lives for the process lifetime only
DATABASE_URL = os.environ.get("AUTH_DATABASE_URL", "sqlite:///:memory:")

# "development" shows error descriptions on the error page; anything else hides them
ENVIRONMENT = os.environ.get("APP_ENVIRONMENT", "production").strip().lower()

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

# Lifetimes (seconds)
CODE_TTL_SECONDS = int(os.environ.get("CODE_TTL_SECONDS", "300"))
ACCESS_TOKEN_EXPIRES = int(os.environ.get("OAUTH_ACCESS_TOKEN_EXPIRES", "3600"))
ID_TOKEN_EXPIRES = int(os.environ.get("OAUTH_ID_TOKEN_EXPIRES", "300"))
REFRESH_TOKEN_EXPIRES = int(os.environ.get("OAUTH_REFRESH_TOKEN_EXPIRES", str(30 * 24 * 3600)))
INTERACTION_TTL_SECONDS = int(os.environ.get("INTERACTION_TTL_SECONDS", "600"))

# Optional RSA private key PEM. Unset or unreadable: a key is generated per process.
SIGNING_KEY_PATH = os.environ.get("OAUTH_SIGNING_KEY_PATH", "").strip() or None

# Back-office relying party. BackendUrl and FrontendUrl end with "/".
BACKOFFICE_CLIENT_ID = os.environ.get("BACKOFFICE_CLIENT_ID", "docket-manager")
BACKOFFICE_API_SECRET = os.environ.get("BACKOFFICE_API_SECRET") or None
BACKOFFICE_BACKEND_URL = os.environ.get("BACKOFFICE_BACKEND_URL", "http://127.0.0.1:8000/")
BACKOFFICE_FRONTEND_URL = os.environ.get("BACKOFFICE_FRONTEND_URL", "http://127.0.0.1:4200/")
BACKOFFICE_TENANT_NAME = os.environ.get("BACKOFFICE_TENANT_NAME", "docket-demo.myshopify.com")

# API scope exposed to the back office
DOCKET_MANAGER_SCOPE = "docket-manager"


def is_development() -> bool:
    return ENVIRONMENT == "development"
