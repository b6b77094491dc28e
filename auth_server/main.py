"""
Docket Manager identity provider (OAuth2 / OIDC) and home pages.
Port 9000.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from auth_server.authorize import router as authorize_router
from auth_server.config import BACKOFFICE_FRONTEND_URL, LOG_LEVEL
from auth_server.database import init_db
from auth_server.errors import OAuthError, oauth_error_handler, server_error_handler
from auth_server.home import router as home_router
from auth_server.keys import get_signing_key
from auth_server.logout import router as logout_router
from auth_server.registry import get_client_registry
from auth_server.token_endpoint import router as token_router
from auth_server.userinfo import router as userinfo_router
from auth_server.well_known import router as well_known_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables, load the signing key and the static registries on startup."""
    init_db()
    get_signing_key()
    get_client_registry()
    yield


app = FastAPI(title="Docket Manager Identity Provider", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[BACKOFFICE_FRONTEND_URL.rstrip("/")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_exception_handler(OAuthError, oauth_error_handler)
app.add_exception_handler(Exception, server_error_handler)


@app.middleware("http")
async def allow_framing(request: Request, call_next):
    """The back office embeds these pages in an iframe."""
    response = await call_next(request)
    if "x-frame-options" in response.headers:
        del response.headers["x-frame-options"]
    return response


app.include_router(home_router, tags=["home"])
app.include_router(authorize_router, tags=["authorize"])
app.include_router(token_router, tags=["token"])
app.include_router(userinfo_router, tags=["userinfo"])
app.include_router(logout_router, tags=["logout"])
app.include_router(well_known_router, tags=["well-known"])


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "auth_server"}


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "auth_server.main:app",
        host="127.0.0.1",
        port=9000,
        log_level=LOG_LEVEL.lower(),
    )
