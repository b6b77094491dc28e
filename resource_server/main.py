"""
Docket Manager product API. Bearer tokens from the identity provider, scope docket-manager.
Port 7000.
"""
import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from resource_server.auth import Principal, require_scope
from resource_server.config import SCOPE_DOCKET_MANAGER
from resource_server.products import list_products

logger = logging.getLogger(__name__)

app = FastAPI(title="Docket Manager API", version="1.0.0")

RequireDocketManager = require_scope(SCOPE_DOCKET_MANAGER)


@app.exception_handler(Exception)
async def server_error(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse({"error": "server_error"}, status_code=500)


@app.get("/health")
def health():
    """Health check endpoint."""
    return {"status": "ok", "service": "resource_server"}


@app.get("/api/products")
def get_products(principal: Principal = RequireDocketManager):
    """All products. Requires scope docket-manager."""
    logger.debug("Products requested by sub=%s client_id=%s", principal.subject, principal.client_id)
    return list_products()


if __name__ == "__main__":
    import os

    import uvicorn

    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    uvicorn.run(
        "resource_server.main:app",
        host="127.0.0.1",
        port=7000,
        log_level=level.lower(),
    )
