"""
Home pages: index, back-office iframe, product list, privacy, and the error page behind /error?errorId=...
"""
import html
import logging
from urllib.parse import quote_plus

from fastapi import APIRouter
from fastapi.responses import HTMLResponse

from auth_server import config
from auth_server.interaction import ErrorMessage, get_error_store
from resource_server.products import PRODUCTS

logger = logging.getLogger(__name__)
router = APIRouter()


def _page(title: str, body: str, status_code: int = 200) -> HTMLResponse:
    return HTMLResponse(
        f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>{html.escape(title)} - Docket Manager</title></head>
<body>
  <nav><a href="/">Home</a> | <a href="/home/backoffice">Back Office</a> | <a href="/home/viewproducts">Products</a> | <a href="/home/privacy">Privacy</a></nav>
  {body}
</body>
</html>""",
        status_code=status_code,
    )


def backoffice_login_url() -> str:
    """Back-office login for the configured tenant (store domain)."""
    shop = quote_plus(config.BACKOFFICE_TENANT_NAME)
    return f"{config.BACKOFFICE_FRONTEND_URL}account/login/docket-manager?shop={shop}"


@router.get("/", response_class=HTMLResponse)
def index():
    return _page(
        "Home",
        "<h1>Docket Manager</h1><p>Open the <a href=\"/home/backoffice\">Back Office</a> to manage dockets.</p>",
    )


@router.get("/home/backoffice", response_class=HTMLResponse)
def backoffice():
    """The back office runs in an iframe and signs in against this provider."""
    url = html.escape(backoffice_login_url())
    return _page(
        "Back Office",
        f'<iframe src="{url}" title="Back Office" style="width:100%;height:90vh;border:0;"></iframe>',
    )


@router.get("/home/viewproducts", response_class=HTMLResponse)
def view_products():
    """The sample catalogue the product API serves, as a table."""
    rows = "".join(
        f"<tr><td>{p.id}</td><td>{html.escape(p.sku)}</td><td>{html.escape(p.name)}</td>"
        f"<td>{p.price:.2f}</td><td>{p.quantity}</td></tr>"
        for p in PRODUCTS
    )
    return _page(
        "Products",
        "<h1>Products</h1>\n  <table class=\"products\">"
        "<tr><th>Id</th><th>SKU</th><th>Name</th><th>Price</th><th>Quantity</th></tr>"
        f"{rows}</table>",
    )


@router.get("/home/privacy", response_class=HTMLResponse)
def privacy():
    return _page("Privacy", "<h1>Privacy Policy</h1><p>Use this page to detail your site's privacy policy.</p>")


@router.get("/error", response_class=HTMLResponse)
@router.get("/home/error", response_class=HTMLResponse, include_in_schema=False)
def error_page(errorId: str | None = None):
    """
    Error details from the interaction store. Description only in development;
    an unknown or expired id renders the generic message.
    """
    message = get_error_store().get(errorId)
    parts = ["<h1>Error</h1>", "<p>Sorry, there was an error.</p>"]
    if isinstance(message, ErrorMessage):
        parts.append(f'<p><strong>Error:</strong> <code class="error">{html.escape(message.error)}</code></p>')
        if message.error_description and config.is_development():
            parts.append(f'<p class="error-description">{html.escape(message.error_description)}</p>')
    elif errorId:
        logger.debug("Error context %s not found or expired", errorId)
    return _page("Error", "\n  ".join(parts))
