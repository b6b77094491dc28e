"""
Pytest configuration for auth_server. Environment is fixed before the app is imported:
in-memory SQLite, a known back-office secret and backend URL.
"""
import os

os.environ["AUTH_DATABASE_URL"] = "sqlite:///:memory:"
os.environ["BACKOFFICE_CLIENT_ID"] = "docket-manager"
os.environ["BACKOFFICE_API_SECRET"] = "test-secret"
os.environ["BACKOFFICE_BACKEND_URL"] = "https://host/"
os.environ.pop("OAUTH_SIGNING_KEY_PATH", None)
os.environ.pop("APP_ENVIRONMENT", None)
os.environ.pop("OAUTH_API_AUDIENCE", None)

import pytest
from fastapi.testclient import TestClient

from auth_server.database import init_db
from auth_server.main import app


@pytest.fixture
def client():
    init_db()
    return TestClient(app)
