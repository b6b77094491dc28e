"""
Read-only registries built once at startup: clients, API scopes, identity resources, users.
Swapping in a persistent store only has to keep the lookup methods.
"""
import logging
from dataclasses import dataclass

from auth_server.passwords import verify_password

logger = logging.getLogger(__name__)

GRANT_AUTHORIZATION_CODE = "authorization_code"
GRANT_CLIENT_CREDENTIALS = "client_credentials"
GRANT_REFRESH_TOKEN = "refresh_token"

SCOPE_OPENID = "openid"
SCOPE_OFFLINE_ACCESS = "offline_access"


@dataclass(frozen=True)
class ApiScope:
    name: str
    display_name: str = ""


@dataclass(frozen=True)
class IdentityResource:
    name: str
    user_claims: frozenset[str]
    display_name: str = ""


@dataclass(frozen=True)
class User:
    subject_id: str
    username: str
    password_hash: str
    claims: tuple[tuple[str, str], ...] = ()

    def claim_values(self, claim_type: str) -> list[str]:
        return [value for ctype, value in self.claims if ctype == claim_type]


@dataclass(frozen=True)
class Client:
    client_id: str
    allowed_grant_types: frozenset[str]
    allowed_scopes: frozenset[str]
    redirect_uris: frozenset[str] = frozenset()
    post_logout_redirect_uris: frozenset[str] = frozenset()
    # bcrypt hashes; empty = public client
    secret_hashes: tuple[str, ...] = ()
    client_name: str = ""
    require_pkce: bool = True
    allow_plain_text_pkce: bool = False
    require_consent: bool = False
    allow_offline_access: bool = False
    always_include_user_claims_in_id_token: bool = False

    @property
    def is_confidential(self) -> bool:
        return len(self.secret_hashes) > 0

    def redirect_uri_allowed(self, uri: str) -> bool:
        return uri in self.redirect_uris

    def post_logout_redirect_uri_allowed(self, uri: str) -> bool:
        return uri in self.post_logout_redirect_uris

    def scope_allowed(self, scope: str) -> bool:
        if scope == SCOPE_OFFLINE_ACCESS:
            return self.allow_offline_access
        return scope in self.allowed_scopes

    def verify_secret(self, secret: str | None) -> bool:
        if not secret:
            return False
        return any(verify_password(secret, h) for h in self.secret_hashes)


class ClientRegistry:
    def __init__(self, clients: list[Client]):
        self._clients = {c.client_id: c for c in clients}

    def lookup(self, client_id: str | None) -> Client | None:
        if not client_id:
            return None
        return self._clients.get(client_id)

    def __len__(self) -> int:
        return len(self._clients)


class ResourceRegistry:
    """Global scope set: identity resources (user claims) and API scopes."""

    def __init__(self, identity_resources: list[IdentityResource], api_scopes: list[ApiScope]):
        self.identity_resources = {r.name: r for r in identity_resources}
        self.api_scopes = {s.name: s for s in api_scopes}

    def scope_exists(self, name: str) -> bool:
        return name in self.identity_resources or name in self.api_scopes or name == SCOPE_OFFLINE_ACCESS

    def identity_resources_for(self, scopes) -> list[IdentityResource]:
        return [self.identity_resources[s] for s in sorted(set(scopes)) if s in self.identity_resources]

    def api_scopes_for(self, scopes) -> list[ApiScope]:
        return [self.api_scopes[s] for s in sorted(set(scopes)) if s in self.api_scopes]

    def all_scope_names(self) -> list[str]:
        return sorted(set(self.identity_resources) | set(self.api_scopes))


class UserStore:
    def __init__(self, users: list[User]):
        self._by_username = {u.username: u for u in users}
        self._by_subject = {u.subject_id: u for u in users}

    def find_by_username(self, username: str) -> User | None:
        return self._by_username.get(username)

    def find_by_subject(self, subject_id: str) -> User | None:
        return self._by_subject.get(subject_id)

    def validate_credentials(self, username: str, password: str) -> User | None:
        user = self.find_by_username(username)
        if user is None or not verify_password(password, user.password_hash):
            return None
        return user


_clients: ClientRegistry | None = None
_resources: ResourceRegistry | None = None
_users: UserStore | None = None


def _ensure_loaded() -> None:
    global _clients, _resources, _users
    if _clients is not None:
        return
    from auth_server.seed import api_scopes, build_clients, identity_resources, test_users

    _resources = ResourceRegistry(identity_resources(), api_scopes())
    _users = UserStore(test_users())
    _clients = ClientRegistry(build_clients())
    logger.info(
        "Registry loaded: %d client(s), scopes=%s",
        len(_clients),
        " ".join(_resources.all_scope_names()),
    )


def get_client_registry() -> ClientRegistry:
    _ensure_loaded()
    return _clients


def get_resource_registry() -> ResourceRegistry:
    _ensure_loaded()
    return _resources


def get_user_store() -> UserStore:
    _ensure_loaded()
    return _users
