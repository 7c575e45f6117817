import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

import database
import main
from commerce import UpstreamError
from config import Settings, get_settings
from schemas import AuthLink, Basket, BasketLinks, Package
from security import global_limiter, strict_limiter
from storefront.api import ApiError
from storefront.storage import MemoryStorage


def make_settings(**overrides) -> Settings:
    values = dict(
        tebex_public_token="public-token",
        tebex_server_secret="server-secret",
        discord_client_id="client-id",
        discord_client_secret="client-secret",
        discord_redirect_uri="http://shop.test/auth/discord/callback",
        frontend_url="http://shop.test",
    )
    values.update(overrides)
    return Settings(**values)


class FakeCommerce:
    """Stands in for CommerceClient; records calls, replays canned answers."""

    def __init__(self):
        self.calls = []
        self.responses = {}
        self.errors = {}

    def _answer(self, name, *args, default=None):
        self.calls.append((name, args))
        if name in self.errors:
            raise self.errors[name]
        return self.responses.get(name, default)

    def get_categories(self):
        return self._answer("get_categories", default={"data": []})

    def get_packages(self):
        return self._answer("get_packages", default={"data": []})

    def get_package(self, package_id):
        return self._answer("get_package", package_id, default={"data": {"id": package_id}})

    def get_recent_payments(self, limit=10):
        return self._answer("get_recent_payments", limit, default=[])

    def create_basket(self, payload):
        return self._answer("create_basket", payload, default={"data": {"ident": "abc123def456"}})

    def add_package(self, ident, payload):
        return self._answer("add_package", ident, payload, default={"data": {"ident": ident}})

    def get_basket_auth(self, ident, return_url):
        return self._answer("get_basket_auth", ident, return_url, default=[])

    def get_basket(self, ident):
        return self._answer("get_basket", ident, default={"data": {"ident": ident}})


class FakeDiscord:
    def __init__(self):
        self.calls = []
        self.token = {"access_token": "discord-access", "token_type": "Bearer"}
        self.error = None

    def exchange_code(self, code):
        self.calls.append(("exchange_code", code))
        if self.error:
            raise self.error
        return self.token

    def join_guild(self, access_token):
        self.calls.append(("join_guild", access_token))
        return False


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def commerce():
    return FakeCommerce()


@pytest.fixture
def discord():
    return FakeDiscord()


@pytest.fixture
def client(settings, commerce, discord):
    global_limiter.reset()
    strict_limiter.reset()
    main.app.dependency_overrides[get_settings] = lambda: settings
    main.app.dependency_overrides[main.get_commerce] = lambda: commerce
    main.app.dependency_overrides[main.get_discord] = lambda: discord
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()
    global_limiter.reset()
    strict_limiter.reset()


@pytest.fixture
def review_engine():
    engine = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    database.metadata.create_all(engine)
    database.use_engine(engine)
    yield engine
    database.use_engine(None)
    engine.dispose()


# Client-side fakes

def package(pid, price=10.0, name=None, description="", discount=0, **extra) -> Package:
    return Package(
        id=pid,
        name=name or f"Package {pid}",
        description=description,
        price=price,
        total_price=price,
        currency="USD",
        discount=discount,
        **extra,
    )


class FakeApi:
    """Stands in for StorefrontApi in the client flows."""

    def __init__(self, ident="basket-ident-0001", auth_url=None, checkout="https://pay.tebex.io/basket-ident-0001"):
        self.ident = ident
        self.auth_url = auth_url
        self.checkout = checkout
        self.username = None
        self.username_id = None
        self.attach_errors = {}
        self.calls = []

    def create_basket(self, complete_url, cancel_url, custom=None):
        self.calls.append(("create_basket", complete_url, cancel_url))
        return Basket(ident=self.ident)

    def get_basket_auth_links(self, ident, return_url):
        self.calls.append(("auth_links", ident, return_url))
        return [AuthLink(name="FiveM", url=self.auth_url)] if self.auth_url else []

    def add_package_to_basket(self, ident, payload):
        self.calls.append(("add_package", ident, payload))
        error = self.attach_errors.get(payload["package_id"])
        if error:
            raise ApiError(error, 422)

    def get_basket(self, ident):
        self.calls.append(("get_basket", ident))
        return Basket(
            ident=ident,
            links=BasketLinks(checkout=self.checkout),
            username=self.username,
            username_id=self.username_id,
        )

    def exchange_discord_code(self, code):
        self.calls.append(("exchange", code))
        return {"access_token": "discord-access"}

    def attached(self):
        return [c[2] for c in self.calls if c[0] == "add_package"]


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def fake_api():
    return FakeApi()


def upstream_error(status, error, details=None):
    return UpstreamError(status, error, details)


class ProxyResponse:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self.ok = status_code < 400
        self._body = body

    def json(self):
        if self._body is None:
            raise ValueError("no body")
        return self._body


class ProxySession:
    """Replays queued answers to StorefrontApi, recording each request."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs))
        answer = self.responses.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer
