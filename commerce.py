"""
Upstream HTTP clients.

CommerceClient talks to the Tebex Headless and plugin APIs, DiscordClient to
Discord's OAuth2 and REST endpoints. Both return decoded JSON and raise
UpstreamError when the upstream answers with a non-2xx status.
"""

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

import requests

from config import Settings

logger = logging.getLogger(__name__)


class UpstreamError(Exception):
    """Non-2xx answer from an upstream API; carries its status and body."""

    def __init__(self, status_code: int, error: str, details: Any = None):
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.details = details if details is not None else {}


def _json_or_empty(response: requests.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {}


class _Client:
    def __init__(self, settings: Settings, session: Optional[requests.Session] = None):
        self.settings = settings
        self.session = session or requests.Session()
        self.timeout = settings.upstream_timeout

    def _request(self, method: str, url: str, error: str, **kwargs) -> Any:
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        if not response.ok:
            details = _json_or_empty(response)
            logger.info("%s %s -> %s", method, url.split("?")[0], response.status_code)
            raise UpstreamError(response.status_code, error, details)
        if response.status_code == 204 or not response.content:
            return {}
        return response.json()


class CommerceClient(_Client):
    """Headless storefront API plus the secret-authenticated plugin API."""

    @property
    def _account(self) -> str:
        return f"{self.settings.tebex_headless_api}/accounts/{self.settings.tebex_public_token}"

    def get_categories(self) -> Any:
        return self._request(
            "GET", f"{self._account}/categories", "Failed to fetch categories",
            params={"includePackages": 1},
        )

    def get_packages(self) -> Any:
        return self._request("GET", f"{self._account}/packages", "Failed to fetch packages")

    def get_package(self, package_id: int) -> Any:
        return self._request("GET", f"{self._account}/packages/{package_id}", "Failed to fetch package")

    def get_recent_payments(self, limit: int = 10) -> Any:
        return self._request(
            "GET", f"{self.settings.tebex_plugin_api}/payments", "Failed to fetch payments",
            params={"limit": limit},
            headers={"X-Tebex-Secret": self.settings.tebex_server_secret},
        )

    def create_basket(self, payload: Dict[str, Any]) -> Any:
        return self._request("POST", f"{self._account}/baskets", "Failed to create basket", json=payload)

    def add_package(self, ident: str, payload: Dict[str, Any]) -> Any:
        return self._request(
            "POST", f"{self.settings.tebex_headless_api}/baskets/{ident}/packages",
            "Failed to add package", json=payload,
        )

    def get_basket_auth(self, ident: str, return_url: str) -> Any:
        return self._request(
            "GET", f"{self._account}/baskets/{ident}/auth?returnUrl={quote(return_url, safe='')}",
            "Failed to get auth URL",
        )

    def get_basket(self, ident: str) -> Any:
        return self._request("GET", f"{self._account}/baskets/{ident}", "Failed to get basket")


class DiscordClient(_Client):
    """OAuth2 code exchange and the guild auto-join performed with the bot token."""

    def exchange_code(self, code: str) -> Any:
        form = {
            "client_id": self.settings.discord_client_id,
            "client_secret": self.settings.discord_client_secret,
            "grant_type": "authorization_code",
            "code": code,
            "redirect_uri": self.settings.discord_redirect_uri,
        }
        return self._request(
            "POST", f"{self.settings.discord_api}/oauth2/token",
            "Failed to exchange code for token", data=form,
        )

    def get_user(self, access_token: str) -> Any:
        return self._request(
            "GET", f"{self.settings.discord_api}/users/@me", "Failed to fetch user data",
            headers={"Authorization": f"Bearer {access_token}"},
        )

    def add_guild_member(self, user_id: str, access_token: str) -> Any:
        return self._request(
            "PUT",
            f"{self.settings.discord_api}/guilds/{self.settings.discord_guild_id}/members/{user_id}",
            "Failed to add guild member",
            headers={"Authorization": f"Bot {self.settings.discord_bot_token}"},
            json={"access_token": access_token},
        )

    def join_guild(self, access_token: str) -> bool:
        """
        Best-effort: add the token's owner to the configured guild.
        Never raises; returns whether the member was added.
        """
        s = self.settings
        if not (s.discord_bot_token and s.discord_guild_id and access_token):
            return False
        try:
            user = self.get_user(access_token)
            self.add_guild_member(user["id"], access_token)
            logger.info("Added %s to guild %s", user.get("username"), s.discord_guild_id)
            return True
        except UpstreamError as e:
            if e.status_code == 403:
                logger.warning("Bot lacks permission to add guild members")
            else:
                logger.warning("Could not add user to guild: %s %s", e.status_code, e.details)
        except (requests.RequestException, KeyError, TypeError, ValueError) as e:
            logger.warning("Error adding user to guild: %s", e)
        return False
