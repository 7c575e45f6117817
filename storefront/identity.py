"""
Identity store and login flows.

Two independent, optional identities are kept side by side: a Discord
account (social login) and a CFX.re forum account linked through a
commerce-platform basket. There is no merged user record.
"""

import logging
import secrets
from typing import Optional
from urllib.parse import urlencode

import requests
from pydantic import ValidationError

from schemas import AuthState, User
from storefront import storage as keys
from storefront.api import ApiError, StorefrontApi
from storefront.storage import LocalStorage

logger = logging.getLogger(__name__)

DISCORD_AUTHORIZE_URL = "https://discord.com/api/oauth2/authorize"
DISCORD_SCOPE = "identify email guilds.join"


class AuthenticationError(Exception):
    pass


def cfx_avatar_url(username: str, username_id) -> str:
    return f"https://forum.cfx.re/user_avatar/forum.cfx.re/{username.lower()}/256/{username_id}_2.png"


def discord_avatar_url(user_id: str, avatar: Optional[str], discriminator=None) -> str:
    if avatar:
        return f"https://cdn.discordapp.com/avatars/{user_id}/{avatar}.png"
    try:
        index = int(discriminator) % 5
    except (TypeError, ValueError):
        index = 0
    return f"https://cdn.discordapp.com/embed/avatars/{index}.png"


class IdentityStore:
    def __init__(self, storage: LocalStorage):
        self.storage = storage
        try:
            self.state = AuthState.model_validate(storage.get_json(keys.AUTH_STATE, {}) or {})
        except ValidationError:
            self.state = AuthState()

    def _save(self) -> None:
        self.storage.set_json(keys.AUTH_STATE, self.state.model_dump(mode="json"))

    @property
    def discord_user(self) -> Optional[User]:
        return self.state.discord

    @property
    def cfx_user(self) -> Optional[User]:
        return self.state.cfx

    @property
    def is_authenticated(self) -> bool:
        return bool(self.state.discord or self.state.cfx)

    def set_discord_user(self, user: User) -> None:
        self.state = self.state.model_copy(update={"discord": user})
        self._save()

    def set_cfx_user(self, username: str, avatar: Optional[str] = None) -> None:
        user = User(id=username, username=username, avatar=avatar, provider="cfx")
        self.state = self.state.model_copy(update={"cfx": user})
        self._save()

    def logout_discord(self) -> None:
        self.state = self.state.model_copy(update={"discord": None})
        self._save()
        self.storage.remove_item(keys.DISCORD_TOKEN)

    def logout_cfx(self) -> None:
        self.state = self.state.model_copy(update={"cfx": None})
        self._save()


class LoginFlows:
    """
    Redirect-based login for both providers. begin_* return the URL the
    browser must be sent to; complete_* run on the callback routes and
    return the path to navigate back to.
    """

    def __init__(self, api: StorefrontApi, identities: IdentityStore, origin: str,
                 discord_client_id: str, discord_redirect_uri: str,
                 discord_api: str = "https://discord.com/api",
                 session: Optional[requests.Session] = None):
        self.api = api
        self.identities = identities
        self.storage = identities.storage
        self.origin = origin.rstrip("/")
        self.discord_client_id = discord_client_id
        self.discord_redirect_uri = discord_redirect_uri
        self.discord_api = discord_api.rstrip("/")
        self.session = session or requests.Session()

    def _pop_return_url(self) -> str:
        target = self.storage.get_item(keys.AUTH_RETURN_URL) or "/"
        self.storage.remove_item(keys.AUTH_RETURN_URL)
        return target

    # Discord

    def begin_discord_login(self, return_path: str) -> str:
        state = secrets.token_urlsafe(16)
        self.storage.set_item(keys.AUTH_RETURN_URL, return_path)
        self.storage.set_item(keys.OAUTH_STATE, state)
        self.storage.set_item(keys.OAUTH_PROVIDER, "discord")
        params = {
            "client_id": self.discord_client_id,
            "redirect_uri": self.discord_redirect_uri,
            "response_type": "code",
            "scope": DISCORD_SCOPE,
            "state": state,
        }
        return f"{DISCORD_AUTHORIZE_URL}?{urlencode(params)}"

    def complete_discord_login(self, code: Optional[str], state: Optional[str]) -> str:
        saved = self.storage.get_item(keys.OAUTH_STATE)
        if not code or not state or state != saved:
            raise AuthenticationError("Invalid OAuth state")
        self.storage.remove_item(keys.OAUTH_STATE)
        self.storage.remove_item(keys.OAUTH_PROVIDER)
        try:
            token = self.api.exchange_discord_code(code)
            access_token = token["access_token"]
            res = self.session.get(
                f"{self.discord_api}/users/@me",
                headers={"Authorization": f"Bearer {access_token}"},
                timeout=15,
            )
            if not res.ok:
                raise AuthenticationError("Failed to fetch user data")
            data = res.json()
            user = User(
                id=str(data["id"]),
                username=data["username"],
                avatar=discord_avatar_url(str(data["id"]), data.get("avatar"), data.get("discriminator")),
                provider="discord",
            )
        except (ApiError, requests.RequestException, KeyError, TypeError, ValueError) as e:
            logger.warning("Discord login failed: %s", e)
            raise AuthenticationError("Failed to authenticate with Discord") from e
        self.identities.set_discord_user(user)
        self.storage.set_item(keys.DISCORD_TOKEN, access_token)
        return self._pop_return_url()

    # CFX.re, linked through a throwaway basket

    def begin_cfx_login(self, return_path: str) -> str:
        try:
            basket = self.api.create_basket(
                complete_url=f"{self.origin}/auth/cfx/complete",
                cancel_url=self.origin,
            )
            self.storage.set_item(keys.CFX_AUTH_BASKET, basket.ident)
            self.storage.set_item(keys.AUTH_RETURN_URL, return_path)
            links = self.api.get_basket_auth_links(basket.ident, f"{self.origin}/auth/cfx/callback")
        except ApiError as e:
            raise AuthenticationError("Failed to initiate CFX authentication. Please try again.") from e
        if not links or not links[0].url:
            raise AuthenticationError("No auth URL returned")
        return links[0].url

    def complete_cfx_login(self) -> str:
        ident = self.storage.get_item(keys.CFX_AUTH_BASKET)
        if not ident:
            raise AuthenticationError("No basket found")
        try:
            basket = self.api.get_basket(ident)
        except ApiError as e:
            raise AuthenticationError("Failed to complete CFX authentication") from e
        if not (basket.username and basket.username_id):
            raise AuthenticationError("Authentication failed - no username returned")
        self.identities.set_cfx_user(basket.username, cfx_avatar_url(basket.username, basket.username_id))
        self.storage.remove_item(keys.CFX_AUTH_BASKET)
        return self._pop_return_url()
