"""
Checkout orchestration.

start_checkout() turns the cart into an external basket and either sends
the browser to the platform's identity-linking page or straight to the
hosted checkout. complete_after_auth() is the return route after linking:
it replays the persisted cart snapshot onto the same basket.

Both return a CheckoutResult describing the redirect and notifications;
delays are reported, not slept.
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from schemas import CartItem
from storefront import storage as keys
from storefront.api import ApiError, StorefrontApi
from storefront.cart import CartStore, dump_items, load_items
from storefront.identity import IdentityStore

logger = logging.getLogger(__name__)

AUTH_REDIRECT_DELAY_MS = 500
CHECKOUT_REDIRECT_DELAY_MS = 2000
RESUME_REDIRECT_DELAY_MS = 1000
FALLBACK_REDIRECT_DELAY_MS = 3000
GUARD_TTL_SECONDS = 30.0

ALREADY_IN_BASKET = "already in your basket"
DISCORD_REQUIRED = "This package requires Discord login. Please login with Discord first."


class CheckoutError(Exception):
    pass


@dataclass(frozen=True)
class Redirect:
    url: str
    delay_ms: int = 0


@dataclass(frozen=True)
class Notification:
    title: str
    message: str
    color: str


@dataclass
class CheckoutResult:
    status: str  # "redirect" | "auth_redirect" | "error" | "skipped"
    message: str = ""
    redirect: Optional[Redirect] = None
    notifications: List[Notification] = field(default_factory=list)


class CheckoutOrchestrator:
    def __init__(self, api: StorefrontApi, cart: CartStore, identities: IdentityStore, origin: str):
        self.api = api
        self.cart = cart
        self.identities = identities
        self.storage = cart.storage
        self.origin = origin.rstrip("/")

    def package_payload(self, item: CartItem) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"package_id": item.package.id, "quantity": item.quantity}
        discord = self.identities.discord_user
        if discord and discord.id:
            payload["variable_data"] = {"discord_id": discord.id}
        return payload

    def checkout_url(self, ident: str) -> str:
        basket = self.api.get_basket(ident)
        url = basket.links.checkout if basket.links else None
        if not url:
            raise CheckoutError("Checkout URL not found")
        return url

    def start_checkout(self) -> CheckoutResult:
        items = list(self.cart.items)
        if not items:
            return self._failed("Checkout Error", "Your cart is empty")
        try:
            basket = self.api.create_basket(
                complete_url=f"{self.origin}/checkout/complete",
                cancel_url=f"{self.origin}/products",
            )
            self.storage.set_item(keys.BASKET_IDENT, basket.ident)
            self.storage.set_json(keys.PENDING_ITEMS, dump_items(items))

            links = self.api.get_basket_auth_links(basket.ident, f"{self.origin}/checkout/auth-complete")
            if links and links[0].url:
                logger.info("Basket %s needs identity linking", basket.ident)
                return CheckoutResult(
                    status="auth_redirect",
                    redirect=Redirect(links[0].url, AUTH_REDIRECT_DELAY_MS),
                )

            for item in items:
                self._attach(basket.ident, item)
            url = self.checkout_url(basket.ident)
        except Exception as e:
            logger.warning("Checkout failed: %s", e)
            return self._failed("Checkout Error", str(e) or "Failed to open checkout. Please try again.")

        self.cart.clear()
        return CheckoutResult(
            status="redirect",
            message="Redirecting to checkout...",
            redirect=Redirect(url, CHECKOUT_REDIRECT_DELAY_MS),
            notifications=[Notification("Success!", "Redirecting to checkout...", "green")],
        )

    def complete_after_auth(self) -> CheckoutResult:
        token = self.storage.claim(keys.AUTH_COMPLETE_PROCESSING, GUARD_TTL_SECONDS)
        if token is None:
            logger.info("Auth completion already in progress, skipping")
            return CheckoutResult(status="skipped")
        try:
            return self._resume()
        finally:
            self.storage.release(keys.AUTH_COMPLETE_PROCESSING, token)

    def _resume(self) -> CheckoutResult:
        ident = self.storage.get_item(keys.BASKET_IDENT)
        raw_items = self.storage.get_item(keys.PENDING_ITEMS)
        if not ident or not raw_items:
            return CheckoutResult(
                status="error",
                message="No basket found. Redirecting...",
                redirect=Redirect("/products", FALLBACK_REDIRECT_DELAY_MS),
                notifications=[Notification("Error", "No basket found", "red")],
            )

        try:
            items = load_items(json.loads(raw_items))
            for item in items:
                self._attach(ident, item)
            url = self.checkout_url(ident)
        except Exception as e:
            logger.warning("Resumed checkout for %s failed: %s", ident, e)
            message = str(e) or "Failed to complete checkout. Please try again."
            return CheckoutResult(
                status="error",
                message=message,
                redirect=Redirect("/products", FALLBACK_REDIRECT_DELAY_MS),
                notifications=[Notification("Error", message, "red")],
            )

        self.storage.remove_item(keys.PENDING_ITEMS)
        self.storage.remove_item(keys.BASKET_IDENT)
        self.cart.clear()
        return CheckoutResult(
            status="redirect",
            message="Redirecting to checkout...",
            redirect=Redirect(url, RESUME_REDIRECT_DELAY_MS),
            notifications=[Notification("Success!", "Authentication complete. Redirecting to checkout...", "green")],
        )

    def _attach(self, ident: str, item: CartItem) -> None:
        try:
            self.api.add_package_to_basket(ident, self.package_payload(item))
        except ApiError as e:
            message = str(e)
            if ALREADY_IN_BASKET in message:
                return
            if "Discord" in message:
                raise CheckoutError(DISCORD_REQUIRED) from e
            raise

    def _failed(self, title: str, message: str) -> CheckoutResult:
        return CheckoutResult(
            status="error",
            message=message,
            notifications=[Notification(title, message, "red")],
        )
