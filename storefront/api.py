"""
Client for the proxy routes, used by the storefront flows.
"""

import logging
from typing import Any, Dict, List, Optional, Type, TypeVar
from urllib.parse import quote

import requests
from pydantic import BaseModel, ValidationError

from schemas import AuthLink, Basket, Category, Package

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class ApiError(Exception):
    """A proxy call failed; the message is the most specific one available."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def error_message(body: Any, default: str) -> str:
    if isinstance(body, dict):
        details = body.get("details")
        if isinstance(details, dict) and details.get("detail"):
            return str(details["detail"])
        if body.get("error"):
            return str(body["error"])
    return default


class StorefrontApi:
    def __init__(self, backend_url: str, session: Optional[requests.Session] = None, timeout: float = 15.0):
        self.base = backend_url.rstrip("/") + "/api"
        self.session = session or requests.Session()
        self.timeout = timeout

    def _call(self, method: str, path: str, default_error: str, **kwargs) -> Any:
        try:
            res = self.session.request(method, self.base + path, timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiError(default_error) from e
        if not res.ok:
            try:
                body = res.json()
            except ValueError:
                body = {}
            raise ApiError(error_message(body, default_error), res.status_code, body)
        try:
            return res.json()
        except ValueError:
            return None

    def _unwrap(self, data: Any, model: Type[M], error: str) -> M:
        """Validate the `data` member of a proxy answer; a malformed answer is an ApiError."""
        try:
            return model.model_validate(data["data"])
        except (KeyError, TypeError, ValidationError) as e:
            logger.warning("Malformed proxy answer: %s", e)
            raise ApiError(error) from e

    def _unwrap_list(self, data: Any, model: Type[M], error: str) -> List[M]:
        try:
            return [model.model_validate(entry) for entry in data.get("data", [])]
        except (AttributeError, TypeError, ValidationError) as e:
            logger.warning("Malformed proxy answer: %s", e)
            raise ApiError(error) from e

    def get_categories(self) -> List[Category]:
        data = self._call("GET", "/tebex/categories", "Failed to fetch categories")
        return self._unwrap_list(data or {}, Category, "Failed to fetch categories")

    def get_packages(self) -> List[Package]:
        data = self._call("GET", "/tebex/packages", "Failed to fetch packages")
        return self._unwrap_list(data or {}, Package, "Failed to fetch packages")

    def get_package(self, package_id: int) -> Package:
        data = self._call("GET", f"/tebex/packages/{package_id}", "Failed to fetch package")
        return self._unwrap(data, Package, "Failed to fetch package")

    def get_recent_payments(self, limit: int = 6) -> List[Dict[str, Any]]:
        data = self._call("GET", "/tebex/payments/recent", "Failed to fetch recent payments",
                          params={"limit": limit})
        return data if isinstance(data, list) else []

    def create_basket(self, complete_url: str, cancel_url: str, custom: Optional[Dict[str, Any]] = None) -> Basket:
        payload = {"complete_url": complete_url, "cancel_url": cancel_url, "complete_auto_redirect": False}
        if custom:
            payload["custom"] = custom
        data = self._call("POST", "/tebex/baskets", "Failed to create basket", json=payload)
        return self._unwrap(data, Basket, "Failed to create basket")

    def add_package_to_basket(self, ident: str, payload: Dict[str, Any]) -> None:
        self._call("POST", f"/tebex/baskets/{ident}/packages", "Failed to add package", json=payload)

    def get_basket(self, ident: str) -> Basket:
        data = self._call("GET", f"/tebex/baskets/{ident}", "Failed to get basket")
        return self._unwrap(data, Basket, "Failed to get basket")

    def get_basket_auth_links(self, ident: str, return_url: str) -> List[AuthLink]:
        data = self._call(
            "GET", f"/tebex/baskets/{ident}/auth", "Failed to get auth URL",
            params={"returnUrl": return_url},
        )
        return [AuthLink.model_validate(link) for link in (data or []) if isinstance(link, dict)]

    def exchange_discord_code(self, code: str) -> Dict[str, Any]:
        return self._call("POST", "/discord/token", "Failed to exchange code", json={"code": code})

    def get_reviews(self, product_name: str) -> Dict[str, Any]:
        return self._call("GET", f"/reviews/product/{quote(product_name, safe='')}",
                          "Failed to fetch reviews")
