import re
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlparse

from pydantic import ValidationError

from schemas import PackagePayload

BASKET_IDENT_RE = re.compile(r"^[a-zA-Z0-9\-]+$")


def _first_error(exc: ValidationError) -> str:
    err = exc.errors()[0]
    loc = ".".join(str(p) for p in err.get("loc", ())) or "value"
    return f'"{loc}" {err.get("msg", "is invalid")}'


def validate_basket_ident(ident: Optional[str]) -> Optional[str]:
    """Returns an error message, or None when the ident is acceptable."""
    if not ident:
        return "ident is required"
    if not 10 <= len(ident) <= 100:
        return "ident length must be between 10 and 100"
    if not BASKET_IDENT_RE.match(ident):
        return "ident contains invalid characters"
    return None


def validate_package(data: Any) -> Tuple[Optional[str], Optional[Dict[str, Any]]]:
    """
    Validate a package-attach body.
    Returns (error, value); value has defaults applied and unset optionals dropped.
    """
    if not isinstance(data, dict):
        return '"value" must be an object', None
    try:
        payload = PackagePayload.model_validate(data)
    except ValidationError as e:
        return _first_error(e), None
    return None, payload.model_dump(exclude_none=True)


def validate_product_name(name: Optional[str]) -> Optional[str]:
    if not name:
        return "product name is required"
    if len(name) > 500:
        return "product name must be at most 500 characters"
    return None


def validate_return_url(url: Optional[str]) -> Optional[str]:
    if not url:
        return "returnUrl is required"
    parsed = urlparse(url)
    if not parsed.scheme or not parsed.netloc:
        return "returnUrl must be a valid uri"
    return None
