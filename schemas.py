"""
Storefront Schemas

Pydantic models for the data that moves between the browser-side client,
this proxy and the commerce platform. Catalog and basket shapes mirror the
Tebex Headless API and are read-only here; extra upstream fields are kept.

The review shapes describe rows of the externally owned "reviews" table.
"""

from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List, Dict, Any, Literal
from datetime import datetime


class Sale(BaseModel):
    active: bool = False
    discount: float = 0


class Package(BaseModel):
    """
    A purchasable product as modeled by the commerce platform.
    """
    model_config = ConfigDict(extra="allow")

    id: int = Field(..., description="Package ID")
    name: str = Field(..., description="Package name")
    description: Optional[str] = Field("", description="Package description (HTML)")
    image: Optional[str] = Field(None, description="Image URL")
    price: float = Field(0, description="Base price")
    base_price: Optional[Any] = Field(None, description="Base price as reported upstream")
    total_price: float = Field(0, ge=0, description="Price after discount")
    currency: str = Field("USD", description="ISO currency code")
    discount: float = Field(0, description="Discount amount")
    created_at: Optional[str] = None
    sale: Optional[Sale] = None


class CategoryParent(BaseModel):
    id: int
    name: Optional[str] = None


class Category(BaseModel):
    """
    A catalog category. The upstream list is flat; subcategories are
    filled in client-side by grouping on parent id.
    """
    model_config = ConfigDict(extra="allow")

    id: int
    name: str
    description: Optional[str] = None
    packages: List[Package] = []
    parent: Optional[CategoryParent] = None
    subcategories: List["Category"] = []


class BasketLinks(BaseModel):
    model_config = ConfigDict(extra="allow")

    checkout: Optional[str] = None


class Basket(BaseModel):
    """
    External basket session, identified by its opaque ident.
    """
    model_config = ConfigDict(extra="allow")

    ident: str
    complete: bool = False
    links: BasketLinks = BasketLinks()
    username: Optional[str] = None
    username_id: Optional[int] = None


class AuthLink(BaseModel):
    name: Optional[str] = None
    url: Optional[str] = None


class CartItem(BaseModel):
    package: Package
    quantity: int = Field(1, ge=1)


class User(BaseModel):
    """
    One identity slot. CFX identities use the forum username as id.
    """
    id: str
    username: str
    avatar: Optional[str] = None
    provider: Literal["discord", "cfx"]


class AuthState(BaseModel):
    discord: Optional[User] = None
    cfx: Optional[User] = None


# Proxy request bodies

class BasketCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    complete_url: Optional[str] = None
    cancel_url: Optional[str] = None
    complete_auto_redirect: bool = False
    custom: Optional[Dict[str, Any]] = None


class PackagePayload(BaseModel):
    """
    Body accepted when attaching a package to a basket.
    Unknown keys are rejected.
    """
    model_config = ConfigDict(extra="forbid")

    package_id: int = Field(..., gt=0, description="Package to attach")
    quantity: int = Field(1, ge=1, le=100)
    type: Literal["single", "subscription"] = "single"
    variable_data: Optional[Dict[str, Any]] = None


class TokenExchange(BaseModel):
    code: Optional[str] = None


# Reviews

class Review(BaseModel):
    """
    Row of the "reviews" table, keyed by free-text product name.
    """
    id: int
    user_username: Optional[str] = None
    user_avatar: Optional[str] = None
    product_name: str
    review_description: Optional[str] = None
    rating: int = Field(..., ge=1, le=5)
    created_at: Optional[datetime] = None


class ReviewStats(BaseModel):
    total: int = 0
    averageRating: str = "0.0"


Category.model_rebuild()
