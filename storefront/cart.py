import logging
from typing import List, Optional

from pydantic import ValidationError

from schemas import CartItem, Package
from storefront.storage import CART, LocalStorage

logger = logging.getLogger(__name__)


def load_items(raw) -> List[CartItem]:
    items = []
    for entry in raw or []:
        try:
            items.append(CartItem.model_validate(entry))
        except ValidationError:
            logger.warning("Dropping unreadable cart entry")
    return items


def dump_items(items: List[CartItem]) -> list:
    return [item.model_dump(mode="json", exclude_none=True) for item in items]


class CartStore:
    """Persisted cart: one line per package id, last write wins."""

    def __init__(self, storage: LocalStorage):
        self.storage = storage
        self.items: List[CartItem] = load_items(storage.get_json(CART, []))

    def _save(self) -> None:
        self.storage.set_json(CART, dump_items(self.items))

    def _find(self, package_id: int) -> Optional[CartItem]:
        return next((i for i in self.items if i.package.id == package_id), None)

    def add_item(self, package: Package, quantity: int = 1) -> None:
        if quantity < 1:
            raise ValueError("quantity must be at least 1")
        existing = self._find(package.id)
        if existing:
            existing.quantity += quantity
        else:
            self.items.append(CartItem(package=package, quantity=quantity))
        self._save()

    def remove_item(self, package_id: int) -> None:
        kept = [i for i in self.items if i.package.id != package_id]
        if len(kept) != len(self.items):
            self.items = kept
            self._save()

    def update_quantity(self, package_id: int, quantity: int) -> None:
        if quantity <= 0:
            self.remove_item(package_id)
            return
        item = self._find(package_id)
        if item:
            item.quantity = quantity
            self._save()

    def clear(self) -> None:
        self.items = []
        self._save()

    def contains(self, package_id: int) -> bool:
        return self._find(package_id) is not None

    @property
    def total_price(self) -> float:
        return sum(i.package.total_price * i.quantity for i in self.items)

    @property
    def total_items(self) -> int:
        return sum(i.quantity for i in self.items)

    def __len__(self) -> int:
        return len(self.items)
