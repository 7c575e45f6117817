"""
Catalog display logic: turns the flat category list from the proxy into a
tree and applies search, tag, price and paging choices to it. Everything
here is pure; nothing touches the network.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Sequence, Union

from schemas import Category, Package

PER_PAGE = 10

PriceSort = Literal["none", "asc", "desc"]


@dataclass(frozen=True)
class CatalogQuery:
    search: str = ""
    tags: Sequence[str] = ()
    only_free: bool = False
    only_discounted: bool = False
    price_sort: PriceSort = "none"


@dataclass(frozen=True)
class Page:
    items: List[Package]
    page: int
    total_pages: int
    total: int


@dataclass
class CatalogView:
    """Filter state of the products page; page is clamped on every render."""
    categories: List[Category] = field(default_factory=list)
    tag_index: Mapping = field(default_factory=dict)
    active: Union[int, str] = "all"
    query: CatalogQuery = field(default_factory=CatalogQuery)
    page: int = 1

    def render(self) -> Page:
        packages = packages_for_category(self.categories, self.active)
        result = paginate(filter_packages(packages, self.query, self.tag_index), self.page)
        self.page = result.page
        return result


def build_category_tree(flat: Iterable[Category]) -> List[Category]:
    """
    Group the flat upstream list by parent id. Roots keep upstream order;
    children whose parent is not in the list are dropped.
    """
    flat = list(flat)
    by_id: Dict[int, Category] = {c.id: c.model_copy(update={"subcategories": []}) for c in flat}
    roots = []
    for cat in flat:
        node = by_id[cat.id]
        if cat.parent and cat.parent.id:
            parent = by_id.get(cat.parent.id)
            if parent is not None:
                parent.subcategories.append(node)
        else:
            roots.append(node)
    return roots


def packages_for_category(tree: Sequence[Category], active: Union[int, str] = "all") -> List[Package]:
    if active == "all":
        out: List[Package] = []
        for cat in tree:
            out.extend(cat.packages)
            for sub in cat.subcategories:
                out.extend(sub.packages)
        return out
    for cat in tree:
        for candidate in [cat, *cat.subcategories]:
            if candidate.id == active:
                return list(candidate.packages)
    return []


def tag_name(tag) -> str:
    return tag if isinstance(tag, str) else tag.get("name", "")


def package_tags(package_id: int, tag_index: Mapping) -> Optional[List[str]]:
    entry = tag_index.get(str(package_id), tag_index.get(package_id))
    if entry is None:
        return None
    tags = entry.get("tags") if isinstance(entry, dict) else entry
    if not tags:
        return None
    return [tag_name(t) for t in tags]


def collect_tags(tag_index: Mapping) -> List[str]:
    names = set()
    for key in tag_index:
        names.update(package_tags(key, tag_index) or [])
    names.discard("")
    return sorted(names)


def matches_search(pkg: Package, search: str) -> bool:
    q = search.lower()
    return q in pkg.name.lower() or q in (pkg.description or "").lower()


def filter_packages(packages: Sequence[Package], query: CatalogQuery,
                    tag_index: Optional[Mapping] = None) -> List[Package]:
    result = list(packages)
    if query.search:
        result = [p for p in result if matches_search(p, query.search)]
    if query.tags:
        index = tag_index or {}
        selected = set(query.tags)

        def has_all(p: Package) -> bool:
            tags = package_tags(p.id, index)
            return tags is not None and selected.issubset(tags)

        result = [p for p in result if has_all(p)]
    if query.only_free:
        result = [p for p in result if p.total_price == 0]
    if query.only_discounted:
        result = [p for p in result if p.discount > 0]
    if query.price_sort == "asc":
        result = sorted(result, key=lambda p: p.total_price)
    elif query.price_sort == "desc":
        result = sorted(result, key=lambda p: p.total_price, reverse=True)
    return result


def total_pages(total: int, per_page: int = PER_PAGE) -> int:
    return math.ceil(total / per_page)


def paginate(items: Sequence[Package], page: int = 1, per_page: int = PER_PAGE) -> Page:
    pages = total_pages(len(items), per_page)
    page = max(1, page)
    if pages > 0 and page > pages:
        page = pages
    start = (page - 1) * per_page
    return Page(items=list(items[start:start + per_page]), page=page, total_pages=pages, total=len(items))


def is_recent(created_at: Optional[str], now: Optional[datetime] = None, days: int = 30) -> bool:
    if not created_at:
        return False
    try:
        created = datetime.fromisoformat(created_at.replace("Z", "+00:00"))
    except ValueError:
        return False
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return created > now - timedelta(days=days)
