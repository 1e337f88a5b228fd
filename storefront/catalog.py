import math
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Tuple

from storefront.schemas import CartItem, Product

ALL = "Alle"

SORT_OPTIONS = {
    "default": "Standard",
    "price-low": "Preis: Niedrig zu Hoch",
    "price-high": "Preis: Hoch zu Niedrig",
    "name-asc": "Name: A-Z",
    "name-desc": "Name: Z-A",
}


@dataclass
class ProductFilter:
    category: str = ALL
    product_type: str = ALL
    min_price: Optional[Decimal] = None
    max_price: Optional[Decimal] = None
    search: str = ""
    in_stock_only: bool = False
    sort: str = "default"

    def matches(self, product: Product) -> bool:
        if not product.is_active:
            return False
        if self.category != ALL and product.category != self.category:
            return False
        if self.product_type != ALL and (
            product.product_type is None or product.product_type.value != self.product_type
        ):
            return False
        if self.min_price is not None and product.sell_price < self.min_price:
            return False
        if self.max_price is not None and product.sell_price > self.max_price:
            return False
        if self.in_stock_only and product.stock <= 0:
            return False
        query = self.search.strip().lower()
        if query:
            haystack = [product.name.lower(), (product.description or "").lower()]
            if not any(query in text for text in haystack):
                return False
        return True


def filter_products(products: List[Product], criteria: ProductFilter) -> List[Product]:
    selected = [p for p in products if criteria.matches(p)]
    if criteria.sort == "price-low":
        selected.sort(key=lambda p: p.sell_price)
    elif criteria.sort == "price-high":
        selected.sort(key=lambda p: p.sell_price, reverse=True)
    elif criteria.sort == "name-asc":
        selected.sort(key=lambda p: p.name.lower())
    elif criteria.sort == "name-desc":
        selected.sort(key=lambda p: p.name.lower(), reverse=True)
    return selected


def category_counts(products: List[Product]) -> List[Tuple[str, int]]:
    counts = {}
    for product in products:
        counts[product.category] = counts.get(product.category, 0) + 1
    return [(ALL, len(products))] + list(counts.items())


def price_ceiling(products: List[Product]) -> int:
    """Highest price rounded up to the next hundred, for the price slider."""
    if not products:
        return 1000
    highest = max(p.sell_price for p in products)
    return int(math.ceil(highest / 100) * 100)


def can_add_to_cart(product: Product) -> bool:
    return product.is_active and product.stock > 0 and bool(product.image)


def as_cart_item(product: Product) -> CartItem:
    return CartItem(id=product.id, name=product.name, price=product.sell_price, image=product.image or "")


PROFIT_SORT_KEYS = {
    "profit": lambda p: p.get("profit") or 0,
    "revenue": lambda p: p.get("totalRevenue") or 0,
    "name": lambda p: (p.get("name") or "").lower(),
}


def sort_profitability(products: List[dict], by: str = "profit", order: str = "desc") -> List[dict]:
    key = PROFIT_SORT_KEYS.get(by, PROFIT_SORT_KEYS["profit"])
    return sorted(products, key=key, reverse=(order == "desc"))
