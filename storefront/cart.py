import logging
from decimal import Decimal
from typing import Callable, Dict, List

from storefront.models import CartLine
from storefront.pricing import ShippingPolicy, default_shipping_policy, to_money
from storefront.schemas import CartItem

logger = logging.getLogger(__name__)

Subscriber = Callable[["CartStore"], None]


class CartStore:
    """Line items of one browser cart, unique by product id.

    Mutations are synchronous and every subscriber is notified before the
    mutating call returns.
    """

    def __init__(self, items=None, shipping_policy: ShippingPolicy = None):
        self._items: Dict[str, CartItem] = {}
        self._subscribers: List[Subscriber] = []
        self.shipping_policy = shipping_policy or default_shipping_policy()
        for item in items or []:
            if item.quantity > 0:
                self._items[item.id] = item.model_copy()

    @property
    def items(self) -> List[CartItem]:
        return [item.model_copy() for item in self._items.values()]

    def get(self, product_id: str):
        item = self._items.get(product_id)
        return item.model_copy() if item else None

    def __len__(self):
        return len(self._items)

    def __contains__(self, product_id):
        return product_id in self._items

    @property
    def cart_count(self) -> int:
        return sum(item.quantity for item in self._items.values())

    @property
    def cart_total(self) -> Decimal:
        return to_money(sum((item.line_total for item in self._items.values()), Decimal("0")))

    @property
    def remaining_for_free_shipping(self) -> Decimal:
        return self.shipping_policy.remaining_for_free_shipping(self.cart_total)

    def subscribe(self, callback: Subscriber) -> Callable[[], None]:
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _notify(self):
        for callback in list(self._subscribers):
            callback(self)

    def add_to_cart(self, item: CartItem):
        existing = self._items.get(item.id)
        if existing:
            existing.quantity += 1
        else:
            self._items[item.id] = item.model_copy(update={"quantity": 1})
        self._notify()

    def update_quantity(self, product_id: str, quantity: int):
        if quantity <= 0:
            self.remove_from_cart(product_id)
            return
        item = self._items.get(product_id)
        if item is None:
            return
        item.quantity = quantity
        self._notify()

    def remove_from_cart(self, product_id: str):
        self._items.pop(product_id, None)
        self._notify()

    def clear_cart(self):
        self._items.clear()
        self._notify()

    def summary(self) -> dict:
        return {
            "items": self.items,
            "cartCount": self.cart_count,
            "cartTotal": self.cart_total,
            "remainingForFreeShipping": self.remaining_for_free_shipping,
        }


def load_cart(db, cart_id: str, shipping_policy: ShippingPolicy = None) -> CartStore:
    lines = (
        db.query(CartLine)
        .filter_by(cart_id=cart_id)
        .order_by(CartLine.position)
        .all()
    )
    items = [
        CartItem(
            id=line.product_id,
            name=line.name,
            price=line.price,
            image=line.image or "",
            quantity=line.quantity,
        )
        for line in lines
    ]
    return CartStore(items, shipping_policy=shipping_policy)


def persist_cart(session_factory, cart_id: str, baseline=None) -> Subscriber:
    """Subscriber that writes each change of the store into ``cart_lines``.

    Only the difference to the quantities this subscriber last saw is
    applied, so two requests changing the same cart at once add up instead
    of overwriting each other. ``baseline`` is what the store was loaded with.
    """
    seen = {item.id: item.quantity for item in baseline or []}

    def save(store: CartStore):
        db = session_factory()
        try:
            current = {item.id: item for item in store.items}
            rows = {row.product_id: row for row in db.query(CartLine).filter_by(cart_id=cart_id)}
            next_position = max((row.position for row in rows.values()), default=-1) + 1

            for product_id in seen:
                if product_id not in current and product_id in rows:
                    db.delete(rows.pop(product_id))

            for item in current.values():
                row = rows.get(item.id)
                quantity = (row.quantity if row else 0) + item.quantity - seen.get(item.id, 0)
                if quantity <= 0:
                    if row:
                        db.delete(row)
                    continue
                if row is None:
                    row = CartLine(cart_id=cart_id, product_id=item.id, position=next_position)
                    next_position += 1
                    db.add(row)
                row.name = item.name
                row.price = item.price
                row.image = item.image
                row.quantity = quantity
            db.commit()
        except Exception:
            db.rollback()
            logger.exception("Could not persist cart %s", cart_id)
            raise
        finally:
            db.close()
        seen.clear()
        seen.update({product_id: item.quantity for product_id, item in current.items()})

    return save
