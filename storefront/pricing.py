from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from storefront import config
from storefront.schemas import Totals

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class ShippingPolicy:
    threshold: Decimal = Decimal("50")
    fee: Decimal = Decimal("8")

    def shipping_for(self, subtotal) -> Decimal:
        if to_money(subtotal) >= self.threshold:
            return to_money(0)
        return to_money(self.fee)

    def remaining_for_free_shipping(self, subtotal) -> Decimal:
        return max(to_money(0), to_money(self.threshold - to_money(subtotal)))


@dataclass(frozen=True)
class TaxPolicy:
    rate: Decimal = Decimal("0")

    def tax_for(self, subtotal) -> Decimal:
        return to_money(to_money(subtotal) * self.rate)


def default_shipping_policy() -> ShippingPolicy:
    return ShippingPolicy(threshold=config.FREE_SHIPPING_THRESHOLD, fee=config.SHIPPING_FEE)


def default_tax_policy() -> TaxPolicy:
    return TaxPolicy(rate=config.TAX_RATE)


def shipping_for(subtotal, policy: ShippingPolicy = None) -> Decimal:
    return (policy or default_shipping_policy()).shipping_for(subtotal)


def compute_totals(subtotal, shipping_policy: ShippingPolicy = None, tax_policy: TaxPolicy = None) -> Totals:
    """total = subtotal + shipping + tax, every amount rounded to the cent."""
    subtotal = to_money(subtotal)
    shipping = (shipping_policy or default_shipping_policy()).shipping_for(subtotal)
    tax = (tax_policy or default_tax_policy()).tax_for(subtotal)
    return Totals(subtotal=subtotal, shipping=shipping, tax=tax, total=subtotal + shipping + tax)
