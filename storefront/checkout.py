"""Checkout flow: shipping form -> order -> payment -> success/failed.

``CheckoutFlow`` carries one checkout attempt. The HTTP layer is stateless,
so a flow for the payment step is rebuilt with ``CheckoutFlow.resume``
from the order id and client secret the browser kept from the form step.
"""
import logging
from enum import Enum
from typing import Optional

import stripe
from starlette.concurrency import run_in_threadpool

from storefront import stripe_service
from storefront.api_client import ApiError, BackendClient
from storefront.auth import CurrentUser
from storefront.cart import CartStore
from storefront.pricing import ShippingPolicy, TaxPolicy, compute_totals
from storefront.schemas import (
    CartItem,
    CheckoutForm,
    Order,
    PaymentMethod,
    PaymentStatus,
    ShippingAddress,
    Totals,
)

logger = logging.getLogger(__name__)

PAYMENT_NOT_COMPLETED = "Die Zahlung konnte nicht abgeschlossen werden. Bitte versuchen Sie es erneut."
PAID_BUT_NOT_RECORDED = (
    "Zahlung erfolgreich, aber Fehler beim Aktualisieren der Bestellung. Bitte kontaktieren Sie uns."
)
LOGIN_REQUIRED = "Bitte melden Sie sich an, um eine Bestellung aufzugeben"
ACCESS_DENIED = "Sie haben keine Berechtigung, diese Bestellung anzuzeigen"
FOREIGN_PAYMENT = "Diese Zahlung gehört nicht zu dieser Bestellung"


class CheckoutStep(str, Enum):
    FORM = "form"
    PAYMENT = "payment"
    REDIRECT = "redirect"
    SUCCESS = "success"
    FAILED = "failed"


class CheckoutError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def ensure_owner(order: Order, user: Optional[CurrentUser]):
    if user is None:
        raise CheckoutError(LOGIN_REQUIRED, 401)
    if order.user_id != user.id:
        raise CheckoutError(ACCESS_DENIED, 403)


class CheckoutFlow:
    def __init__(
        self,
        backend: BackendClient,
        cart: CartStore,
        payments=stripe_service,
        shipping_policy: ShippingPolicy = None,
        tax_policy: TaxPolicy = None,
    ):
        self.backend = backend
        self.cart = cart
        self.payments = payments
        self.shipping_policy = shipping_policy
        self.tax_policy = tax_policy

        self.step = CheckoutStep.FORM
        self.order: Optional[Order] = None
        self.order_id: Optional[str] = None
        self.client_secret: Optional[str] = None
        self.totals: Optional[Totals] = None
        self.redirect_url: Optional[str] = None
        self.payment_method: Optional[PaymentMethod] = None
        self.error: Optional[str] = None

    @classmethod
    def resume(cls, backend, cart, order_id: str, client_secret: str, **kwargs) -> "CheckoutFlow":
        flow = cls(backend, cart, **kwargs)
        flow.order_id = order_id
        flow.client_secret = client_secret
        flow.step = CheckoutStep.PAYMENT
        return flow

    @classmethod
    async def for_order(
        cls, backend, cart, order_id: str, client_secret: str, user: Optional[CurrentUser], **kwargs
    ) -> "CheckoutFlow":
        """Resume the payment step of an order the caller owns."""
        order = await backend.get_order(order_id)
        ensure_owner(order, user)
        flow = cls.resume(backend, cart, order_id, client_secret, **kwargs)
        flow.order = order
        return flow

    def quote(self) -> Totals:
        return compute_totals(self.cart.cart_total, self.shipping_policy, self.tax_policy)

    async def submit_form(self, form: CheckoutForm, user: Optional[CurrentUser]) -> Totals:
        if self.step != CheckoutStep.FORM:
            raise CheckoutError("Checkout ist bereits beim Bezahlen")
        if user is None:
            raise CheckoutError(LOGIN_REQUIRED, 401)
        if not len(self.cart):
            raise CheckoutError("Ihr Warenkorb ist leer")
        missing = form.missing_fields()
        if missing:
            raise CheckoutError("Bitte füllen Sie alle Pflichtfelder aus: " + ", ".join(missing))

        self.error = None
        self.totals = self.quote()
        order_data = {
            "userId": user.id,
            "items": [
                {"productId": item.id, "quantity": item.quantity}
                for item in self.cart.items
            ],
            "shippingAddress": form.shipping_address().model_dump(
                mode="json", by_alias=True, exclude_none=True
            ),
            # the real method is known once the provider confirms
            "paymentMethod": PaymentMethod.CARD.value,
        }
        self.order = await self.backend.create_order(order_data)
        self.order_id = self.order.id
        logger.info("Created order %s (total %s)", self.order_id, self.totals.total)

        try:
            self.client_secret = await self.backend.create_payment_intent(self.order_id)
        except ApiError as exc:
            self.error = exc.message or "Fehler beim Erstellen der Zahlung"
            raise

        self.step = CheckoutStep.PAYMENT
        return self.totals

    async def confirm_payment(self, payment_method: str) -> CheckoutStep:
        """Confirm the payment intent at the provider.

        Confirmation always carries the order's return URL: redirect-only
        methods such as TWINT leave through ``redirect_url`` and are settled
        by reconciliation once the browser comes back.
        """
        if self.step != CheckoutStep.PAYMENT or not self.client_secret:
            raise CheckoutError("Keine offene Zahlung für diese Bestellung")

        self.error = None
        try:
            intent = await run_in_threadpool(
                self.payments.confirm_payment,
                self.client_secret,
                payment_method,
                self.payments.order_return_url(self.order_id),
            )
        except stripe.StripeError as exc:
            self.error = self.payments.error_message(exc)
            logger.warning("Payment for order %s rejected: %s", self.order_id, self.error)
            await self._mark_failed()
            self.step = CheckoutStep.FAILED
            return self.step

        if self.payments.intent_order_id(intent) != self.order_id:
            logger.warning("Payment %s does not belong to order %s", intent["id"], self.order_id)
            raise CheckoutError(FOREIGN_PAYMENT, 403)

        status = intent["status"]
        if status == "succeeded":
            await self._handle_success(intent)
        elif status in ("requires_payment_method", "canceled"):
            self.error = PAYMENT_NOT_COMPLETED
            await self._mark_failed()
            self.step = CheckoutStep.FAILED
        else:
            # requires_action / processing: the outcome arrives via webhook
            self.redirect_url = (
                self.payments.redirect_url(intent)
                or self.payments.order_return_url(self.order_id)
            )
            self.step = CheckoutStep.REDIRECT
        return self.step

    async def _handle_success(self, intent):
        self.payment_method = self.payments.detect_payment_method(intent)
        logger.info("Order %s paid via %s", self.order_id, self.payment_method.value)
        try:
            await self.backend.update_payment(
                self.order_id,
                PaymentStatus.PAID,
                stripe_payment_id=intent["id"],
                payment_method=self.payment_method,
            )
        except ApiError as exc:
            logger.error("Failed to update order %s payment status: %s", self.order_id, exc.message)
            self.error = PAID_BUT_NOT_RECORDED
            return
        self.cart.clear_cart()
        self.step = CheckoutStep.SUCCESS

    async def _mark_failed(self):
        try:
            await self.backend.update_payment(self.order_id, PaymentStatus.FAILED)
        except ApiError as exc:
            logger.error("Failed to update order %s payment status to FAILED: %s", self.order_id, exc.message)

    async def restore_from_order(self, order_id: str, user: Optional[CurrentUser]) -> CheckoutForm:
        """Rebuild cart and shipping form from an earlier, unpaid order."""
        if user is None:
            raise CheckoutError(LOGIN_REQUIRED, 401)
        order = await self.backend.get_order(order_id)
        ensure_owner(order, user)

        if order.items:
            self.cart.clear_cart()
            for item in order.items:
                # older orders come without the nested product
                product = item.product or await self.backend.get_product(item.product_id)
                self.cart.add_to_cart(CartItem(
                    id=item.product_id,
                    name=product.name,
                    price=item.price,
                    image=product.image or "",
                ))
                self.cart.update_quantity(item.product_id, item.quantity)

        address = order.shipping_address or ShippingAddress()
        return CheckoutForm(
            first_name=address.first_name,
            last_name=address.last_name,
            email=user.email,
            phone=user.phone,
            address=address.address,
            city=address.city,
            zip_code=address.zip_code,
            country=address.country or "Schweiz",
        )
