import logging

import stripe

from storefront import config
from storefront.schemas import PaymentMethod

logger = logging.getLogger(__name__)

stripe.api_key = config.STRIPE_SECRET_KEY

CHARGE_TYPES = {
    "twint": PaymentMethod.TWINT,
    "card": PaymentMethod.CARD,
}


def intent_id_from_secret(client_secret: str) -> str:
    # pi_123_secret_abc -> pi_123
    return client_secret.split("_secret_")[0]


def order_return_url(order_id: str) -> str:
    return f"{config.SITE_URL}/order-success?orderId={order_id}"


def confirm_payment(client_secret: str, payment_method: str, return_url: str):
    return stripe.PaymentIntent.confirm(
        intent_id_from_secret(client_secret),
        payment_method=payment_method,
        return_url=return_url,
        expand=["latest_charge"],
    )


def _field(obj, name):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def detect_payment_method(intent) -> PaymentMethod:
    details = _field(_field(intent, "latest_charge"), "payment_method_details")
    if details:
        return CHARGE_TYPES.get(_field(details, "type"), PaymentMethod.CARD)
    return PaymentMethod.CARD


def redirect_url(intent):
    return _field(_field(_field(intent, "next_action"), "redirect_to_url"), "url")


def intent_order_id(intent):
    # set by the backend when it creates the intent
    return _field(_field(intent, "metadata"), "orderId")


def error_message(error: stripe.StripeError) -> str:
    return error.user_message or str(error) or "Zahlung fehlgeschlagen"
