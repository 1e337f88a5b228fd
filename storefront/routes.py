from decimal import Decimal
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query
from pydantic import BaseModel

from storefront import config
from storefront.api_client import BackendClient
from storefront.auth import CurrentUser, optional_user, verify_token
from storefront.cart import CartStore
from storefront.catalog import (
    ALL,
    ProductFilter,
    as_cart_item,
    can_add_to_cart,
    category_counts,
    filter_products,
    price_ceiling,
)
from storefront.checkout import ACCESS_DENIED, CheckoutFlow
from storefront.dependencies import get_backend, get_cart, get_shared_backend, get_watcher
from storefront.pricing import compute_totals
from storefront.reconciliation import Outcome, PaymentWatcher
from storefront.schemas import (
    PAYMENT_STATUS_LABELS,
    CheckoutForm,
    payment_method_label,
)

router = APIRouter()

AUTH_ACTIONS = {
    "register", "login", "logout", "me", "profile",
    "change-password", "check-verification", "resend-verification",
}


class AddToCartRequest(BaseModel):
    productId: str


class QuantityRequest(BaseModel):
    quantity: int


class ConfirmPaymentRequest(BaseModel):
    clientSecret: str
    paymentMethod: str


def cart_view(cart: CartStore) -> dict:
    view = cart.summary()
    view["totals"] = compute_totals(cart.cart_total)
    return view


def order_view(order) -> dict:
    return {
        "order": order,
        "statusLabel": order.status_label,
        "paymentStatusLabel": PAYMENT_STATUS_LABELS[order.payment_status],
        "paymentMethodLabel": payment_method_label(order.payment_method),
    }


def check_owner(order, user: CurrentUser):
    if order.user_id != user.id:
        raise HTTPException(status_code=403, detail=ACCESS_DENIED)


@router.get("/config")
def storefront_config():
    return {
        "publishableKey": config.STRIPE_PUBLISHABLE_KEY,
        "currency": config.CURRENCY,
        "freeShippingThreshold": config.FREE_SHIPPING_THRESHOLD,
        "shippingFee": config.SHIPPING_FEE,
        "taxRate": config.TAX_RATE,
    }


# --- catalog ---

@router.get("/products")
async def list_products(
    category: str = ALL,
    productType: str = ALL,
    minPrice: Optional[Decimal] = None,
    maxPrice: Optional[Decimal] = None,
    search: str = "",
    inStock: bool = False,
    sort: str = "default",
    backend: BackendClient = Depends(get_backend),
):
    products = await backend.list_products()
    criteria = ProductFilter(
        category=category,
        product_type=productType,
        min_price=minPrice,
        max_price=maxPrice,
        search=search,
        in_stock_only=inStock,
        sort=sort,
    )
    return {
        "products": filter_products(products, criteria),
        "categories": [{"name": name, "count": count} for name, count in category_counts(products)],
        "maxPrice": price_ceiling(products),
    }


@router.get("/products/{product_id}")
async def product_detail(product_id: str, backend: BackendClient = Depends(get_backend)):
    product = await backend.get_product(product_id)
    return {"product": product, "canAddToCart": can_add_to_cart(product)}


# --- cart ---

@router.get("/cart")
def view_cart(cart: CartStore = Depends(get_cart)):
    return cart_view(cart)


@router.post("/cart/add")
async def add_to_cart(
    request: AddToCartRequest,
    cart: CartStore = Depends(get_cart),
    backend: BackendClient = Depends(get_backend),
):
    product = await backend.get_product(request.productId)
    if not can_add_to_cart(product):
        raise HTTPException(status_code=400, detail="Produkt nicht verfügbar")
    cart.add_to_cart(as_cart_item(product))
    return cart_view(cart)


@router.put("/cart/{product_id}")
def update_cart_item(product_id: str, request: QuantityRequest, cart: CartStore = Depends(get_cart)):
    cart.update_quantity(product_id, request.quantity)
    return cart_view(cart)


@router.delete("/cart/{product_id}")
def remove_cart_item(product_id: str, cart: CartStore = Depends(get_cart)):
    cart.remove_from_cart(product_id)
    return cart_view(cart)


@router.delete("/cart")
def clear_cart(cart: CartStore = Depends(get_cart)):
    cart.clear_cart()
    return cart_view(cart)


# --- checkout ---

@router.get("/checkout")
async def checkout_page(
    retry: Optional[str] = None,
    cart: CartStore = Depends(get_cart),
    backend: BackendClient = Depends(get_backend),
    user: Optional[CurrentUser] = Depends(optional_user),
):
    flow = CheckoutFlow(backend, cart)
    if retry and not len(cart):
        form = await flow.restore_from_order(retry, user)
    else:
        form = CheckoutForm(email=user.email if user else "", phone=user.phone if user else "")
    return {"form": form, "cart": cart_view(cart)}


@router.post("/checkout")
async def submit_checkout(
    form: CheckoutForm,
    cart: CartStore = Depends(get_cart),
    backend: BackendClient = Depends(get_backend),
    user: Optional[CurrentUser] = Depends(optional_user),
):
    flow = CheckoutFlow(backend, cart)
    totals = await flow.submit_form(form, user)
    return {
        "step": flow.step,
        "orderId": flow.order_id,
        "clientSecret": flow.client_secret,
        "publishableKey": config.STRIPE_PUBLISHABLE_KEY,
        "totals": totals,
    }


@router.post("/checkout/{order_id}/confirm")
async def confirm_checkout(
    order_id: str,
    request: ConfirmPaymentRequest,
    cart: CartStore = Depends(get_cart),
    backend: BackendClient = Depends(get_backend),
    user: CurrentUser = Depends(verify_token),
):
    flow = await CheckoutFlow.for_order(backend, cart, order_id, request.clientSecret, user)
    step = await flow.confirm_payment(request.paymentMethod)
    return {
        "step": step,
        "orderId": order_id,
        "redirectUrl": flow.redirect_url,
        "paymentMethod": flow.payment_method,
        "error": flow.error,
    }


@router.get("/order-success")
async def order_success(
    orderId: str = Query(...),
    cart: CartStore = Depends(get_cart),
    user: CurrentUser = Depends(verify_token),
    backend: BackendClient = Depends(get_shared_backend),
    watcher: PaymentWatcher = Depends(get_watcher),
):
    result = await watcher.watch(orderId, lambda: backend.get_order(orderId))
    if result.order is None:
        raise HTTPException(status_code=404, detail="Bestellung nicht gefunden")
    check_owner(result.order, user)
    if result.outcome == Outcome.FAILED:
        return {"outcome": result.outcome, "redirect": f"/payment-failed?orderId={orderId}"}
    if result.outcome == Outcome.PAID:
        cart.clear_cart()
    return {"outcome": result.outcome, **order_view(result.order)}


@router.get("/payment-failed")
async def payment_failed(
    orderId: str = Query(...),
    user: CurrentUser = Depends(verify_token),
    backend: BackendClient = Depends(get_backend),
):
    order = await backend.get_order(orderId)
    check_owner(order, user)
    return {
        "order": order,
        "retryUrl": f"/checkout?retry={order.id}",
    }


# --- customer orders ---

@router.get("/orders")
async def my_orders(
    user: CurrentUser = Depends(verify_token),
    backend: BackendClient = Depends(get_backend),
):
    orders = await backend.list_orders(user_id=user.id)
    return {"orders": orders}


@router.get("/orders/{order_id}")
async def my_order(
    order_id: str,
    user: CurrentUser = Depends(verify_token),
    backend: BackendClient = Depends(get_backend),
):
    order = await backend.get_order(order_id)
    check_owner(order, user)
    return order_view(order)


# --- auth proxy ---

@router.api_route("/auth/{action}", methods=["GET", "POST", "PUT"])
async def auth_proxy(
    action: str,
    payload: Optional[dict] = Body(None),
    backend: BackendClient = Depends(get_backend),
):
    if action not in AUTH_ACTIONS:
        raise HTTPException(status_code=404, detail="Not found")
    return await backend.auth(action, payload)
