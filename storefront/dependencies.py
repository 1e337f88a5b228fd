import uuid
from typing import Optional

from fastapi import Cookie, Depends, Request, Response

from storefront import database
from storefront.api_client import BackendClient
from storefront.auth import CurrentUser, optional_user
from storefront.cart import CartStore, load_cart, persist_cart

CART_COOKIE = "cart_id"


async def get_backend(user: Optional[CurrentUser] = Depends(optional_user)):
    async with BackendClient(token=user.token if user else None) as backend:
        yield backend


def get_cart_id(response: Response, cart_id: Optional[str] = Cookie(None)) -> str:
    if not cart_id:
        cart_id = uuid.uuid4().hex
        response.set_cookie(CART_COOKIE, cart_id, httponly=True, samesite="lax")
    return cart_id


def get_cart(cart_id: str = Depends(get_cart_id)) -> CartStore:
    db = database.SessionLocal()
    try:
        store = load_cart(db, cart_id)
    finally:
        db.close()
    store.subscribe(persist_cart(database.SessionLocal, cart_id, store.items))
    return store


def get_watcher(request: Request):
    return request.app.state.watcher


def get_shared_backend(request: Request) -> BackendClient:
    return request.app.state.backend
