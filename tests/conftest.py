import json
import uuid

import httpx
import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import storefront.config
import storefront.database
from storefront.api_client import BackendClient
from storefront.database import Base
from storefront.dependencies import get_backend, get_shared_backend
from storefront.main import app as fastapi_app

SQLALCHEMY_DATABASE_URL = "sqlite:///./test_storefront.db"
engine = create_engine(SQLALCHEMY_DATABASE_URL, connect_args={
                       "check_same_thread": False})
TestingSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, bind=engine)

JWT_SECRET = "test-secret"


class FakeBackend:
    """In-memory stand-in for the shop's REST backend."""

    def __init__(self):
        self.products = {}
        self.orders = {}
        self.calls = []
        self.fail = {}          # (method, path) -> (status, error)
        self.payment_updates = []

    def add_product(self, product_id, name, price, stock=5, category="Ski", image="/img.jpg", **extra):
        self.products[product_id] = {
            "id": product_id,
            "name": name,
            "sellPrice": price,
            "stock": stock,
            "category": category,
            "image": image,
            "isActive": True,
            **extra,
        }
        return self.products[product_id]

    def add_order(self, order_id, payment_status="PENDING", user_id="user-1", items=None, **extra):
        self.orders[order_id] = {
            "id": order_id,
            "orderNumber": f"YS-{order_id}",
            "userId": user_id,
            "status": "PENDING",
            "paymentStatus": payment_status,
            "items": items or [],
            **extra,
        }
        return self.orders[order_id]

    def transport(self):
        # late-bound so tests can wrap handle()
        return httpx.MockTransport(lambda request: self.handle(request))

    def client(self, token=None):
        return BackendClient(base_url="http://backend", token=token, transport=self.transport())

    def handle(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.calls.append((method, path))
        if (method, path) in self.fail:
            status, error = self.fail[(method, path)]
            return httpx.Response(status, json={"error": error})

        parts = path.strip("/").split("/")[1:]  # drop "api"
        body = json.loads(request.content) if request.content and b"{" in request.content[:1] else {}

        if parts == ["products"] and method == "GET":
            return httpx.Response(200, json={"products": list(self.products.values())})
        if parts[0] == "products" and len(parts) == 2 and method == "GET":
            product = self.products.get(parts[1])
            if not product:
                return httpx.Response(404, json={"error": "Product not found"})
            return httpx.Response(200, json={"product": product})

        if parts == ["orders"] and method == "POST":
            order_id = uuid.uuid4().hex[:8]
            items = []
            subtotal = 0
            for line in body["items"]:
                product = self.products[line["productId"]]
                subtotal += product["sellPrice"] * line["quantity"]
                items.append({
                    "id": uuid.uuid4().hex[:6],
                    "productId": product["id"],
                    "quantity": line["quantity"],
                    "price": product["sellPrice"],
                    "product": {"id": product["id"], "name": product["name"], "image": product["image"]},
                })
            order = self.add_order(
                order_id,
                user_id=body["userId"],
                items=items,
                subtotal=subtotal,
                shippingAddress=body["shippingAddress"],
                paymentMethod=body["paymentMethod"],
            )
            return httpx.Response(201, json={"order": order})
        if parts == ["orders"] and method == "GET":
            orders = list(self.orders.values())
            if "userId" in request.url.params:
                orders = [o for o in orders if o["userId"] == request.url.params["userId"]]
            if "status" in request.url.params:
                orders = [o for o in orders if o["status"] == request.url.params["status"]]
            return httpx.Response(200, json={"orders": orders})
        if parts[0] == "orders" and len(parts) >= 2:
            order = self.orders.get(parts[1])
            if not order:
                return httpx.Response(404, json={"error": "Order not found"})
            if len(parts) == 2 and method == "GET":
                return httpx.Response(200, json={"order": order})
            if parts[2:] == ["payment"] and method == "PATCH":
                self.payment_updates.append((parts[1], body))
                order["paymentStatus"] = body["paymentStatus"]
                if "paymentMethod" in body:
                    order["paymentMethod"] = body["paymentMethod"]
                return httpx.Response(200, json={"order": order})
            if parts[2:] == ["status"] and method == "PATCH":
                order["status"] = body["status"]
                if body.get("trackingNumber"):
                    order.setdefault("shippingAddress", {})["trackingNumber"] = body["trackingNumber"]
                return httpx.Response(200, json={"order": order})

        if parts == ["products"] and method == "POST":
            product = {"id": uuid.uuid4().hex[:6], **body}
            self.products[product["id"]] = product
            return httpx.Response(201, json={"product": product})
        if parts[0] == "products" and len(parts) == 2:
            if parts[1] not in self.products:
                return httpx.Response(404, json={"error": "Product not found"})
            if method == "PUT":
                self.products[parts[1]].update(body)
                return httpx.Response(200, json={"product": self.products[parts[1]]})
            if method == "DELETE":
                del self.products[parts[1]]
                return httpx.Response(200, json={"success": True})

        if parts == ["payments", "create-intent"]:
            return httpx.Response(200, json={"clientSecret": f"pi_{body['orderId']}_secret_abc"})

        if parts == ["finance", "stats"]:
            return httpx.Response(200, json={"totalRevenue": 1200.0, "totalProfit": 400.0, "totalOrders": 7})
        if parts == ["finance", "products"]:
            return httpx.Response(200, json={"products": [
                {"id": "a", "name": "Ski", "profit": 300.0, "totalRevenue": 900.0},
                {"id": "b", "name": "Helm", "profit": 100.0, "totalRevenue": 300.0},
                {"id": "c", "name": "Wachs", "profit": 0.0, "totalRevenue": 0.0},
            ]})
        if parts == ["finance", "test-email"]:
            return httpx.Response(200, json={"message": f"Test-E-Mail ({body['type']}) gesendet"})

        if parts == ["storage", "upload"]:
            return httpx.Response(200, json={"url": "https://cdn.example.ch/products/upload.png"})

        return httpx.Response(404, json={"error": "Not found"})


def make_token(user_id="user-1", role="CUSTOMER", email="kunde@example.ch"):
    return jwt.encode({"sub": user_id, "role": role, "email": email}, JWT_SECRET, algorithm="HS256")


@pytest.fixture(autouse=True)
def setup_db(monkeypatch):
    Base.metadata.create_all(bind=engine)
    monkeypatch.setattr(storefront.database, "SessionLocal", TestingSessionLocal)
    monkeypatch.setattr(storefront.config, "JWT_SECRET", JWT_SECRET)
    yield
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def backend():
    return FakeBackend()


@pytest.fixture
def client(backend):
    async def fake_backend_dependency():
        async with backend.client() as fake:
            yield fake

    shared = backend.client()
    fastapi_app.dependency_overrides[get_backend] = fake_backend_dependency
    fastapi_app.dependency_overrides[get_shared_backend] = lambda: shared

    with TestClient(fastapi_app) as c:
        yield c

    fastapi_app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def admin_headers():
    return {"Authorization": f"Bearer {make_token('admin-1', role='ADMIN', email='admin@example.ch')}"}
