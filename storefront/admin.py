from typing import Optional

from fastapi import APIRouter, Depends, File, HTTPException, UploadFile

from storefront import config
from storefront.api_client import BackendClient
from storefront.auth import CurrentUser, require_admin
from storefront.catalog import sort_profitability
from storefront.dependencies import get_backend
from storefront.schemas import (
    OrderStatus,
    OrderStatusUpdate,
    ProductInput,
    SampleEmailRequest,
)

router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


# --- products ---

@router.get("/products")
async def list_products(backend: BackendClient = Depends(get_backend)):
    return {"products": await backend.list_products()}


@router.get("/products/{product_id}")
async def get_product(product_id: str, backend: BackendClient = Depends(get_backend)):
    return {"product": await backend.get_product(product_id)}


@router.post("/products", status_code=201)
async def create_product(product: ProductInput, backend: BackendClient = Depends(get_backend)):
    return {"product": await backend.create_product(product)}


@router.put("/products/{product_id}")
async def update_product(product_id: str, product: ProductInput, backend: BackendClient = Depends(get_backend)):
    return {"product": await backend.update_product(product_id, product)}


@router.delete("/products/{product_id}")
async def delete_product(product_id: str, backend: BackendClient = Depends(get_backend)):
    await backend.delete_product(product_id)
    return {"deleted": product_id}


@router.post("/uploads")
async def upload_image(image: UploadFile = File(...), backend: BackendClient = Depends(get_backend)):
    if not (image.content_type or "").startswith("image/"):
        raise HTTPException(status_code=400, detail="Bitte wählen Sie eine Bilddatei aus")
    content = await image.read()
    if len(content) > config.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="Die Datei ist zu groß. Maximale Größe: 5MB")
    url = await backend.upload_image(image.filename, content, image.content_type)
    return {"url": url}


# --- orders ---

@router.get("/orders")
async def list_orders(status: Optional[OrderStatus] = None, backend: BackendClient = Depends(get_backend)):
    return {"orders": await backend.list_orders(status=status)}


@router.get("/orders/{order_id}")
async def get_order(order_id: str, backend: BackendClient = Depends(get_backend)):
    return {"order": await backend.get_order(order_id)}


@router.patch("/orders/{order_id}/status")
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    backend: BackendClient = Depends(get_backend),
):
    order = await backend.update_order_status(order_id, update.status, update.tracking_number)
    return {"order": order}


# --- finance ---

@router.get("/finance")
async def finance_overview(
    sortBy: str = "profit",
    sortOrder: str = "desc",
    backend: BackendClient = Depends(get_backend),
):
    stats = await backend.finance_stats()
    products = await backend.finance_products()
    return {"stats": stats, "products": sort_profitability(products, sortBy, sortOrder)}


@router.post("/finance/test-email")
async def send_test_email(
    request: SampleEmailRequest,
    backend: BackendClient = Depends(get_backend),
    admin: CurrentUser = Depends(require_admin),
):
    result = await backend.send_test_email(request.type)
    return {"message": result.get("message") or f"Test-E-Mail an {admin.email} gesendet"}
