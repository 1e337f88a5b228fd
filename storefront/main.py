import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from storefront import config
from storefront.admin import router as admin_router
from storefront.api_client import ApiError, BackendClient
from storefront.checkout import CheckoutError
from storefront.database import Base, engine
from storefront.models import CartLine
from storefront.reconciliation import PaymentWatcher
from storefront.routes import router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.backend = BackendClient()
    app.state.watcher = PaymentWatcher()
    yield
    await app.state.watcher.close()
    await app.state.backend.aclose()


app = FastAPI(title="Ski Shop Storefront", lifespan=lifespan)

app.include_router(router)
app.include_router(admin_router)

Base.metadata.create_all(bind=engine)


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(CheckoutError)
async def checkout_error_handler(request: Request, exc: CheckoutError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})
