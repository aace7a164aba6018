from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm.exc import StaleDataError

import os
import sys
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from dotenv import load_dotenv
from loguru import logger

# Find .env before settings are read
POSSIBLE_ENV_PATHS = [
    Path(__file__).resolve().parent.parent / ".env",        # normal
    Path.cwd() / ".env",                                   # runtime cwd
]

for env_path in POSSIBLE_ENV_PATHS:
    if env_path.exists():
        load_dotenv(env_path, override=False)
        break

from bakery.config import settings
from bakery.database import engine, Base
from bakery.stock.inventory.service import STALE_WRITE_DETAIL

from bakery.users.routers import router as user_router
from bakery.branches.router import router as branch_router
from bakery.stock.category.router import router as category_router
from bakery.stock.products.router import router as product_router
from bakery.stock.inventory.router import router as inventory_router
from bakery.stock.inventory.movements.router import router as movement_router
from bakery.stock.inventory.adjustments.router import router as adjustment_router
from bakery.stock.inventory.batch.router import router as batch_router
from bakery.sales.router import router as sales_router
from bakery.payments.router import router as payment_router
from bakery.returns.router import router as returns_router
from bakery.production.router import router as production_router
from bakery.orders.router import router as orders_router
from bakery.reconciliation.router import router as reconciliation_router
from bakery.reports.router import router as reports_router

# every model module is imported through the routers above, so
# Base.metadata knows all tables by the time create_all runs


logger.add(settings.LOG_FILE, rotation=settings.LOG_ROTATION, level=settings.LOG_LEVEL)


# Database startup
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application startup")
    Base.metadata.create_all(bind=engine)
    yield
    logger.info("Application shutdown")


# Create app
app = FastAPI(
    title="BAKERY MANAGEMENT APP",
    description="An API for managing a multi-branch bakery: stock, sales, returns, production and orders.",
    version="1.0.0",
    lifespan=lifespan
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # For production, change to specific domains
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Version conflicts that slipped past a service-level handler
async def stale_data_handler(request: Request, exc: StaleDataError):
    logger.warning(f"Stale write on {request.method} {request.url.path}")
    return JSONResponse(status_code=409, content={"detail": STALE_WRITE_DETAIL})


app.add_exception_handler(StaleDataError, stale_data_handler)


# Routers
app.include_router(user_router, prefix="/users", tags=["Users"])
app.include_router(branch_router, prefix="/branches", tags=["Branches"])
app.include_router(category_router, prefix="/stock/category", tags=["Stock - Category"])
app.include_router(product_router, prefix="/stock/products", tags=["Stock - Products"])
app.include_router(movement_router, prefix="/stock/inventory/movements", tags=["Stock - Movements"])
app.include_router(adjustment_router, prefix="/stock/inventory/adjustments", tags=["Stock - Adjustments"])
app.include_router(batch_router, prefix="/stock/inventory/batch", tags=["Stock - Batch"])
app.include_router(inventory_router, prefix="/stock/inventory", tags=["Stock - Inventory"])

app.include_router(sales_router, prefix="/sales", tags=["Sales"])
app.include_router(payment_router, prefix="/payments", tags=["Payments"])
app.include_router(returns_router, prefix="/returns", tags=["Returns"])
app.include_router(production_router, prefix="/production", tags=["Production"])
app.include_router(orders_router, prefix="/orders", tags=["Orders"])
app.include_router(reconciliation_router, prefix="/reconciliation", tags=["Reconciliation"])
app.include_router(reports_router, prefix="/reports", tags=["Reports"])


@app.get("/health")
def health_check():
    return {"status": "ok"}


if __name__ == "__main__":
    host = os.getenv("SERVER_IP", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    logger.info(f"Running on {host}:{port} (python {sys.version.split()[0]})")
    uvicorn.run("bakery.main:app", host=host, port=port)
