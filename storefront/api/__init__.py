# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.routers import admin, carts, coupons, health, orders, payments, webhooks


def create_app() -> FastAPI:
    app = FastAPI(
        title="Storefront Checkout Service",
        version="1.0.0",
    )

    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(coupons.router)
    app.include_router(payments.router)
    app.include_router(webhooks.router)
    app.include_router(admin.router)

    return app
