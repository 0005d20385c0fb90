# fulfillment/api/__init__.py
from fastapi import FastAPI

from fulfillment.api.routers import health, carts, orders, deliveries

ROUTERS = (health.router, carts.router, orders.router, deliveries.router)


def include_routers(app: FastAPI) -> FastAPI:
    for router in ROUTERS:
        app.include_router(router)
    return app
