"""API Routes Package."""

from api.routes import health, products, orders, cache

__all__ = [
    "health",
    "products",
    "orders",
    "cache",
]
