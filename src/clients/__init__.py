"""Tag platform client implementations."""

from src.clients.base import TagClient
from src.clients.models import ProductTagSnapshot, UserError
from src.clients.shopify import ShopifyTagClient, to_product_gid

__all__ = [
    "TagClient",
    "ProductTagSnapshot",
    "UserError",
    "ShopifyTagClient",
    "to_product_gid",
]
