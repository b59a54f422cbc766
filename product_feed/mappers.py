"""
Ready-made mapper for dict-shaped items such as decoded JSON lines.

Expected shape (extra keys are ignored):

    {
        "reference": "SKU-1",
        "name": "Product 1",
        "price": 5.99,
        "quantity": 3,
        "attributes": {"color": "red"},
        "variations": [{"reference": "SKU-1-S", "price": 5.99, "quantity": 1, "name": "S"}]
    }
"""

from typing import Any, Mapping

from product_feed.models import Product

PRODUCT_KEYS = ("reference", "name", "price", "quantity")
VARIATION_KEYS = ("reference", "name", "price", "quantity")


def map_record(item: Mapping[str, Any], product: Product) -> Product:
    """Populate a product from a mapping; absent keys are left unset."""
    if not isinstance(item, Mapping):
        raise TypeError(f"Expected a mapping item, got {type(item).__name__}")

    for key in PRODUCT_KEYS:
        if item.get(key) is not None:
            getattr(product, f"set_{key}")(item[key])

    for key, value in (item.get("attributes") or {}).items():
        product.set_attribute(key, value)

    for raw_variation in item.get("variations") or []:
        variation = product.create_variation()
        for key in VARIATION_KEYS:
            if raw_variation.get(key) is not None:
                getattr(variation, f"set_{key}")(raw_variation[key])

    return product
