"""
Sample product catalogue served by GET /api/products.
"""
from dataclasses import asdict, dataclass


@dataclass(frozen=True)
class Product:
    id: int
    sku: str
    name: str
    price: float
    quantity: int


PRODUCTS: tuple[Product, ...] = (
    Product(id=1, sku="DM-1001", name="Blue Widget", price=9.99, quantity=120),
    Product(id=2, sku="DM-1002", name="Red Widget", price=11.49, quantity=75),
    Product(id=3, sku="DM-2001", name="Gadget Pro", price=49.00, quantity=12),
    Product(id=4, sku="DM-3001", name="Shipping Box (Large)", price=2.50, quantity=900),
)


def list_products() -> list[dict]:
    return [asdict(p) for p in PRODUCTS]
