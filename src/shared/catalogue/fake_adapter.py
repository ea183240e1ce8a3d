"""In-memory product catalogue for development and testing."""

from decimal import Decimal

from shared.catalogue.port import ProductCatalogue, ProductInfo


class InMemoryCatalogue(ProductCatalogue):
    """Dictionary-backed catalogue that can be seeded at runtime."""

    def __init__(self, products: list[ProductInfo] | None = None) -> None:
        self._products: dict[str, ProductInfo] = {}
        for product in products or []:
            self.register(product)

    def register(self, product: ProductInfo) -> None:
        if product.price < Decimal("0"):
            raise ValueError(f"Product {product.product_id} has a negative price")
        self._products[str(product.product_id)] = product

    def add(self, product_id: str, name: str, price, image: str | None = None, sku: str | None = None) -> ProductInfo:
        """Register a product from plain values and return it."""
        product = ProductInfo(
            product_id=str(product_id),
            name=name,
            price=Decimal(str(price)),
            image=image,
            sku=sku,
        )
        self.register(product)
        return product

    def get_product(self, product_id: str) -> ProductInfo | None:
        return self._products.get(str(product_id))
