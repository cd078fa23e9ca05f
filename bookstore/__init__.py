"""Online bookstore service: catalog, carts, and order placement."""

__version__ = "0.1.0"
