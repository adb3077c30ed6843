from src.engine.listing_price import compute_listing_price, pick_unit_price

__all__ = [
    "compute_listing_price",
    "pick_unit_price",
]
