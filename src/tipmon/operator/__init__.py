from .base import Operator
from .listing import ListingOperator

__all__ = [
    "ListingOperator",
    "Operator",
]
