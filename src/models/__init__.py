"""
Models package — export all SQLAlchemy models.
"""

from src.models.base import Base
from src.models.binder_card import BinderCard
from src.models.card_print import CardPrint
from src.models.oracle import Oracle

__all__ = ["Base", "BinderCard", "CardPrint", "Oracle"]
