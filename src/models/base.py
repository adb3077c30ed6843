"""
SQLAlchemy 2.0 async DeclarativeBase for the catalog cache.

All models inherit from this Base.
"""

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all catalog cache database models."""
    pass
