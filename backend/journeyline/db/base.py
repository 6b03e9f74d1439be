"""
Database base configuration
Imports all models to ensure they're registered with SQLModel metadata
"""

from sqlmodel import SQLModel

from journeyline.db.models import (
    Journey,
    JourneyDay,
    JourneyActivity,
)

Base = SQLModel.metadata

__all__ = ["Base", "SQLModel", "Journey", "JourneyDay", "JourneyActivity"]
