"""Shared schemas for docshape tests.

Separated from conftest.py so they can be explicitly imported by test modules.
Conftest fixtures are auto-injected by pytest and don't need explicit import.
"""

from datetime import datetime, timezone
from typing import Optional

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field


# --- Schemas ---


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Product(BaseModel):
    model_config = ConfigDict(populate_by_name=True, arbitrary_types_allowed=True)

    id: Optional[ObjectId] = Field(default=None, alias="_id")
    name: str = Field(min_length=1)
    price: float = Field(ge=0)
    category: str = "general"
    in_stock: bool = True
    tags: list[str] = Field(default_factory=list)


class Catalog(BaseModel):
    """Schema without an identifier field and with a factory default."""

    title: str
    version: int = 1
    created_at: datetime = Field(default_factory=utc_now)
