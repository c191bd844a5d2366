# bakery_pos/models.py
from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field


class Category(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    slug: str = Field(index=True)  # "cakes", "flowers", "sets" -> routing defaults
    color_hex: Optional[str] = Field(default="#d946ef", max_length=7)


class Product(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    sku: Optional[str] = Field(default=None, index=True)
    price_cents: int = 0
    category_id: Optional[int] = Field(default=None, foreign_key="category.id")
    allow_custom_price: bool = False
    allow_custom_images: bool = False
    # None -> team implied by the category
    requires_kitchen: Optional[bool] = None
    requires_design: Optional[bool] = None
    image_url: Optional[str] = None
    # no relationships: everything is queried by product_id
