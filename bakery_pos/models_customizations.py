# bakery_pos/models_customizations.py
from __future__ import annotations

from typing import Optional
from sqlmodel import SQLModel, Field
from sqlalchemy import JSON


class ProductOption(SQLModel, table=True):
    __tablename__ = "product_option"
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    name: str                      # es. "Size"
    position: int = 0


class ProductOptionValue(SQLModel, table=True):
    __tablename__ = "product_option_value"
    id: Optional[int] = Field(default=None, primary_key=True)
    option_id: int = Field(foreign_key="product_option.id", index=True)
    value: str                     # es. "Large"
    price_adjustment_cents: int = 0
    position: int = 0


class ProductVariant(SQLModel, table=True):
    __tablename__ = "product_variant"
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    sku: Optional[str] = None
    price_cents: int = 0
    # one ProductOptionValue id per option of the product
    value_ids: list[int] = Field(default_factory=list, sa_type=JSON)


class ProductAddon(SQLModel, table=True):
    __tablename__ = "product_addon"
    id: Optional[int] = Field(default=None, primary_key=True)
    product_id: int = Field(foreign_key="product.id", index=True)
    name: str                      # es. "Balloons"
    required: bool = False
    min_selections: int = 0
    max_selections: int = 1        # 1 = toggle, >1 = independent slots
    position: int = 0


class AddonOption(SQLModel, table=True):
    __tablename__ = "addon_option"
    id: Optional[int] = Field(default=None, primary_key=True)
    addon_id: int = Field(foreign_key="product_addon.id", index=True)
    name: str
    price_cents: int = 0
    allows_custom_text: bool = False
    max_text_length: Optional[int] = None
    position: int = 0


class AddonSubOption(SQLModel, table=True):
    __tablename__ = "addon_sub_option"
    id: Optional[int] = Field(default=None, primary_key=True)
    addon_option_id: int = Field(foreign_key="addon_option.id", index=True)
    name: str
    price_cents: int = 0
    position: int = 0
