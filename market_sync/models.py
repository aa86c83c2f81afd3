"""Listing record model and the active predicate."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

LISTING_URL_TEMPLATE = "https://uexcorp.space/marketplace/item/info/{slug}"

BUY = "buy"
SELL = "sell"


class ListingRecord(BaseModel):
    """One marketplace listing as returned by the lookup endpoint.

    Unknown remote fields are preserved so a refreshed record round-trips
    through the catalog file without losing data.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: int = Field(gt=0)
    title: str | None = None
    name: str | None = None
    slug: str | None = None
    price: float | dict[str, Any] | None = None
    in_stock: int = 0
    is_sold_out: bool = False
    operation: str = SELL
    user_name: str | None = None
    user_avatar: str | None = None

    @field_validator("in_stock", mode="before")
    @classmethod
    def _coerce_stock(cls, value: Any) -> int:
        if value in (None, ""):
            return 0
        if not isinstance(value, (int, float, str)):
            raise ValueError(f"in_stock must be a number, got {type(value).__name__}")
        try:
            return int(value)
        except OverflowError as exc:
            raise ValueError(f"in_stock out of range: {value}") from exc

    @field_validator("is_sold_out", mode="before")
    @classmethod
    def _coerce_sold_out(cls, value: Any) -> bool:
        if value in (None, ""):
            return False
        if isinstance(value, str):
            return value.strip().lower() in ("1", "true", "yes")
        return bool(value)

    @field_validator("operation", mode="before")
    @classmethod
    def _coerce_operation(cls, value: Any) -> str:
        if not value:
            return SELL
        return str(value).strip().lower()

    @property
    def is_buy_order(self) -> bool:
        return self.operation == BUY

    @property
    def is_active(self) -> bool:
        # Buy orders are open requests, not inventory.
        if self.is_buy_order:
            return True
        return self.in_stock >= 1 and not self.is_sold_out

    @property
    def price_amount(self) -> float | None:
        if isinstance(self.price, (int, float)):
            return float(self.price)
        if isinstance(self.price, dict):
            amount = self.price.get("amount")
            if isinstance(amount, (int, float)) and not isinstance(amount, bool):
                return float(amount)
        return None

    @property
    def display_title(self) -> str:
        return self.title or self.name or self.slug or f"Item #{self.id}"

    @property
    def url(self) -> str | None:
        if not self.slug:
            return None
        return LISTING_URL_TEMPLATE.format(slug=self.slug)

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


__all__ = ["BUY", "LISTING_URL_TEMPLATE", "ListingRecord", "SELL"]
