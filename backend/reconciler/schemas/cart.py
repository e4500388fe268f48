"""
Cart line snapshot decoded from payment metadata.

The checkout flow serializes the cart with one-/two-letter keys to fit the
metadata size limit; aliases map them back to readable names.
Snapshots live only for the duration of one reconciliation run.
"""

import datetime as dt
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SelectedOption(BaseModel):
    id: str
    title: str = ""
    price: Decimal = Decimal("0")


class AddOnSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    title: str = Field("Add-on", alias="t")
    price: Decimal = Field(Decimal("0"), alias="p")
    per_guest: bool = Field(False, alias="pg")
    quantity: int = Field(0, alias="q")

    @field_validator("title", mode="before")
    @classmethod
    def _title(cls, value: Any) -> str:
        return value or "Add-on"

    @field_validator("price", mode="before")
    @classmethod
    def _price(cls, value: Any) -> Any:
        return value if value is not None else Decimal("0")

    @field_validator("per_guest", mode="before")
    @classmethod
    def _truthy(cls, value: Any) -> bool:
        return bool(value)


class CartLineSnapshot(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    item_index: Optional[int] = Field(None, alias="i")
    tour_id: Optional[str] = Field(None, alias="t")
    date: Optional[dt.date] = Field(None, alias="d")
    time: Optional[str] = Field(None, alias="tm")
    adult_count: int = Field(1, alias="a")
    child_count: int = Field(0, alias="c")
    infant_count: int = Field(0, alias="n")
    base_price: Decimal = Field(Decimal("0"), alias="bp")
    option_id: Optional[str] = Field(None, alias="bo")
    option_title: str = Field("", alias="bot")
    add_ons: list[AddOnSnapshot] = Field(default_factory=list, alias="ao")

    @field_validator("tour_id", "option_id", mode="before")
    @classmethod
    def _identifier(cls, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        return str(value)

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Any:
        # Unreadable dates decode to None; the materializer falls back to the payment date.
        if value is None or value == "":
            return None
        if isinstance(value, dt.date):
            return value
        try:
            return dt.date.fromisoformat(str(value)[:10])
        except ValueError:
            return None

    @field_validator("adult_count", mode="before")
    @classmethod
    def _adults(cls, value: Any) -> Any:
        # A cart line always has at least one adult seat.
        return value or 1

    @field_validator("child_count", "infant_count", mode="before")
    @classmethod
    def _counts(cls, value: Any) -> Any:
        return value or 0

    @field_validator("base_price", mode="before")
    @classmethod
    def _base_price(cls, value: Any) -> Any:
        return value or Decimal("0")

    @field_validator("option_title", mode="before")
    @classmethod
    def _option_title(cls, value: Any) -> str:
        return value or ""

    @field_validator("add_ons", mode="before")
    @classmethod
    def _add_ons(cls, value: Any) -> list:
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @property
    def selected_option(self) -> Optional[SelectedOption]:
        if not self.option_id:
            return None
        return SelectedOption(id=self.option_id, title=self.option_title, price=self.base_price)

    @property
    def active_add_ons(self) -> list[AddOnSnapshot]:
        """Add-ons that were actually picked (positive quantity)."""
        return [ao for ao in self.add_ons if ao.quantity > 0]

    @property
    def priced_guests(self) -> int:
        """Guests that pay for per-guest add-ons; infants ride free."""
        return self.adult_count + self.child_count

    @property
    def total_guests(self) -> int:
        return self.adult_count + self.child_count + self.infant_count
