"""Inventory-related Pydantic schemas."""

import datetime as dt
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class InventoryRangeRequest(BaseModel):
    """Request schema addressing an inclusive date range of one room."""

    room_id: str = Field(..., description="Room whose inventory is addressed")
    date_from: dt.date = Field(..., description="First day (inclusive)")
    date_to: dt.date = Field(..., description="Last day (inclusive)")

    @model_validator(mode="after")
    def check_dates(self):
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        return self


class UpdateInventoryRequest(InventoryRangeRequest):
    """Request schema for changing surge factor or closing days."""

    surge_factor: Optional[Decimal] = Field(
        None, gt=0, max_digits=5, decimal_places=2, description="Demand multiplier for the range"
    )
    closed: Optional[bool] = Field(None, description="Close or reopen the range for booking")

    @model_validator(mode="after")
    def check_change(self):
        if self.surge_factor is None and self.closed is None:
            raise ValueError("at least one of surge_factor or closed must be given")
        return self


class InventoryDay(BaseModel):
    """Inventory counters of one room on one day."""

    room_id: str = Field(..., description="Room ID")
    date: dt.date = Field(..., description="Calendar day")
    total_count: int = Field(..., description="Units in the room type")
    reserved_count: int = Field(..., description="Units held, including booked ones")
    booked_count: int = Field(..., description="Units confirmed by payment")
    surge_factor: Decimal = Field(..., description="Demand multiplier")
    closed: bool = Field(..., description="Day is closed for booking")
    price: Optional[Decimal] = Field(None, description="Adjusted nightly price of one unit")


class InventoryRange(BaseModel):
    """Inventory rows of a range, ordered by date."""

    room_id: str
    days: List[InventoryDay] = Field(default_factory=list)
