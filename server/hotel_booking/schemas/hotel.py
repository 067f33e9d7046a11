"""Hotel and room catalog Pydantic schemas."""

from datetime import date
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator


class CreateHotelRequest(BaseModel):
    """Request schema for creating a hotel."""

    name: str = Field(..., min_length=1, max_length=200, description="Hotel name")
    city: str = Field(..., min_length=1, max_length=100, description="City the hotel is in")


class UpdateHotelRequest(BaseModel):
    """Request schema for renaming or relocating a hotel."""

    hotel_id: str = Field(..., description="Hotel to update")
    name: Optional[str] = Field(None, min_length=1, max_length=200, description="New hotel name")
    city: Optional[str] = Field(None, min_length=1, max_length=100, description="New city")


class HotelIdRequest(BaseModel):
    """Request schema for operations addressed by hotel id."""

    hotel_id: str = Field(..., description="Hotel to act on")


class CreateRoomRequest(BaseModel):
    """Request schema for adding a room type to a hotel."""

    hotel_id: str = Field(..., description="Hotel the room belongs to")
    type: str = Field(..., min_length=1, max_length=50, description="Room type name")
    base_price: Decimal = Field(..., gt=0, max_digits=12, decimal_places=2, description="Nightly base rate")
    total_count: int = Field(..., ge=0, le=10000, description="Number of identical units")
    capacity: int = Field(..., ge=1, le=50, description="Guests per unit")


class RoomIdRequest(BaseModel):
    """Request schema for operations addressed by room id."""

    room_id: str = Field(..., description="Room to act on")


class Room(BaseModel):
    """Room response schema."""

    id: str = Field(..., description="Unique room ID")
    hotel_id: str = Field(..., description="Owning hotel ID")
    type: str = Field(..., description="Room type name")
    base_price: Decimal = Field(..., description="Nightly base rate")
    total_count: int = Field(..., description="Number of identical units")
    capacity: int = Field(..., description="Guests per unit")


class Hotel(BaseModel):
    """Hotel response schema."""

    id: str = Field(..., description="Unique hotel ID")
    name: str = Field(..., description="Hotel name")
    city: str = Field(..., description="City the hotel is in")
    active: bool = Field(..., description="Whether the hotel is open for booking")


class HotelInfo(BaseModel):
    """Hotel with its room types."""

    hotel: Hotel
    rooms: List[Room] = Field(default_factory=list)


class HotelSearchRequest(BaseModel):
    """Request schema for searching bookable rooms."""

    city: str = Field(..., min_length=1, max_length=100, description="City to search in")
    date_from: date = Field(..., description="First night (inclusive)")
    date_to: date = Field(..., description="Last night (inclusive)")
    rooms_count: int = Field(1, ge=1, le=50, description="Rooms needed")
    page: int = Field(0, ge=0, description="Zero-based page number")
    size: int = Field(10, ge=1, le=100, description="Page size")

    @model_validator(mode="after")
    def check_dates(self) -> "HotelSearchRequest":
        if self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        return self


class HotelSearchResult(BaseModel):
    """A room that can be booked for the whole searched range."""

    hotel: Hotel
    room: Room
    total_price: Decimal = Field(..., description="Price of the stay for the requested rooms")


class HotelSearchResponse(BaseModel):
    """Page of search results ordered by price."""

    results: List[HotelSearchResult] = Field(default_factory=list)
    page: int
    size: int
    total: int = Field(..., description="Number of matches across all pages")
