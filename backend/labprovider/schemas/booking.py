# backend/labprovider/schemas/booking.py
"""Pydantic schemas for VM bookings."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class BookingCreate(BaseModel):
    vm_name: str = Field(..., min_length=1, max_length=255)
    user: Optional[str] = Field(None, max_length=100)
    start_time: datetime
    end_time: datetime

    @model_validator(mode="after")
    def check_window(self) -> "BookingCreate":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class BookingResponse(BaseModel):
    id: UUID
    vm_name: str
    user: Optional[str] = None
    start_time: datetime
    end_time: datetime
    created_at: datetime

    class Config:
        from_attributes = True
