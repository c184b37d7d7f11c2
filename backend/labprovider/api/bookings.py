# backend/labprovider/api/bookings.py
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from labprovider.api.deps import DBSession
from labprovider.schemas.booking import BookingCreate, BookingResponse
from labprovider.services import booking_service
from labprovider.services.booking_service import (
    BookingConflictError,
    BookingNotFoundError,
    VMNotFoundError,
)

router = APIRouter(prefix="/bookings", tags=["Bookings"])


@router.get("", response_model=List[BookingResponse])
def list_bookings(db: DBSession, vm_name: Optional[str] = None):
    return booking_service.list_bookings(db, vm_name)


@router.post("", response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(booking_data: BookingCreate, db: DBSession):
    try:
        return booking_service.create_booking(
            db,
            vm_name=booking_data.vm_name,
            start_time=booking_data.start_time,
            end_time=booking_data.end_time,
            user=booking_data.user,
        )
    except VMNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except BookingConflictError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))


@router.delete("/{booking_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_booking(booking_id: UUID, db: DBSession):
    try:
        booking_service.delete_booking(db, booking_id)
    except BookingNotFoundError:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Booking not found")
