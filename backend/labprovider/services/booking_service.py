# backend/labprovider/services/booking_service.py
"""
Booking store operations.

VM rows mirror the hypervisor inventory by name. Bookings reference a VM by
name and may not overlap another booking of the same VM.
"""
import logging
from datetime import datetime, timezone
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from labprovider.models.booking import Booking
from labprovider.models.vm import LabVM

logger = logging.getLogger(__name__)


class BookingError(Exception):
    """Base class for booking store errors."""
    pass


class VMNotFoundError(BookingError):
    pass


class BookingNotFoundError(BookingError):
    pass


class BookingConflictError(BookingError):
    pass


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def sync_vms(db: Session, names: Iterable[str]) -> List[str]:
    """Insert VM names not yet stored.

    Returns:
        The names that were added, in input order
    """
    existing = {name for (name,) in db.query(LabVM.name).all()}
    added = []
    for name in names:
        if not name or name in existing:
            continue
        db.add(LabVM(name=name))
        existing.add(name)
        added.append(name)
    if added:
        db.commit()
        logger.info(f"Synced {len(added)} VMs from inventory")
    return added


def list_vms(db: Session) -> List[LabVM]:
    return db.query(LabVM).order_by(LabVM.name).all()


def list_bookings(db: Session, vm_name: Optional[str] = None) -> List[Booking]:
    query = db.query(Booking)
    if vm_name:
        query = query.filter(Booking.vm_name == vm_name)
    return query.order_by(Booking.start_time).all()


def create_booking(
    db: Session,
    vm_name: str,
    start_time: datetime,
    end_time: datetime,
    user: Optional[str] = None,
) -> Booking:
    """Book ``vm_name`` for [start_time, end_time).

    Raises:
        VMNotFoundError: If the VM is not in the store
        BookingConflictError: If the window overlaps an existing booking
    """
    if db.query(LabVM).filter(LabVM.name == vm_name).first() is None:
        raise VMNotFoundError(f"VM {vm_name!r} not found")

    start = _as_utc(start_time)
    end = _as_utc(end_time)
    for other in list_bookings(db, vm_name):
        if start < _as_utc(other.end_time) and _as_utc(other.start_time) < end:
            raise BookingConflictError(f"VM {vm_name!r} is already booked in that window")

    booking = Booking(vm_name=vm_name, user=user, start_time=start, end_time=end)
    db.add(booking)
    db.commit()
    db.refresh(booking)
    logger.info(f"Booked {vm_name} for {user or 'unassigned'} from {start.isoformat()} to {end.isoformat()}")
    return booking


def delete_booking(db: Session, booking_id: UUID) -> None:
    """Raises BookingNotFoundError if ``booking_id`` does not exist."""
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if booking is None:
        raise BookingNotFoundError(f"booking {booking_id} not found")
    db.delete(booking)
    db.commit()
