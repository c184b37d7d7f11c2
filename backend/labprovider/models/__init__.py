# backend/labprovider/models/__init__.py
from labprovider.models.base import Base
from labprovider.models.vm import LabVM
from labprovider.models.booking import Booking
from labprovider.models.enums import PowerState, RunStatus
from labprovider.models.inventory import Snapshot, Machine, MachineInventory

__all__ = [
    "Base",
    "LabVM",
    "Booking",
    "PowerState", "RunStatus",
    "Snapshot", "Machine", "MachineInventory",
]
