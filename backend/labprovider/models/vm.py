# backend/labprovider/models/vm.py
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from labprovider.models.base import Base, TimestampMixin, UUIDMixin


class LabVM(Base, UUIDMixin, TimestampMixin):
    """A bookable VM, mirrored from the hypervisor inventory by name."""
    __tablename__ = "vms"

    name: Mapped[str] = mapped_column(String(255), unique=True, index=True)
