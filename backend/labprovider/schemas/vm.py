# backend/labprovider/schemas/vm.py
"""Pydantic schemas for hypervisor inventory and stored VMs."""
from datetime import datetime
from typing import List
from uuid import UUID

from pydantic import BaseModel


class SnapshotResponse(BaseModel):
    """A snapshot node with its children."""
    name: str
    description: str = ""
    created: datetime
    state: str = ""
    quiesced: bool = False
    children: List["SnapshotResponse"] = []

    class Config:
        from_attributes = True


class MachineResponse(BaseModel):
    name: str
    snapshots: List[SnapshotResponse] = []

    class Config:
        from_attributes = True


class InventoryResponse(BaseModel):
    host_name: str
    total: int
    machines: List[MachineResponse]

    class Config:
        from_attributes = True


class FlatSnapshot(BaseModel):
    """Snapshot listing row used by the inventory report."""
    vm: str
    name: str
    created: datetime
    state: str = ""


class VMResponse(BaseModel):
    id: UUID
    name: str
    created_at: datetime

    class Config:
        from_attributes = True
