# backend/labprovider/api/vms.py
"""Inventory and stored VM endpoints."""
import logging
from typing import List

from fastapi import APIRouter, HTTPException, status

from labprovider.api.deps import DBSession, Inventory
from labprovider.models.inventory import MachineInventory
from labprovider.schemas.vm import FlatSnapshot, InventoryResponse, MachineResponse, VMResponse
from labprovider.services import booking_service
from labprovider.services.interfaces import InventoryClient
from labprovider.services.snapshot_tree import flatten_snapshots

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/vms", tags=["VMs"])


def fetch_inventory(inventory: InventoryClient) -> MachineInventory:
    try:
        return inventory.list_vm_snapshots()
    except Exception as e:
        logger.error(f"Failed to fetch VM inventory: {e}")
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Failed to fetch VM inventory: {str(e)}",
        )


@router.get("", response_model=List[VMResponse])
def list_vms(db: DBSession):
    """List bookable VMs known to the store."""
    return booking_service.list_vms(db)


@router.get("/inventory", response_model=InventoryResponse)
def get_inventory(inventory: Inventory):
    """Live VM inventory with snapshot trees."""
    result = fetch_inventory(inventory)
    return InventoryResponse(
        host_name=result.host_name,
        total=result.total,
        machines=[MachineResponse.model_validate(m) for m in result.machines],
    )


@router.get("/inventory/snapshots", response_model=List[FlatSnapshot])
def list_snapshots(inventory: Inventory):
    """Every snapshot of every VM, depth-first per VM."""
    result = fetch_inventory(inventory)
    return [
        FlatSnapshot(vm=machine.name, name=s.name, created=s.created, state=s.state)
        for machine in result.machines
        for s in flatten_snapshots(machine.snapshots)
    ]


@router.post("/sync", response_model=List[str])
def sync_vms(db: DBSession, inventory: Inventory):
    """Add inventory VMs missing from the store; returns the names added."""
    result = fetch_inventory(inventory)
    return booking_service.sync_vms(db, result.names())
