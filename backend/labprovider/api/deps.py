# backend/labprovider/api/deps.py
from typing import Annotated, Iterator

from fastapi import Depends, HTTPException, status
from sqlalchemy.orm import Session

from labprovider.config import ConfigurationError, get_settings
from labprovider.database import get_db
from labprovider.services.interfaces import InventoryClient
from labprovider.services.vmware_service import VMwareError, VMwareService


def get_inventory_client() -> Iterator[InventoryClient]:
    """Open a hypervisor session for the duration of one request."""
    settings = get_settings()
    try:
        settings.validate_esxi()
        client = VMwareService.connect(settings)
    except (ConfigurationError, VMwareError) as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Hypervisor unavailable: {e}",
        )
    try:
        yield client
    finally:
        client.close()


# Type aliases for common dependencies
DBSession = Annotated[Session, Depends(get_db)]
Inventory = Annotated[InventoryClient, Depends(get_inventory_client)]
