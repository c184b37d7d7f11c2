# backend/labprovider/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from labprovider.config import get_settings
from labprovider.api.vms import router as vms_router
from labprovider.api.bookings import router as bookings_router
from labprovider.utils.log_config import configure_logging

logger = logging.getLogger(__name__)
settings = get_settings()


def sync_inventory_on_startup() -> None:
    """Mirror hypervisor VM names into the booking store."""
    from labprovider.database import get_session_local
    from labprovider.services.booking_service import sync_vms
    from labprovider.services.vmware_service import VMwareService

    settings.validate_esxi()
    client = VMwareService.connect(settings)
    try:
        names = client.list_vm_snapshots().names()
    finally:
        client.close()

    SessionLocal = get_session_local()
    db = SessionLocal()
    try:
        sync_vms(db, names)
    finally:
        db.close()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events for startup and shutdown."""
    from labprovider.database import init_db

    configure_logging(settings.log_level)
    init_db()

    logger.info("Syncing VMs from inventory...")
    try:
        sync_inventory_on_startup()
    except Exception as e:
        logger.warning(f"Inventory sync skipped: {e}")

    yield


app = FastAPI(
    title=settings.app_name,
    description="Book ESXi lab VMs and inspect their snapshot inventory.",
    version=settings.app_version,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "VMs", "description": "Hypervisor inventory and bookable VMs"},
        {"name": "Bookings", "description": "VM reservations"},
    ],
)

app.include_router(vms_router, prefix="/api/v1")
app.include_router(bookings_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name, "version": settings.app_version}
