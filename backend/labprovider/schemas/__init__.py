# backend/labprovider/schemas/__init__.py
from labprovider.schemas.feature_config import (
    CalendarConfig, ESXiConfig, FeatureConfig, UserVMPair, WireGuardConfig, load_feature_config,
)
from labprovider.schemas.vm import SnapshotResponse, MachineResponse, InventoryResponse, FlatSnapshot, VMResponse
from labprovider.schemas.booking import BookingCreate, BookingResponse
