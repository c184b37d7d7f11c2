# backend/labprovider/services/interfaces.py
"""
Capability interfaces for the external systems the orchestrator drives.

Each interface is a structural Protocol: the production clients satisfy it
without inheriting from it, and tests pass plain fakes built from callables.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Tuple

from labprovider.models.inventory import MachineInventory
from labprovider.services.calendar_service import CalendarEvent
from labprovider.services.email_service import EmailAttachment
from labprovider.services.opnsense_client import PeerRow


@dataclass
class RestoreResult:
    """Outcome of a restore batch.

    ``errors`` holds one message per failed VM (restore or power-on);
    ``passwords`` maps user -> new password for users whose VM restored and
    whose password was rotated.
    """
    errors: List[str] = field(default_factory=list)
    passwords: Dict[str, str] = field(default_factory=dict)


class InventoryClient(Protocol):
    def list_vm_snapshots(self) -> MachineInventory: ...

    def restore_vms_with_password_rotation(
        self,
        vm_names: List[str],
        user_names: List[str],
        snapshot_name: Optional[str],
    ) -> RestoreResult: ...

    def close(self) -> None: ...


class CalendarClient(Protocol):
    def list_events(self, time_min: str, time_max: str) -> List[CalendarEvent]: ...


class EmailSender(Protocol):
    def send_password_email(
        self,
        to: str,
        vm_name: str,
        username: str,
        password: str,
        attachment: Optional[EmailAttachment] = None,
    ) -> None: ...


class OPNsenseAPI(Protocol):
    def search_peer_by_tunnel_address(self, tunnel_address: str) -> Optional[PeerRow]: ...

    def update_peer(
        self,
        uuid: str,
        name: str,
        public_key: str,
        tunnel_address: str,
        servers: str,
    ) -> None: ...

    def create_peer(self, name: str, public_key: str, tunnel_address: str, keepalive: int = 0) -> None: ...


class WireGuardManager(Protocol):
    def rotate_user_key(self, username: str) -> Tuple[str, str]: ...

    def register_peer(self, username: str, public_key: str, user_index: int) -> bool: ...

    def generate_client_config(self, username: str, user_index: int) -> str: ...

    def validate_config(self) -> None: ...
