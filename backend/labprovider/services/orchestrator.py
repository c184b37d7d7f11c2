# backend/labprovider/services/orchestrator.py
"""
Provisioning run coordinator.

One run: fetch inventory -> fetch active bookings -> select VMs -> restore
and rotate passwords -> rotate and register WireGuard keys -> email users.

Fetch failures are fatal and stop the run before any side effect. Everything
after that is best effort per VM / per user: a failure is logged and counted
but never stops the siblings.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

from labprovider.models.enums import RunStatus
from labprovider.models.inventory import Machine, MachineInventory
from labprovider.schemas.feature_config import FeatureConfig
from labprovider.services.assignment_selector import Assignment, select_assignments
from labprovider.services.email_service import WIREGUARD_MIME_TYPE, EmailAttachment
from labprovider.services.event_matcher import EventInfo, filter_active_events
from labprovider.services.interfaces import (
    CalendarClient,
    EmailSender,
    InventoryClient,
    RestoreResult,
    WireGuardManager,
)
from labprovider.services.wireguard_service import PeerRegistrationError, PeerVerificationError
from labprovider.utils.log_config import mask_secret

logger = logging.getLogger(__name__)

# Bookings are looked up in a window around "now"
CALENDAR_WINDOW = timedelta(minutes=5)
LATEST_SNAPSHOT_LABEL = "<latest>"


class OrchestrationError(Exception):
    """Raised when a run cannot start or cannot fetch its inputs."""
    pass


@dataclass
class RunResult:
    """Summary of one provisioning run."""
    status: RunStatus
    restored: int = 0
    failed: int = 0
    passwords_rotated: int = 0
    peers_registered: int = 0
    emails_sent: int = 0
    errors: List[str] = field(default_factory=list)
    # Per-user VPN registration failures; they do not change the status
    registration_errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.DONE


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Orchestrator:
    """Coordinates the VM restore workflow across the external systems."""

    def __init__(
        self,
        inventory: InventoryClient,
        calendar: CalendarClient,
        feature_config: FeatureConfig,
        email: Optional[EmailSender] = None,
        wireguard: Optional[WireGuardManager] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.inventory = inventory
        self.calendar = calendar
        self.feature_config = feature_config
        self.email = email
        self.wireguard = wireguard
        self.clock = clock

    def run(self) -> RunResult:
        """Execute one full pass and return its terminal state."""
        try:
            inventory = self.fetch_vm_inventory()
        except OrchestrationError as e:
            return RunResult(status=RunStatus.FATAL, errors=[str(e)])

        try:
            try:
                active_events = self.fetch_active_events_at(self.clock())
            except OrchestrationError as e:
                return RunResult(status=RunStatus.FATAL, errors=[str(e)])

            if not active_events:
                logger.info(
                    "No active calendar events",
                    extra={"action": "calendar", "status": "no_active_events"},
                )
                return RunResult(status=RunStatus.DONE)

            assignments = self.select_vms_to_restore(inventory.machines, len(active_events))
            if not assignments:
                message = "no VMs available in inventory"
                logger.error(
                    "No VMs available for active bookings",
                    extra={"action": "select", "status": "no_vms", "events": len(active_events)},
                )
                return RunResult(status=RunStatus.FATAL, errors=[message])

            return self.restore_vms(assignments, active_events)
        finally:
            self._close_inventory()

    def _close_inventory(self) -> None:
        try:
            self.inventory.close()
        except Exception as e:
            logger.error("Failed to close VMware service", extra={"error": e})

    def fetch_vm_inventory(self) -> MachineInventory:
        """Fetch the VM snapshot inventory from the hypervisor.

        Raises:
            OrchestrationError: If the inventory cannot be fetched
        """
        logger.info("Fetching VM inventory", extra={"action": "startup", "status": "fetching_vms"})
        try:
            inventory = self.inventory.list_vm_snapshots()
        except Exception as e:
            logger.error("Failed to fetch VMs", extra={"action": "startup", "error": e})
            raise OrchestrationError(f"failed to fetch VM inventory: {e}") from e

        logger.info(
            "VM inventory fetched",
            extra={"action": "startup", "status": "vm_inventory", "count": inventory.total},
        )
        self.log_vm_inventory(inventory.machines)
        return inventory

    def log_vm_inventory(self, machines: List[Machine]) -> None:
        for machine in machines:
            logger.info("VM found", extra={"vm": machine.name, "snapshot_count": len(machine.snapshots)})
            for snapshot in machine.snapshots:
                logger.info(
                    "Snapshot details",
                    extra={
                        "snapshot": snapshot.name,
                        "state": snapshot.state,
                        "created_at": snapshot.created.strftime("%Y-%m-%d %H:%M:%S"),
                    },
                )

    def fetch_active_events_at(self, now: datetime) -> List[EventInfo]:
        """Query the calendar around ``now`` and keep events active at ``now``.

        Raises:
            OrchestrationError: If the calendar cannot be queried
        """
        time_min = (now - CALENDAR_WINDOW).isoformat()
        time_max = (now + CALENDAR_WINDOW).isoformat()

        logger.info(
            "Fetching calendar events",
            extra={"action": "calendar", "status": "fetching_events", "time_window": "±5min"},
        )
        try:
            events = self.calendar.list_events(time_min, time_max)
        except Exception as e:
            logger.error("Failed to fetch calendar events", extra={"action": "calendar", "error": e})
            raise OrchestrationError(f"failed to fetch calendar events: {e}") from e

        return filter_active_events(events, now)

    def select_vms_to_restore(self, machines: List[Machine], event_count: int) -> List[Assignment]:
        return select_assignments(machines, self.feature_config.esxi.user_vm_pairs(), event_count)

    def restore_vms(self, assignments: List[Assignment], active_events: List[EventInfo]) -> RunResult:
        """Restore VMs, rotate passwords, register WireGuard peers and send emails."""
        snapshot_name = self.feature_config.esxi.snapshot_name
        vm_names = [a.vm_name for a in assignments]
        users = [a.user for a in assignments]

        logger.info(
            "Starting VM restore",
            extra={
                "action": "restore",
                "status": "starting",
                "events": len(active_events),
                "vms_to_restore": len(vm_names),
                "snapshot": snapshot_name or LATEST_SNAPSHOT_LABEL,
            },
        )

        restore = self.inventory.restore_vms_with_password_rotation(vm_names, users, snapshot_name)
        result = RunResult(
            status=RunStatus.DONE,
            restored=len(vm_names) - len(restore.errors),
            failed=len(restore.errors),
            passwords_rotated=len(restore.passwords),
            errors=list(restore.errors),
        )

        if restore.passwords:
            logger.info(
                "Password rotation completed",
                extra={"action": "password_rotation", "status": "completed"},
            )
            profiles = self.rotate_wireguard_keys(assignments, restore, result)
            self.send_notifications(assignments, active_events, restore.passwords, profiles, result)

        if restore.errors:
            for index, message in enumerate(restore.errors):
                logger.error("VM restore failed", extra={"vm_index": index, "reason": message})
            logger.error(
                "Restore partially failed",
                extra={
                    "action": "restore",
                    "status": "partial_failure",
                    "restored": result.restored,
                    "failed": result.failed,
                },
            )
            result.status = RunStatus.PARTIAL_FAILURE
            return result

        logger.info(
            "Restore completed successfully",
            extra={
                "action": "restore",
                "status": "success",
                "events": len(active_events),
                "vms_restored": result.restored,
                "passwords_rotated": result.passwords_rotated,
            },
        )
        return result

    def rotate_wireguard_keys(
        self,
        assignments: List[Assignment],
        restore: RestoreResult,
        result: RunResult,
    ) -> Dict[str, str]:
        """Rotate keys and register peers for users with a new password.

        Returns:
            username -> rendered client profile for every user whose key was
            rotated; peer registration failures are recorded in ``result``
        """
        profiles: Dict[str, str] = {}
        if self.wireguard is None:
            return profiles

        for index, assignment in enumerate(assignments):
            username = assignment.user
            if not username or username not in restore.passwords:
                continue

            try:
                _, public_key = self.wireguard.rotate_user_key(username)
            except Exception as e:
                logger.error("Failed to rotate WireGuard key", extra={"user": username, "error": e})
                continue

            try:
                registered = self.wireguard.register_peer(username, public_key, index)
            except PeerVerificationError as e:
                logger.error(
                    "Peer verification failed after update",
                    extra={"user": username, "reason": "verification_failed", "error": e},
                )
                result.registration_errors.append(f"{username}: {e}")
            except PeerRegistrationError as e:
                logger.error(
                    "Failed to register peer with OPNsense",
                    extra={"user": username, "reason": "request_failed", "error": e},
                )
                result.registration_errors.append(f"{username}: {e}")
            else:
                if registered:
                    result.peers_registered += 1
                    logger.info(
                        "Peer registered with OPNsense",
                        extra={"user": username, "public_key": public_key},
                    )

            # The profile is rendered even when registration failed
            try:
                profiles[username] = self.wireguard.generate_client_config(username, index)
            except Exception as e:
                logger.error("Failed to generate WireGuard config", extra={"user": username, "error": e})
                continue

            logger.info("WireGuard config generated", extra={"user": username, "public_key": public_key})

        return profiles

    def send_notifications(
        self,
        assignments: List[Assignment],
        active_events: List[EventInfo],
        passwords: Dict[str, str],
        profiles: Dict[str, str],
        result: RunResult,
    ) -> None:
        """Email each booker their VM credentials; booking i goes with assignment i."""
        for index, assignment in enumerate(assignments):
            username = assignment.user
            password = passwords.get(username) if username else None
            if password is None:
                continue

            logger.info(
                "User password rotated",
                extra={"user": username, "password": mask_secret(password)},
            )

            if self.email is None or index >= len(active_events):
                continue
            recipient = active_events[index].email
            if not recipient:
                continue

            attachment = None
            if username in profiles:
                attachment = EmailAttachment(
                    filename=f"{username}-wireguard.conf",
                    content=profiles[username].encode("utf-8"),
                    mime_type=WIREGUARD_MIME_TYPE,
                )

            try:
                self.email.send_password_email(
                    recipient, assignment.vm_name, username, password, attachment
                )
            except Exception as e:
                logger.error(
                    "Failed to send password email",
                    extra={"email": recipient, "user": username, "error": e},
                )
                continue

            result.emails_sent += 1
            message = "Password email sent"
            if attachment is not None:
                message += " with WireGuard config"
            logger.info(message, extra={"email": recipient, "user": username, "vm": assignment.vm_name})
