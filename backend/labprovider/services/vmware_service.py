# backend/labprovider/services/vmware_service.py
"""
ESXi / vCenter inventory access via pyVmomi.

Handles snapshot discovery, snapshot revert + power-on, and rotation of the
host local account assigned to each lab user.
"""
import logging
import ssl
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlparse

from pyVim.connect import Disconnect, SmartConnect
from pyVim.task import WaitForTask
from pyVmomi import vim, vmodl

from labprovider.config import Settings
from labprovider.models.enums import PowerState
from labprovider.models.inventory import Machine, MachineInventory, Snapshot
from labprovider.services.credentials import generate_password
from labprovider.services.interfaces import RestoreResult
from labprovider.services.snapshot_tree import find_latest_snapshot, find_snapshot_by_name

logger = logging.getLogger(__name__)


class VMwareError(Exception):
    """Raised when the hypervisor cannot be reached or queried."""
    pass


def convert_snapshot_tree(nodes: Optional[Sequence[Any]]) -> List[Snapshot]:
    """Convert pyVmomi ``vim.vm.SnapshotTree`` nodes into Snapshot trees."""
    result = []
    for node in nodes or []:
        result.append(Snapshot(
            name=node.name,
            description=node.description or "",
            created=node.createTime,
            state=str(node.state),
            quiesced=bool(node.quiesced),
            children=convert_snapshot_tree(node.childSnapshotList),
            ref=node.snapshot,
        ))
    return result


def machine_from_vm(vm: Any) -> Machine:
    snapshot_info = vm.snapshot
    roots = snapshot_info.rootSnapshotList if snapshot_info is not None else []
    return Machine(name=vm.name, snapshots=convert_snapshot_tree(roots))


class VMwareService:
    """Inventory client for a single ESXi host or vCenter."""

    def __init__(self, service_instance: Any):
        self.si = service_instance

    @classmethod
    def connect(cls, settings: Settings) -> "VMwareService":
        """Open a session using the ESXI_* settings.

        Raises:
            VMwareError: If the URL is invalid or login fails
        """
        parsed = urlparse(settings.esxi_url if "://" in settings.esxi_url else f"https://{settings.esxi_url}")
        if not parsed.hostname:
            raise VMwareError(f"failed to parse URL: {settings.esxi_url!r}")

        ssl_context = None
        if settings.esxi_insecure:
            ssl_context = ssl.create_default_context()
            ssl_context.check_hostname = False
            ssl_context.verify_mode = ssl.CERT_NONE

        try:
            si = SmartConnect(
                host=parsed.hostname,
                port=parsed.port or 443,
                user=settings.esxi_username,
                pwd=settings.esxi_password,
                sslContext=ssl_context,
            )
        except (vim.fault.InvalidLogin, vmodl.MethodFault, OSError) as e:
            raise VMwareError(f"failed to connect: {e}") from e

        logger.info(f"Connected to {si.content.about.fullName}")
        return cls(si)

    def close(self) -> None:
        if self.si is not None:
            Disconnect(self.si)
            self.si = None

    def _all_vms(self) -> List[Any]:
        if self.si is None:
            raise VMwareError("service not initialized")
        content = self.si.RetrieveContent()
        view = content.viewManager.CreateContainerView(content.rootFolder, [vim.VirtualMachine], True)
        try:
            return list(view.view)
        finally:
            view.Destroy()

    def list_vm_snapshots(self) -> MachineInventory:
        """List every VM with its snapshot tree.

        VMs whose properties cannot be read are skipped with a warning.
        """
        try:
            vms = self._all_vms()
        except vmodl.MethodFault as e:
            raise VMwareError(f"failed to list virtual machines: {e.msg}") from e

        inventory = MachineInventory(host_name=self.si.content.about.fullName)
        for vm in vms:
            try:
                inventory.machines.append(machine_from_vm(vm))
            except vmodl.MethodFault as e:
                logger.warning(f"Failed to get properties for {vm.name}: {e.msg}")
        return inventory

    def restore_vm(self, vm: Any, snapshot_name: Optional[str]) -> None:
        """Revert ``vm`` to the named (or latest) snapshot and power it on.

        Raises:
            VMwareError: If no matching snapshot exists, or revert or
                power-on fails
        """
        machine = machine_from_vm(vm)
        if snapshot_name:
            target = find_snapshot_by_name(machine.snapshots, snapshot_name)
            if target is None:
                raise VMwareError(f"snapshot {snapshot_name!r} not found")
        else:
            target = find_latest_snapshot(machine.snapshots)
            if target is None:
                raise VMwareError("no snapshots found")

        try:
            WaitForTask(target.ref.RevertToSnapshot_Task(suppressPowerOn=True))
        except vmodl.MethodFault as e:
            raise VMwareError(f"failed to revert to snapshot {target.name!r}: {e.msg}") from e

        logger.info(
            f"Reverted {machine.name} to snapshot {target.name}",
            extra={"vm": machine.name, "snapshot": target.name},
        )

        if vm.runtime.powerState == PowerState.POWERED_ON.value:
            return
        try:
            WaitForTask(vm.PowerOnVM_Task())
        except vmodl.MethodFault as e:
            raise VMwareError(f"failed to power on: {e.msg}") from e

    def rotate_password(self, vm: Any, username: str) -> str:
        """Set a new random password on the host local account ``username``."""
        password = generate_password()
        account_manager = vm.runtime.host.configManager.accountManager
        if account_manager is None:
            raise VMwareError(
                f"failed to update password for {username}: host account manager not available"
            )
        spec = vim.host.LocalAccountManager.AccountSpecification(id=username, password=password)
        try:
            account_manager.UpdateUser(user=spec)
        except vmodl.MethodFault as e:
            raise VMwareError(f"failed to update password for {username}: {e.msg}") from e
        return password

    def restore_vms_with_password_rotation(
        self,
        vm_names: List[str],
        user_names: List[str],
        snapshot_name: Optional[str],
    ) -> RestoreResult:
        """Restore every VM, then rotate passwords for users whose VM restored.

        ``user_names[i]`` belongs to ``vm_names[i]``; an empty user means
        revert only. One VM's failure never stops the others.
        """
        result = RestoreResult()
        try:
            by_name: Dict[str, Any] = {vm.name: vm for vm in self._all_vms()}
        except vmodl.MethodFault as e:
            result.errors = [f"{name}: failed to list virtual machines: {e.msg}" for name in vm_names]
            return result

        restored = []
        for index, vm_name in enumerate(vm_names):
            vm = by_name.get(vm_name)
            if vm is None:
                result.errors.append(f"{vm_name}: VM not found")
                continue
            try:
                self.restore_vm(vm, snapshot_name)
            except VMwareError as e:
                result.errors.append(f"{vm_name}: {e}")
                continue
            except Exception as e:
                logger.error("Unexpected error restoring VM", extra={"vm": vm_name, "error": e})
                result.errors.append(f"{vm_name}: {e}")
                continue
            user = user_names[index] if index < len(user_names) else ""
            restored.append((vm, user))

        for vm, user in restored:
            if not user:
                continue
            try:
                result.passwords[user] = self.rotate_password(vm, user)
            except VMwareError as e:
                logger.error(
                    "Password rotation failed",
                    extra={"user": user, "vm": vm.name, "error": e},
                )
            except Exception as e:
                logger.error(
                    "Unexpected error rotating password",
                    extra={"user": user, "vm": vm.name, "error": e},
                )

        return result
