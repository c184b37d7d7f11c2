# backend/labprovider/models/inventory.py
"""
Hypervisor inventory as seen by the provisioning pipeline.

Snapshots form a tree per machine: each node holds its children by value, so
a machine owns an ordered forest of root snapshots. The hypervisor creates
snapshots out-of-band; this system only reads them.
"""
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, List, Optional


@dataclass
class Snapshot:
    """A node in a machine's snapshot tree."""
    name: str
    created: datetime
    description: str = ""
    state: str = ""
    quiesced: bool = False
    children: List["Snapshot"] = field(default_factory=list)
    # Opaque hypervisor reference used to revert; never serialized
    ref: Optional[Any] = field(default=None, repr=False, compare=False)


@dataclass
class Machine:
    """A provisioned virtual machine and its snapshot forest."""
    name: str
    snapshots: List[Snapshot] = field(default_factory=list)


@dataclass
class MachineInventory:
    """All machines visible on the hypervisor host."""
    host_name: str = ""
    machines: List[Machine] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.machines)

    def names(self) -> List[str]:
        return [m.name for m in self.machines]
