# backend/labprovider/services/assignment_selector.py
"""Pair active bookings with configured (user, VM) mappings."""
import logging
from dataclasses import dataclass
from typing import Iterable, List, Set

from labprovider.models.inventory import Machine
from labprovider.schemas.feature_config import UserVMPair

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Assignment:
    """A VM handed out for one scheduling cycle.

    ``user`` is empty for an unclaimed fallback VM; such VMs are restored but
    get no password rotation, VPN key or email.
    """
    user: str
    vm_name: str


def build_inventory_set(machines: Iterable[Machine]) -> Set[str]:
    """Create a set of VM names from the inventory for fast lookup."""
    return {machine.name for machine in machines}


def select_configured_vms(
    pairs: List[UserVMPair],
    inventory_vms: Set[str],
    event_count: int,
) -> List[Assignment]:
    """Pick each user's first configured VM that exists in the inventory.

    Pairs are expected in sorted username order. Stops once ``event_count``
    assignments have been made.
    """
    assignments: List[Assignment] = []
    if event_count <= 0:
        return assignments

    for pair in pairs:
        valid = [vm for vm in pair.vms if vm in inventory_vms]
        for missing in (vm for vm in pair.vms if vm not in inventory_vms):
            logger.warning(
                f"Configured VM {missing} not found in inventory",
                extra={"vm": missing, "user": pair.user},
            )
        if not valid:
            continue
        assignments.append(Assignment(user=pair.user, vm_name=valid[0]))
        if len(assignments) >= event_count:
            break

    return assignments


def add_fallback_vms(
    assignments: List[Assignment],
    machines: Iterable[Machine],
    event_count: int,
) -> List[Assignment]:
    """Top up with unclaimed inventory VMs (empty user), in inventory order."""
    result = list(assignments)
    claimed = {a.vm_name for a in result}
    for machine in machines:
        if len(result) >= event_count:
            break
        if machine.name in claimed:
            continue
        result.append(Assignment(user="", vm_name=machine.name))
        claimed.add(machine.name)
    return result


def select_assignments(
    machines: List[Machine],
    pairs: List[UserVMPair],
    event_count: int,
) -> List[Assignment]:
    """Select which VMs to restore for ``event_count`` active bookings.

    Configured mappings are used first (sorted by username), then unclaimed
    inventory VMs. Identical inputs always yield the identical ordered output.
    """
    inventory_vms = build_inventory_set(machines)
    assignments = select_configured_vms(pairs, inventory_vms, event_count)

    if len(assignments) < event_count:
        assignments = add_fallback_vms(assignments, machines, event_count)

    if len(assignments) < event_count:
        logger.warning(
            "Insufficient VMs available",
            extra={
                "events": event_count,
                "available_vms": len(assignments),
                "reason": "will_restore_all_available",
            },
        )

    return assignments
