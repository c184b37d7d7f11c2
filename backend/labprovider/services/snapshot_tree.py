# backend/labprovider/services/snapshot_tree.py
"""
Pure traversal helpers over a machine's snapshot forest.

None of these functions mutate the tree; they return a reference to an
existing node or None.
"""
from typing import Iterator, List, Optional, Sequence

from labprovider.models.inventory import Snapshot


def find_snapshot_by_name(snapshots: Sequence[Snapshot], name: str) -> Optional[Snapshot]:
    """Depth-first, pre-order search for the first snapshot called ``name``.

    Args:
        snapshots: Root level of the forest (or any subtree's child list)
        name: Exact snapshot name

    Returns:
        The matching node, or None when no node in any subtree matches
    """
    for snapshot in snapshots:
        if snapshot.name == name:
            return snapshot
        found = find_snapshot_by_name(snapshot.children, name)
        if found is not None:
            return found
    return None


def find_latest_snapshot(snapshots: Sequence[Snapshot]) -> Optional[Snapshot]:
    """Select the "latest" snapshot by descending from the newest root.

    At each level the node with the greatest creation time is chosen (ties go
    to the earliest listed), then the search continues in that node's children
    until a leaf is reached. A node's own timestamp is never compared with its
    descendants', and nodes outside the chosen path are never considered, so
    the result can be older than a sibling root or than its own parent.
    """
    if not snapshots:
        return None

    latest = snapshots[0]
    for snapshot in snapshots[1:]:
        if snapshot.created > latest.created:
            latest = snapshot

    if latest.children:
        return find_latest_snapshot(latest.children)
    return latest


def iter_snapshots(snapshots: Sequence[Snapshot]) -> Iterator[Snapshot]:
    """Yield every node in depth-first pre-order."""
    for snapshot in snapshots:
        yield snapshot
        yield from iter_snapshots(snapshot.children)


def flatten_snapshots(snapshots: Sequence[Snapshot]) -> List[Snapshot]:
    """Return the forest as a flat pre-order list (parents before children)."""
    return list(iter_snapshots(snapshots))
