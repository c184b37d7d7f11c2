"""Tests for snapshot tree traversal."""
from labprovider.services.snapshot_tree import (
    find_latest_snapshot,
    find_snapshot_by_name,
    flatten_snapshots,
)


class TestFindSnapshotByName:

    def test_finds_nested_snapshot(self, make_snapshot):
        tree = [make_snapshot("root", 1, [make_snapshot("child", 2, [make_snapshot("leaf", 3)])])]

        result = find_snapshot_by_name(tree, "leaf")

        assert result is tree[0].children[0].children[0]

    def test_returns_first_in_preorder_when_names_repeat(self, make_snapshot):
        deep = make_snapshot("dup", 5)
        shallow = make_snapshot("dup", 9)
        tree = [make_snapshot("a", 1, [deep]), shallow]

        assert find_snapshot_by_name(tree, "dup") is deep

    def test_missing_name_returns_none(self, make_snapshot):
        tree = [make_snapshot("root", 1, [make_snapshot("child", 2)])]

        assert find_snapshot_by_name(tree, "nope") is None

    def test_empty_forest_returns_none(self):
        assert find_snapshot_by_name([], "anything") is None


class TestFindLatestSnapshot:

    def test_empty_forest_returns_none(self):
        assert find_latest_snapshot([]) is None

    def test_single_leaf(self, make_snapshot):
        only = make_snapshot("only", 1)

        assert find_latest_snapshot([only]) is only

    def test_descends_into_newest_root(self, make_snapshot):
        old_root = make_snapshot("old", 1, [make_snapshot("old-child", 2)])
        new_root = make_snapshot("new", 3, [make_snapshot("new-a", 4), make_snapshot("new-b", 6)])

        result = find_latest_snapshot([old_root, new_root])

        assert result.name == "new-b"

    def test_child_older_than_sibling_root_still_wins(self, make_snapshot):
        # R1 (t=10) has child C (t=5); sibling root R2 (t=8). The walk picks
        # R1 and returns C even though R2 is newer than C.
        child = make_snapshot("C", 5)
        tree = [make_snapshot("R1", 10, [child]), make_snapshot("R2", 8)]

        assert find_latest_snapshot(tree) is child

    def test_ties_go_to_first_listed(self, make_snapshot):
        first = make_snapshot("first", 4)
        second = make_snapshot("second", 4)

        assert find_latest_snapshot([first, second]) is first


class TestFlattenSnapshots:

    def test_preorder_parents_before_children(self, make_snapshot):
        tree = [
            make_snapshot("a", 1, [make_snapshot("a1", 2), make_snapshot("a2", 3)]),
            make_snapshot("b", 4),
        ]

        names = [s.name for s in flatten_snapshots(tree)]

        assert names == ["a", "a1", "a2", "b"]
