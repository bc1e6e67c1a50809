"""
Tests for HierarchyTreeBuilder, with fakes and against the SQLite hierarchy.
"""

import uuid

import pytest

from ccm.hierarchy import ScopeInfo, ScopeRef
from ccm.models import ScopeLevel
from ccm.tree import HierarchyTreeBuilder
from fakes import make_instruction


def walk(nodes):
    for node in nodes:
        yield node
        yield from walk(node.children)


class TestTreeShape:
    """Tests for tree assembly from fake data."""

    def test_mirrors_hierarchy(self, fake_directory, fake_store, fake_tree):
        """Test customer > lease > rider > amendment nesting."""
        roots = HierarchyTreeBuilder(fake_directory, fake_store).build_tree()

        assert [n.name for n in roots] == ["C1"]
        lease = roots[0].children[0]
        rider = lease.children[0]
        amendment = rider.children[0]
        assert (lease.level, rider.level, amendment.level) == (
            ScopeLevel.MASTER_LEASE, ScopeLevel.RIDER, ScopeLevel.AMENDMENT
        )
        assert amendment.children == []

    def test_override_flags(self, fake_directory, fake_store, fake_tree):
        """Test has_override matches the set of scopes with a current record."""
        fake_store.put(make_instruction(fake_tree.ml1, food_grade=True))
        retired = fake_store.put(make_instruction(fake_tree.a1, food_grade=False))
        retired.is_current = False

        roots = HierarchyTreeBuilder(fake_directory, fake_store).build_tree()

        flagged = {(n.level, n.id) for n in walk(roots) if n.has_override}
        assert flagged == {(ScopeLevel.MASTER_LEASE, fake_tree.ml1.id)}
        assert flagged == fake_store.scopes_with_current_instruction() & {
            (n.level, n.id) for n in walk(roots)
        }

    def test_children_sorted_by_name(self, fake_directory, fake_store, fake_tree):
        """Test siblings are ordered by name."""
        fake_directory.add(ScopeLevel.RIDER, "Alpha", parent=fake_tree.ml1)
        fake_directory.add(ScopeLevel.RIDER, "Zulu", parent=fake_tree.ml1)
        fake_directory.add(ScopeLevel.CUSTOMER, "B Customer")

        roots = HierarchyTreeBuilder(fake_directory, fake_store).build_tree()

        assert [n.name for n in roots] == ["B Customer", "C1"]
        lease = roots[1].children[0]
        assert [n.name for n in lease.children] == ["Alpha", "R1", "Zulu"]

    def test_lease_amendment_under_lease(self, fake_directory, fake_store, fake_tree):
        """Test amendments without a rider are listed under their lease."""
        fake_directory.add(ScopeLevel.AMENDMENT, "Lease change", parent=fake_tree.ml1)
        roots = HierarchyTreeBuilder(fake_directory, fake_store).build_tree()
        lease = roots[0].children[0]
        assert [(n.level, n.name) for n in lease.children] == [
            (ScopeLevel.AMENDMENT, "Lease change"),
            (ScopeLevel.RIDER, "R1"),
        ]

    def test_inactive_surfaced_by_default(self, fake_directory, fake_store, fake_tree):
        """Test inactive scopes are shown with their flag."""
        fake_directory.add(ScopeLevel.RIDER, "Old rider", parent=fake_tree.ml1, is_active=False)
        roots = HierarchyTreeBuilder(fake_directory, fake_store).build_tree()
        riders = {n.name: n for n in roots[0].children[0].children}
        assert riders["Old rider"].is_active is False

    def test_hide_inactive(self, fake_directory, fake_store, fake_tree):
        """Test hide_inactive drops inactive scopes and their subtree."""
        old = fake_directory.add(ScopeLevel.RIDER, "Old rider", parent=fake_tree.ml1, is_active=False)
        fake_directory.add(ScopeLevel.AMENDMENT, "Old amendment", parent=old)

        roots = HierarchyTreeBuilder(fake_directory, fake_store, hide_inactive=True).build_tree()

        names = {n.name for n in walk(roots)}
        assert "Old rider" not in names
        assert "Old amendment" not in names

    def test_orphans_dropped(self, fake_directory, fake_store, fake_tree):
        """Test nodes whose parent is missing are left out without error."""
        orphan = ScopeInfo(
            level=ScopeLevel.RIDER,
            id=uuid.uuid4(),
            name="Orphan",
            parent_level=ScopeLevel.MASTER_LEASE,
            parent_id=uuid.uuid4(),
        )
        fake_directory.scopes[(orphan.level, orphan.id)] = orphan

        roots = HierarchyTreeBuilder(fake_directory, fake_store).build_tree()

        assert "Orphan" not in {n.name for n in walk(roots)}

    def test_empty_hierarchy(self, fake_directory, fake_store):
        """Test an empty hierarchy yields an empty tree."""
        assert HierarchyTreeBuilder(fake_directory, fake_store).build_tree() == []

    def test_customer_filter(self, fake_directory, fake_store, fake_tree):
        """Test the customer filter returns just that customer's tree."""
        other = fake_directory.add(ScopeLevel.CUSTOMER, "Other")
        fake_directory.add(ScopeLevel.MASTER_LEASE, "Other lease", parent=other)

        roots = HierarchyTreeBuilder(fake_directory, fake_store).build_tree(other.id)

        assert [n.name for n in roots] == ["Other"]
        assert [n.name for n in roots[0].children] == ["Other lease"]

    def test_to_dict(self, fake_directory, fake_store, fake_tree):
        """Test node serialization uses the editing screen's keys."""
        fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        data = HierarchyTreeBuilder(fake_directory, fake_store).build_tree()[0].to_dict()
        assert data["id"] == str(fake_tree.c1.id)
        assert data["level"] == "customer"
        assert data["hasOverride"] is True
        assert data["isActive"] is True
        assert data["children"][0]["level"] == "master_lease"


class TestTreeFromDatabase:
    """Tests for the tree over the seeded SQLite hierarchy."""

    def test_seeded_tree(self, directory, repo, hierarchy):
        """Test the full tree with override flags from the store."""
        repo.create(ScopeRef(ScopeLevel.RIDER, hierarchy.r1), {"kosher_wash": True})

        roots = HierarchyTreeBuilder(directory, repo).build_tree()

        assert [n.name for n in roots] == ["Acme Chemical Co", "Beta Grain"]
        acme_leases = roots[0].children
        assert [n.name for n in acme_leases] == ["Acme Master", "ML-002"]
        assert acme_leases[1].is_active is False

        master = acme_leases[0]
        assert [(n.level, n.name) for n in master.children] == [
            (ScopeLevel.RIDER, "Food Grade Fleet"),
            (ScopeLevel.AMENDMENT, "Lease-wide decal change"),
            (ScopeLevel.RIDER, "R-002"),
        ]
        rider = master.children[0]
        assert rider.has_override is True
        assert [n.name for n in rider.children] == ["AMD-002", "Future change", "Kosher wash added"]
        assert not any(n.has_override for n in walk(roots) if n is not rider)

    def test_seeded_tree_for_customer(self, directory, repo, hierarchy):
        """Test filtering the seeded tree to one customer."""
        roots = HierarchyTreeBuilder(directory, repo).build_tree(hierarchy.c2)
        assert [n.name for n in roots] == ["Beta Grain"]
        assert [n.name for n in walk(roots)] == ["Beta Grain", "Beta Master", "Beta Hoppers"]

    def test_seeded_tree_hide_inactive(self, directory, repo, hierarchy):
        """Test hiding inactive scopes on the seeded data."""
        roots = HierarchyTreeBuilder(directory, repo, hide_inactive=True).build_tree(hierarchy.c1)
        names = {n.name for n in walk(roots)}
        assert "ML-002" not in names
        assert "R-002" not in names
        assert "Future change" not in names
        assert "AMD-002" in names
