"""
Unit tests for ParentPreviewResolver using in-memory fakes.
"""

import uuid

import pytest

from ccm.errors import InvalidScopeTypeError
from ccm.hierarchy import ScopeRef
from ccm.models import ScopeLevel
from ccm.resolution import ParentPreviewResolver
from fakes import make_instruction


@pytest.fixture
def preview(fake_directory, fake_store):
    return ParentPreviewResolver(fake_directory, fake_store)


class TestParentPreview:
    """Tests for the nearest-ancestor preview rules."""

    def test_customer_has_no_parent(self, preview, fake_store, fake_tree):
        """Test customers never preview anything."""
        fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.CUSTOMER, fake_tree.c1.id)) is None

    def test_lease_previews_customer(self, preview, fake_store, fake_tree):
        """Test a lease sees its customer's record."""
        customer = fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.MASTER_LEASE, fake_tree.ml1.id)) is customer

    def test_lease_without_customer_record(self, preview, fake_tree):
        """Test a lease whose customer has no record previews nothing."""
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.MASTER_LEASE, fake_tree.ml1.id)) is None

    def test_rider_prefers_lease(self, preview, fake_store, fake_tree):
        """Test a rider sees its lease's record when there is one."""
        fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        lease = fake_store.put(make_instruction(fake_tree.ml1, kosher_wash=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.RIDER, fake_tree.r1.id)) is lease

    def test_rider_falls_back_to_customer(self, preview, fake_store, fake_tree):
        """A rider whose lease has no record previews the customer's record."""
        customer = fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.RIDER, fake_tree.r1.id)) is customer

    def test_rider_with_nothing_above(self, preview, fake_tree):
        """Test a rider with no ancestor records previews nothing."""
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.RIDER, fake_tree.r1.id)) is None

    def test_amendment_previews_rider(self, preview, fake_store, fake_tree):
        """Test a rider amendment sees its rider's record."""
        rider = fake_store.put(make_instruction(fake_tree.r1, kosher_wipe=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.AMENDMENT, fake_tree.a1.id)) is rider

    def test_amendment_does_not_climb_past_rider(self, preview, fake_store, fake_tree):
        """Test an amendment does not reach the lease or customer."""
        fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        fake_store.put(make_instruction(fake_tree.ml1, kosher_wash=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.AMENDMENT, fake_tree.a1.id)) is None

    def test_lease_amendment_previews_lease(self, preview, fake_directory, fake_store, fake_tree):
        """Test an amendment attached to a lease sees the lease's record."""
        lease_amendment = fake_directory.add(ScopeLevel.AMENDMENT, "A-L", parent=fake_tree.ml1)
        lease = fake_store.put(make_instruction(fake_tree.ml1, kosher_wash=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.AMENDMENT, lease_amendment.id)) is lease

    def test_lease_amendment_does_not_climb(self, preview, fake_directory, fake_store, fake_tree):
        """Test a lease amendment does not fall back to the customer."""
        lease_amendment = fake_directory.add(ScopeLevel.AMENDMENT, "A-L", parent=fake_tree.ml1)
        fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.AMENDMENT, lease_amendment.id)) is None

    def test_preview_ignores_own_record(self, preview, fake_store, fake_tree):
        """Test the scope's own record is never its preview."""
        fake_store.put(make_instruction(fake_tree.r1, kosher_wipe=True))
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.RIDER, fake_tree.r1.id)) is None

    def test_retired_parent_not_previewed(self, preview, fake_store, fake_tree):
        """Test a soft-deleted parent record is skipped like a missing one."""
        lease = fake_store.put(make_instruction(fake_tree.ml1, kosher_wash=True))
        customer = fake_store.put(make_instruction(fake_tree.c1, food_grade=True))
        lease.is_current = False
        assert preview.get_parent_preview(ScopeRef(ScopeLevel.RIDER, fake_tree.r1.id)) is customer

    @pytest.mark.parametrize("level", [ScopeLevel.MASTER_LEASE, ScopeLevel.RIDER, ScopeLevel.AMENDMENT])
    def test_unknown_scope(self, preview, fake_tree, level):
        """Test unknown scope ids preview nothing."""
        assert preview.get_parent_preview(ScopeRef(level, uuid.uuid4())) is None

    def test_invalid_level(self, preview):
        """Test an invalid level string is rejected."""
        with pytest.raises(InvalidScopeTypeError):
            preview.get_parent_preview(ScopeRef("yard", uuid.uuid4()))
