"""
Tests for KEYSTONE Permission Atoms
===================================

Tests permission naming and the two matching rules.
"""

import pytest

from keystone.api.access.policy import (
    PermissionAction,
    format_permission,
    has_exact_name_only,
    has_wildcard_or_exact,
    parse_permission,
)


@pytest.fixture
def manager_names():
    """Permission names of a role holding a manage grant."""
    return {"users:manage", "audit-logs:read"}


class TestNaming:
    """Tests for permission names."""

    def test_format(self):
        """Should join resource and action with a colon."""
        assert format_permission("users", "read") == "users:read"

    def test_format_hyphenated_resource(self):
        assert format_permission("audit-logs", "read") == "audit-logs:read"

    def test_parse(self):
        """Should split on the first colon."""
        assert parse_permission("audit-logs:read") == ("audit-logs", "read")

    def test_parse_without_action(self):
        assert parse_permission("users") == ("users", "")

    def test_actions(self):
        """Should expose exactly the five grantable actions."""
        assert {a.value for a in PermissionAction} == {
            "create", "read", "update", "delete", "manage",
        }


class TestWildcardMatching:
    """Tests for single-check matching."""

    def test_exact_match(self, manager_names):
        assert has_wildcard_or_exact(manager_names, "audit-logs", "read")

    def test_manage_covers_all_actions(self, manager_names):
        """Manage should grant every action on its resource."""
        for action in ("create", "read", "update", "delete", "export"):
            assert has_wildcard_or_exact(manager_names, "users", action)

    def test_manage_is_scoped_to_resource(self, manager_names):
        assert not has_wildcard_or_exact(manager_names, "roles", "read")

    def test_missing_grant(self, manager_names):
        assert not has_wildcard_or_exact(manager_names, "audit-logs", "delete")

    def test_empty_set(self):
        assert not has_wildcard_or_exact(set(), "users", "read")


class TestExactMatching:
    """Tests for bulk/display matching."""

    def test_manage_not_expanded(self, manager_names):
        """Manage should not imply other names in bulk checks."""
        assert not has_exact_name_only(manager_names, "users:read")

    def test_manage_itself(self, manager_names):
        assert has_exact_name_only(manager_names, "users:manage")
