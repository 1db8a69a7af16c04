"""Tests for flat role authorization."""

from types import SimpleNamespace

import pytest

from gatehouse.auth.gate import has_role, is_authenticated, validate_allowed_roles
from gatehouse.auth.roles import Role


def _account(role):
    return SimpleNamespace(id=1, role=role)


class TestIsAuthenticated:
    def test_no_principal(self):
        assert is_authenticated(None) is False

    def test_with_principal(self):
        assert is_authenticated(_account(Role.MEMBER)) is True

    def test_falsy_principal_still_counts(self):
        # An account id of 0 is still a principal.
        assert is_authenticated(0) is True


class TestHasRole:
    @pytest.mark.parametrize("role", list(Role))
    def test_listed_role_passes(self, role):
        assert has_role(_account(role), {role}) is True

    def test_owner_does_not_imply_admin(self):
        assert has_role(_account(Role.OWNER), {Role.ADMIN}) is False

    def test_admin_does_not_imply_staff(self):
        assert has_role(_account(Role.ADMIN), {Role.STAFF}) is False

    def test_any_of_several(self):
        allowed = {Role.OWNER, Role.ADMIN}
        assert has_role(_account(Role.ADMIN), allowed) is True
        assert has_role(_account(Role.STAFF), allowed) is False

    def test_stored_string_role_is_parsed(self):
        assert has_role(_account("staff"), {Role.STAFF}) is True

    def test_unknown_stored_role_raises(self):
        with pytest.raises(ValueError):
            has_role(_account("superuser"), {Role.OWNER})

    def test_string_in_allow_list_raises(self):
        with pytest.raises(TypeError):
            has_role(_account(Role.ADMIN), {"admin"})

    def test_empty_allow_list_raises(self):
        with pytest.raises(ValueError):
            has_role(_account(Role.ADMIN), set())


class TestValidateAllowedRoles:
    def test_returns_frozenset(self):
        assert validate_allowed_roles([Role.STAFF, Role.STAFF]) == frozenset({Role.STAFF})

    def test_rejects_mixed(self):
        with pytest.raises(TypeError):
            validate_allowed_roles([Role.STAFF, "owner"])
