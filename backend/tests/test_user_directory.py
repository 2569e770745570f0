"""
Tests for upnext/services/user_directory.py - user records.
"""
from datetime import timedelta

import pytest

from upnext.core.errors import DuplicateUsernameError, InvalidRoleError, NotFoundError, ValidationError
from upnext.models.user import Role
from upnext.services import rotation as transitions


class TestCreate:
    """Test UserDirectory.create()."""

    @pytest.mark.asyncio
    async def test_username_is_stored_lowercased(self, users):
        user = await users.create("JaneDoe", "pw", "Jane Doe", "salesperson")

        assert user.username == "janedoe"
        assert user.role == Role.SALESPERSON
        assert user.is_active is True

    @pytest.mark.asyncio
    async def test_duplicate_username_ignores_case(self, users):
        await users.create("jane", "pw", "Jane", "bdc")

        with pytest.raises(DuplicateUsernameError):
            await users.create("JANE", "other", "Other Jane", "bdc")

    @pytest.mark.asyncio
    async def test_invalid_role_rejected(self, users):
        with pytest.raises(InvalidRoleError):
            await users.create("jane", "pw", "Jane", "owner")

        assert await users.list() == []

    @pytest.mark.asyncio
    async def test_blank_username_rejected(self, users):
        with pytest.raises(ValidationError):
            await users.create("   ", "pw", "Nobody", "bdc")

    @pytest.mark.asyncio
    async def test_password_hashing_setting(self, users, monkeypatch):
        from upnext.core import security

        monkeypatch.setattr(security.settings, "PASSWORD_HASHING", True)

        user = await users.create("hashed", "s3cret", "Hashed", "bdc")

        assert user.password != "s3cret"
        assert user.password.startswith("$2")
        assert await users.authenticate("hashed", "s3cret") is not None


class TestLookup:
    """Test reads and authentication."""

    @pytest.mark.asyncio
    async def test_get_by_username_ignores_case(self, users, seeded_users):
        found = await users.get_by_username("SALLY")

        assert found.id == seeded_users["sales"].id

    @pytest.mark.asyncio
    async def test_authenticate(self, users, seeded_users):
        assert (await users.authenticate("Manager", "manager-pass")).id == seeded_users["manager"].id
        assert await users.authenticate("manager", "wrong") is None
        assert await users.authenticate("ghost", "manager-pass") is None

    @pytest.mark.asyncio
    async def test_public_form_has_no_password(self, seeded_users):
        data = seeded_users["bdc"].public()

        assert "password" not in data
        assert data["username"] == "bdc"
        assert "createdAt" in data


class TestUpdateDelete:
    """Test UserDirectory.update() and delete()."""

    @pytest.mark.asyncio
    async def test_update_merges_fields(self, users, seeded_users):
        updated = await users.update(seeded_users["bdc"].id, name="Blake B.", email="blake@example.com")

        assert updated.name == "Blake B."
        assert updated.email == "blake@example.com"
        assert updated.role == Role.BDC

    @pytest.mark.asyncio
    async def test_update_to_taken_username_rejected(self, users, seeded_users):
        with pytest.raises(DuplicateUsernameError):
            await users.update(seeded_users["bdc"].id, username="Sally")

    @pytest.mark.asyncio
    async def test_update_same_username_allowed(self, users, seeded_users):
        updated = await users.update(seeded_users["bdc"].id, username="BDC")

        assert updated.username == "bdc"

    @pytest.mark.asyncio
    async def test_update_unknown_user(self, users):
        with pytest.raises(NotFoundError):
            await users.update("missing", name="x")

    @pytest.mark.asyncio
    async def test_update_rejects_unknown_fields(self, users, seeded_users):
        with pytest.raises(ValidationError):
            await users.update(seeded_users["bdc"].id, created_at="yesterday")

    @pytest.mark.asyncio
    async def test_delete_reports_whether_removed(self, users, seeded_users):
        assert await users.delete(seeded_users["bdc"].id) is True
        assert await users.delete(seeded_users["bdc"].id) is False
        assert await users.get(seeded_users["bdc"].id) is None


class TestTemporaryInactive:
    """Test scheduling temporary inactivity."""

    @pytest.mark.asyncio
    async def test_mirrors_onto_matching_employee(self, users, rotation, seeded_users, clock):
        sally = seeded_users["sales"]
        await rotation.apply(lambda s: transitions.add_employee(s, sally.name, sally.id))

        updated = await users.set_temporary_inactive(sally.id, 30)

        expected = clock() + timedelta(minutes=30)
        assert updated.temporary_inactive_until == expected
        employee = (await rotation.get_state()).find(sally.id)
        assert employee.is_active is False
        assert employee.temporary_inactive_until == expected

    @pytest.mark.asyncio
    async def test_matches_employee_by_name(self, users, rotation, seeded_users):
        sally = seeded_users["sales"]
        await rotation.apply(lambda s: transitions.add_employee(s, "sally sales", "legacy-id"))

        await users.set_temporary_inactive(sally.id, 60)

        assert (await rotation.get_state()).find("legacy-id").is_active is False

    @pytest.mark.asyncio
    async def test_without_employee_entry_rotation_unchanged(self, users, rotation, seeded_users):
        await rotation.apply(lambda s: transitions.add_employee(s, "Someone Else", "other"))
        before = await rotation.get_state()

        await users.set_temporary_inactive(seeded_users["sales"].id, 30)

        assert await rotation.get_state() == before

    @pytest.mark.asyncio
    async def test_expires_on_read(self, users, seeded_users, clock):
        sally = seeded_users["sales"]
        await users.set_temporary_inactive(sally.id, 30)

        clock.advance(minutes=30)

        assert (await users.get(sally.id)).temporary_inactive_until is None

    @pytest.mark.asyncio
    async def test_unknown_user(self, users):
        with pytest.raises(NotFoundError):
            await users.set_temporary_inactive("missing", 30)


class TestDefaultAdmin:
    """Test seeding of the default manager."""

    @pytest.mark.asyncio
    async def test_seeds_when_empty(self, users):
        admin = await users.ensure_default_admin()

        assert admin.role == Role.MANAGER
        assert admin.username == "admin"

    @pytest.mark.asyncio
    async def test_idempotent(self, users):
        await users.ensure_default_admin()

        assert await users.ensure_default_admin() is None
        assert len(await users.list()) == 1

    @pytest.mark.asyncio
    async def test_skipped_when_users_exist(self, users, seeded_users):
        assert await users.ensure_default_admin() is None
        assert await users.get_by_username("admin") is None
