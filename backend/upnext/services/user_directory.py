"""
User directory: the single writer of user records.

Users live in one store record as a list. Usernames are unique ignoring case
and are stored lowercased.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, List, Optional, Tuple

from upnext.core.config import settings
from upnext.core.errors import DuplicateUsernameError, InvalidRoleError, NotFoundError, ValidationError
from upnext.core.records import USERS_KEY, decode, encode, new_id
from upnext.core.security import prepare_password_for_storage, verify_password
from upnext.core.store import KeyValueStore
from upnext.models.user import Role, User
from upnext.services import rotation as transitions
from upnext.services.rotation import RotationService

logger = logging.getLogger("upnext.users")

UPDATABLE_FIELDS = {"username", "password", "name", "role", "email", "is_active"}


def parse_role(value) -> Role:
    try:
        return Role(value)
    except ValueError:
        raise InvalidRoleError(f"Invalid role: {value}")


def _reconcile_users(users: List[User], now: datetime) -> Tuple[List[User], bool]:
    changed = False
    result = []
    for user in users:
        if user.temporary_inactive_until is not None and user.temporary_inactive_until <= now:
            user = user.model_copy(update={"temporary_inactive_until": None})
            changed = True
        result.append(user)
    return result, changed


class UserDirectory:
    def __init__(
        self,
        store: KeyValueStore,
        rotation: Optional[RotationService] = None,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self._store = store
        self._rotation = rotation
        self._now = now or (lambda: datetime.now(timezone.utc))

    @staticmethod
    def _decode(raw: Optional[str]) -> List[User]:
        return [User.model_validate(item) for item in decode(raw, default=[])]

    @staticmethod
    def _encode(users: List[User]) -> str:
        return encode([u.to_json() for u in users])

    async def _modify(self, change: Callable[[List[User]], List[User]]) -> List[User]:
        """Run `change` over the stored users inside one atomic update."""
        result: List[User] = []

        def mutate(raw: Optional[str]) -> Optional[str]:
            nonlocal result
            users, _ = _reconcile_users(self._decode(raw), self._now())
            result = change(users)
            return self._encode(result)

        await self._store.update(USERS_KEY, mutate)
        return result

    async def list(self) -> List[User]:
        users = self._decode(await self._store.get(USERS_KEY))
        users, changed = _reconcile_users(users, self._now())
        if changed:
            users = await self._modify(lambda current: current)
        return users

    async def get(self, user_id: str) -> Optional[User]:
        return next((u for u in await self.list() if u.id == user_id), None)

    async def get_by_username(self, username: str) -> Optional[User]:
        wanted = username.strip().lower()
        return next((u for u in await self.list() if u.username == wanted), None)

    async def authenticate(self, username: str, password: str) -> Optional[User]:
        """The matching user, or None for an unknown username or wrong password."""
        user = await self.get_by_username(username)
        if user is None or not verify_password(password, user.password):
            return None
        return user

    async def create(
        self,
        username: str,
        password: str,
        name: str,
        role,
        email: Optional[str] = None,
        is_active: bool = True,
    ) -> User:
        """
        Add a user.

        Raises:
            InvalidRoleError: If role is not one of the known roles
            DuplicateUsernameError: If the username is taken, ignoring case
        """
        role = parse_role(role)
        username = username.strip().lower()
        if not username:
            raise ValidationError("Username is required")

        user = User(
            id=new_id(),
            username=username,
            password=prepare_password_for_storage(password),
            name=name,
            role=role,
            email=email,
            is_active=is_active,
            created_at=self._now(),
        )

        def change(users: List[User]) -> List[User]:
            if any(u.username == username for u in users):
                raise DuplicateUsernameError()
            return [*users, user]

        await self._modify(change)
        logger.info(f"Created {role.value} user {username}")
        return user

    async def update(self, user_id: str, **fields) -> User:
        """
        Merge fields into a user.

        Raises:
            NotFoundError: If no user has this id
            DuplicateUsernameError: If a changed username is taken
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in fields.items() if v is not None}
        if "role" in changes:
            changes["role"] = parse_role(changes["role"])
        if "username" in changes:
            changes["username"] = changes["username"].strip().lower()
            if not changes["username"]:
                raise ValidationError("Username is required")
        if "password" in changes:
            changes["password"] = prepare_password_for_storage(changes["password"])

        updated: Optional[User] = None

        def change(users: List[User]) -> List[User]:
            nonlocal updated
            target = next((u for u in users if u.id == user_id), None)
            if target is None:
                raise NotFoundError("User not found")
            new_username = changes.get("username")
            if new_username and new_username != target.username:
                if any(u.username == new_username for u in users if u.id != user_id):
                    raise DuplicateUsernameError()
            updated = target.model_copy(update=changes)
            return [updated if u.id == user_id else u for u in users]

        await self._modify(change)
        return updated

    async def delete(self, user_id: str) -> bool:
        """Remove a user. False when there was nothing to remove."""
        removed = False

        def mutate(raw: Optional[str]) -> Optional[str]:
            nonlocal removed
            users = self._decode(raw)
            remaining = [u for u in users if u.id != user_id]
            removed = len(remaining) != len(users)
            return self._encode(remaining) if removed else None

        await self._store.update(USERS_KEY, mutate)
        return removed

    async def record_login(self, user_id: str) -> User:
        stamped: Optional[User] = None

        def change(users: List[User]) -> List[User]:
            nonlocal stamped
            target = next((u for u in users if u.id == user_id), None)
            if target is None:
                raise NotFoundError("User not found")
            stamped = target.model_copy(update={"last_login": self._now()})
            return [stamped if u.id == user_id else u for u in users]

        await self._modify(change)
        return stamped

    async def set_temporary_inactive(self, user_id: str, minutes: int) -> User:
        """
        Schedule inactivity for `minutes` from now.

        The matching rotation employee, if any, is marked inactive until the
        same instant.
        """
        if minutes <= 0:
            raise ValidationError("Minutes must be positive")
        until = self._now() + timedelta(minutes=minutes)
        scheduled: Optional[User] = None

        def change(users: List[User]) -> List[User]:
            nonlocal scheduled
            target = next((u for u in users if u.id == user_id), None)
            if target is None:
                raise NotFoundError("User not found")
            scheduled = target.model_copy(update={"temporary_inactive_until": until})
            return [scheduled if u.id == user_id else u for u in users]

        await self._modify(change)

        if self._rotation is not None:
            def mirror(state):
                employee = transitions.match_employee(state, scheduled.id, scheduled.name)
                if employee is None:
                    return state
                return transitions.set_temporary_inactive(state, employee.id, until)

            await self._rotation.apply(mirror)

        return scheduled

    async def ensure_default_admin(self) -> Optional[User]:
        """Create the configured manager account when there are no users yet."""
        if await self.list():
            return None
        try:
            admin = await self.create(
                username=settings.DEFAULT_ADMIN_USERNAME,
                password=settings.DEFAULT_ADMIN_PASSWORD,
                name=settings.DEFAULT_ADMIN_NAME,
                role=Role.MANAGER,
            )
        except DuplicateUsernameError:
            # Another instance seeded it first
            return None
        logger.info(f"Seeded default manager account '{admin.username}'")
        return admin
