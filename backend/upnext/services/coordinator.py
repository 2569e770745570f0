"""
System coordinator.

Every state-changing request goes through here: the primary record is written
first, then one audit entry is appended and the notification policy is
consulted. Audit and notification failures are logged and never undo or fail
the primary write.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from upnext.core.audit import AuditLog
from upnext.core.errors import (
    AuthorizationError,
    InvalidCredentialsError,
    NotFoundError,
    ValidationError,
)
from upnext.core.records import new_id
from upnext.core.security import issue_session
from upnext.models.audit import AuditAction
from upnext.models.lead import LeadAssignment
from upnext.models.rotation import Employee, RotationState
from upnext.models.user import AuthSession, Role, User
from upnext.services import rotation as transitions
from upnext.services.lead_assignments import LeadAssignmentLog
from upnext.services.notifications import NotificationDispatcher
from upnext.services.rotation import RotationService
from upnext.services.user_directory import UserDirectory

logger = logging.getLogger("upnext.coordinator")

SELF_UPDATABLE_FIELDS = ("password", "email")


def _status(employee: Optional[Employee]) -> Optional[str]:
    if employee is None:
        return None
    return "active" if employee.is_active else "inactive"


def _names(state: RotationState) -> List[str]:
    return [e.name for e in state.employees]


def _current_name(state: RotationState) -> Optional[str]:
    current = state.current_employee
    return current.name if current else None


def _added_summaries(before: RotationState, after: RotationState, employee_id: str) -> Tuple[dict, dict]:
    added = after.find(employee_id)
    return (
        {"employeeCount": len(before.employees)},
        {
            "employeeCount": len(after.employees),
            "addedEmployee": added.to_json() if added else None,
        },
    )


class SystemCoordinator:
    def __init__(
        self,
        rotation: RotationService,
        audit: AuditLog,
        leads: LeadAssignmentLog,
        users: UserDirectory,
        notifications: NotificationDispatcher,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.rotation = rotation
        self.audit = audit
        self.leads = leads
        self.users = users
        self.notifications = notifications
        self._now = now or (lambda: datetime.now(timezone.utc))

    # -- side effects -----------------------------------------------------

    async def _record(
        self,
        action: AuditAction,
        user: str,
        source: str,
        details: str,
        before_state: Optional[Dict[str, Any]] = None,
        after_state: Optional[Dict[str, Any]] = None,
    ) -> None:
        await self.audit.record(
            action, user, source, details,
            before_state=before_state, after_state=after_state,
        )
        await self._notify(action, details, user)

    async def _notify(self, action: AuditAction, details: str, user: str) -> None:
        try:
            await self.notifications.dispatch(action.value, details, user, timestamp=self._now())
        except Exception as exc:
            logger.warning(f"Notification for {action.value} failed: {exc}")

    # -- rotation -----------------------------------------------------------

    async def add_employee(self, name: str, actor: str, source: str) -> RotationState:
        employee_id = new_id()
        before, after = await self.rotation.apply(lambda s: transitions.add_employee(s, name, employee_id))
        before_summary, after_summary = _added_summaries(before, after, employee_id)
        await self._record(
            AuditAction.ADD, actor, source,
            f"Added employee: {name}",
            before_state=before_summary,
            after_state=after_summary,
        )
        return after

    async def remove_employee(self, employee_id: str, actor: str, source: str) -> RotationState:
        before, after = await self.rotation.apply(lambda s: transitions.remove_employee(s, employee_id))
        removed = before.find(employee_id)
        await self._record(
            AuditAction.REMOVE, actor, source,
            f"Removed employee: {removed.name if removed else 'Unknown'}",
            before_state={
                "employeeCount": len(before.employees),
                "removedEmployee": removed.to_json() if removed else None,
            },
            after_state={"employeeCount": len(after.employees)},
        )
        return after

    async def cycle(self, actor: str, source: str) -> RotationState:
        before, after = await self.rotation.apply(transitions.cycle)
        previous, current = _current_name(before), _current_name(after)
        await self._record(
            AuditAction.CYCLE, actor, source,
            f"Cycled from {previous or 'None'} to {current or 'None'}",
            before_state={"currentUp": previous, "currentUpIndex": before.current_up_index},
            after_state={"currentUp": current, "currentUpIndex": after.current_up_index},
        )
        return after

    async def reorder(
        self,
        employees: List[Employee],
        actor: str,
        source: str,
        details: Optional[str] = None,
    ) -> RotationState:
        before, after = await self.rotation.apply(lambda s: transitions.reorder(s, employees))
        await self._record(
            AuditAction.REORDER, actor, source,
            details or "Reordered employee queue",
            before_state={"order": _names(before)},
            after_state={"order": _names(after)},
        )
        return after

    async def toggle_employee(self, employee_id: str, actor: str, source: str) -> RotationState:
        before, after = await self.rotation.apply(lambda s: transitions.toggle_active(s, employee_id))
        old, new = before.find(employee_id), after.find(employee_id)
        verb = "Activated" if new is not None and new.is_active else "Deactivated"
        await self._record(
            AuditAction.TOGGLE, actor, source,
            f"{verb} employee: {old.name if old else 'Unknown'}",
            before_state={"employee": old.name if old else None, "status": _status(old)},
            after_state={"employee": new.name if new else None, "status": _status(new)},
        )
        return after

    async def apply_action(
        self,
        action: str,
        actor: str,
        source: str,
        name: Optional[str] = None,
        employee_id: Optional[str] = None,
        employees: Optional[List[Employee]] = None,
        details: Optional[str] = None,
    ) -> RotationState:
        """
        Dispatch a rotation action by name.

        Raises:
            ValidationError: For an unknown action or missing action fields
        """
        if action == "add":
            if not name or not name.strip():
                raise ValidationError("Missing employee name")
            return await self.add_employee(name.strip(), actor, source)
        if action in ("remove", "toggle") and not employee_id:
            raise ValidationError("Missing employee id")
        if action == "remove":
            return await self.remove_employee(employee_id, actor, source)
        if action == "toggle":
            return await self.toggle_employee(employee_id, actor, source)
        if action == "cycle":
            return await self.cycle(actor, source)
        if action == "reorder":
            if employees is None:
                raise ValidationError("Missing employees")
            return await self.reorder(employees, actor, source, details)
        raise ValidationError("Invalid action")

    # -- leads --------------------------------------------------------------

    async def assign_lead(
        self,
        lead_name: str,
        employee_id: str,
        employee_name: str,
        source: str,
        actor: str,
    ) -> LeadAssignment:
        assignment = await self.leads.assign(
            lead_name=lead_name,
            employee_id=employee_id,
            employee_name=employee_name,
            source=source,
            assigned_by=actor,
        )
        await self._record(
            AuditAction.LEAD_ASSIGNMENT, actor, source,
            f'Assigned lead "{lead_name}" to {employee_name}',
            after_state={"assignment": assignment.to_json()},
        )
        return assignment

    # -- sessions -----------------------------------------------------------

    async def login(self, username: str, password: str) -> Tuple[str, AuthSession, User]:
        """
        Authenticate and mint a session.

        A successful salesperson login puts them into the rotation if they are
        missing, or reactivates their entry if it is inactive with no pending
        temporary inactivity.

        Raises:
            InvalidCredentialsError: For an unknown username or wrong password
        """
        user = await self.users.authenticate(username, password)
        if user is None:
            await self._record(
                AuditAction.LOGIN_FAILED, username or "unknown", "login-page",
                "Failed login attempt",
            )
            raise InvalidCredentialsError()

        token, session = issue_session(user, now=self._now())
        user = await self.users.record_login(user.id)
        await self._record(AuditAction.LOGIN, user.username, "login-page", "Successful login")

        if user.role == Role.SALESPERSON and user.is_active:
            await self._join_rotation(user)

        return token, session, user

    async def _join_rotation(self, user: User) -> None:
        outcome: Optional[AuditAction] = None

        def join(state: RotationState) -> RotationState:
            nonlocal outcome
            outcome = None
            employee = transitions.match_employee(state, user.id, user.name)
            if employee is None:
                outcome = AuditAction.ADD
                state = transitions.add_employee(state, user.name, user.id)
                until = user.temporary_inactive_until
                if until is not None and until > self._now():
                    # Rejoin without cutting a pending inactivity short
                    state = transitions.set_temporary_inactive(state, user.id, until)
                return state
            if not employee.is_active and employee.temporary_inactive_until is None:
                outcome = AuditAction.TOGGLE
                return transitions.toggle_active(state, employee.id)
            return state

        before, after = await self.rotation.apply(join)
        if outcome == AuditAction.ADD:
            before_summary, after_summary = _added_summaries(before, after, user.id)
            await self._record(
                AuditAction.ADD, user.username, "login",
                f"Added employee: {user.name}",
                before_state=before_summary,
                after_state=after_summary,
            )
        elif outcome == AuditAction.TOGGLE:
            await self._record(
                AuditAction.TOGGLE, user.username, "login",
                f"Activated employee: {user.name}",
                before_state={"employee": user.name, "status": "inactive"},
                after_state={"employee": user.name, "status": "active"},
            )

    async def logout(self, session: Optional[AuthSession]) -> None:
        username = session.username if session else "anonymous"
        await self._record(AuditAction.LOGOUT, username, "navigation", "User logged out")

    # -- users --------------------------------------------------------------

    async def create_user(self, actor: AuthSession, **fields) -> User:
        user = await self.users.create(**fields)
        await self._record(
            AuditAction.CREATE_USER, actor.username, "admin-dashboard",
            f"Created new {user.role.value} user: {user.name} ({user.username})",
        )
        return user

    async def update_user(self, actor: AuthSession, user_id: str, changes: Dict[str, Any]) -> User:
        """
        Update a user. Managers may change any field; everyone else may only
        change their own password and email.
        """
        existing = await self.users.get(user_id)
        if existing is None:
            raise NotFoundError("User not found")

        if actor.role != Role.MANAGER:
            if actor.user_id != user_id:
                raise AuthorizationError()
            allowed = {k: changes[k] for k in SELF_UPDATABLE_FIELDS if changes.get(k)}
            updated = await self.users.update(user_id, **allowed)
            await self._record(AuditAction.UPDATE_USER, actor.username, "profile", "Updated own profile")
            return updated

        updated = await self.users.update(user_id, **changes)
        await self._mirror_onto_employee(existing, updated)
        await self._record(
            AuditAction.UPDATE_USER, actor.username, "admin-dashboard",
            f"Updated user: {updated.name} ({updated.username})",
        )
        return updated

    async def _mirror_onto_employee(self, before: User, after: User) -> None:
        renamed = after.name != before.name
        deactivated = before.is_active and not after.is_active
        if not (renamed or deactivated):
            return

        def mirror(state: RotationState) -> RotationState:
            employee = transitions.match_employee(state, before.id, before.name)
            if employee is None:
                return state
            if renamed:
                state = transitions.rename(state, employee.id, after.name)
            if deactivated:
                state = transitions.deactivate(state, employee.id)
            return state

        await self.rotation.apply(mirror)

    async def delete_user(self, actor: AuthSession, user_id: str) -> None:
        user = await self.users.get(user_id)
        if user is None:
            raise NotFoundError("User not found")
        if user.id == actor.user_id:
            raise ValidationError("Cannot delete your own account")
        if not await self.users.delete(user_id):
            raise NotFoundError("User not found")
        await self._record(
            AuditAction.DELETE_USER, actor.username, "admin-dashboard",
            f"Deleted user: {user.name} ({user.username})",
        )

    async def set_temporary_inactive(self, actor: AuthSession, user_id: str, minutes: int) -> User:
        """
        Take a user out of the rotation for a while.

        Allowed for BDC and managers on anyone, and for a salesperson on
        themselves.
        """
        target = await self.users.get(user_id)
        if target is None:
            raise NotFoundError("User not found")

        is_self = actor.user_id == user_id
        if not actor.role.at_least(Role.BDC) and not (is_self and target.role == Role.SALESPERSON):
            raise AuthorizationError()

        updated = await self.users.set_temporary_inactive(user_id, minutes)
        until = updated.temporary_inactive_until
        await self._record(
            AuditAction.TEMPORARY_INACTIVE, actor.username,
            "self-action" if is_self else "admin-dashboard",
            f"{updated.name} set to inactive for {minutes} minutes (until {until:%H:%M:%S} UTC)",
        )
        return updated
