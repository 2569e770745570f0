"""
Rotation state: the ordered employee queue and the "who is up" pointer.

Transitions are pure functions over RotationState. RotationService loads the
stored state, applies one transition inside a single atomic store update and
persists the result, so concurrent writers never lose each other's changes.
"""

import logging
from datetime import datetime, timezone
from typing import Callable, List, Optional, Tuple

from upnext.core.errors import ValidationError
from upnext.core.records import SYSTEM_STATE_KEY, decode, encode, new_id
from upnext.core.store import KeyValueStore
from upnext.models.rotation import Employee, RotationState

logger = logging.getLogger("upnext.rotation")

Transition = Callable[[RotationState], RotationState]


# ---------------------------------------------------------------------------
# Pure transitions
# ---------------------------------------------------------------------------

def add_employee(state: RotationState, name: str, employee_id: Optional[str] = None) -> RotationState:
    """Append an active employee. The pointer does not move."""
    employee = Employee(id=employee_id or new_id(), name=name, is_active=True)
    return state.model_copy(update={"employees": [*state.employees, employee]})


def remove_employee(state: RotationState, employee_id: str) -> RotationState:
    """
    Drop an employee. An unknown id leaves the state unchanged.

    When the pointer falls off the end of the shorter list it goes back to 0.
    """
    remaining = [e for e in state.employees if e.id != employee_id]
    if len(remaining) == len(state.employees):
        return state
    index = state.current_up_index
    if index >= len(remaining):
        index = 0
    return state.model_copy(update={"employees": remaining, "current_up_index": index})


def cycle(state: RotationState) -> RotationState:
    """Advance the pointer, wrapping at the end. No-op on an empty queue."""
    if not state.employees:
        return state
    index = (state.current_up_index + 1) % len(state.employees)
    return state.model_copy(update={"current_up_index": index})


def reorder(state: RotationState, employees: List[Employee]) -> RotationState:
    """Replace the queue wholesale. The pointer always goes back to 0."""
    ids = [e.id for e in employees]
    if len(set(ids)) != len(ids):
        raise ValidationError("Employee ids must be unique")
    return state.model_copy(update={
        "employees": [e.model_copy() for e in employees],
        "current_up_index": 0,
    })


def _replace(state: RotationState, employee_id: str, **changes) -> RotationState:
    if state.find(employee_id) is None:
        return state
    employees = [
        e.model_copy(update=changes) if e.id == employee_id else e
        for e in state.employees
    ]
    return state.model_copy(update={"employees": employees})


def toggle_active(state: RotationState, employee_id: str) -> RotationState:
    """Flip is_active. Reactivating clears any pending temporary inactivity."""
    employee = state.find(employee_id)
    if employee is None:
        return state
    return _replace(
        state,
        employee_id,
        is_active=not employee.is_active,
        temporary_inactive_until=None,
    )


def set_temporary_inactive(state: RotationState, employee_id: str, until: datetime) -> RotationState:
    return _replace(state, employee_id, is_active=False, temporary_inactive_until=until)


def deactivate(state: RotationState, employee_id: str) -> RotationState:
    return _replace(state, employee_id, is_active=False)


def rename(state: RotationState, employee_id: str, name: str) -> RotationState:
    return _replace(state, employee_id, name=name)


def reconcile(state: RotationState, now: datetime) -> Tuple[RotationState, bool]:
    """Reactivate every employee whose temporary inactivity has expired."""
    changed = False
    employees = []
    for employee in state.employees:
        until = employee.temporary_inactive_until
        if until is not None and until <= now:
            employee = employee.model_copy(update={"is_active": True, "temporary_inactive_until": None})
            changed = True
        employees.append(employee)
    if not changed:
        return state, False
    return state.model_copy(update={"employees": employees}), True


def match_employee(state: RotationState, user_id: str, name: str) -> Optional[Employee]:
    """The employee entry for a user: same id, otherwise same name ignoring case."""
    employee = state.find(user_id)
    if employee is not None:
        return employee
    lowered = name.strip().lower()
    return next((e for e in state.employees if e.name.strip().lower() == lowered), None)


def pointer_is_valid(state: RotationState) -> bool:
    return 0 <= state.current_up_index < max(1, len(state.employees))


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------

class RotationService:
    """Loads, transitions and persists the rotation state record."""

    def __init__(self, store: KeyValueStore, now: Optional[Callable[[], datetime]] = None):
        self._store = store
        self._now = now or (lambda: datetime.now(timezone.utc))

    def _load(self, raw: Optional[str]) -> RotationState:
        data = decode(raw)
        if data is None:
            return RotationState(last_updated=self._now())
        return RotationState.model_validate(data)

    def _stamp(self, state: RotationState, previous: RotationState) -> RotationState:
        return state.model_copy(update={
            "last_updated": self._now(),
            "version": previous.version + 1,
        })

    async def get_state(self) -> RotationState:
        """Current state, with expired temporary inactivity already cleared."""
        state = self._load(await self._store.get(SYSTEM_STATE_KEY))
        _, changed = reconcile(state, self._now())
        if not changed:
            return state

        _, after = await self.apply(lambda s: s)
        logger.info("Reactivated employees whose temporary inactivity expired")
        return after

    async def apply(self, transition: Transition) -> Tuple[RotationState, RotationState]:
        """
        Apply one transition atomically.

        Expired temporary inactivity is reconciled first, so the transition
        always sees a current view.

        Returns:
            Tuple of (state before, state after). When nothing changed both are
            the stored state and no write happens.
        """
        before: Optional[RotationState] = None
        after: Optional[RotationState] = None

        def mutate(raw: Optional[str]) -> Optional[str]:
            nonlocal before, after
            stored = self._load(raw)
            current, reconciled = reconcile(stored, self._now())
            before = current
            result = transition(current)
            if result == stored and not reconciled:
                after = stored
                return None
            if not pointer_is_valid(result):
                result = result.model_copy(update={"current_up_index": 0})
            after = self._stamp(result, stored)
            return encode(after.to_json())

        await self._store.update(SYSTEM_STATE_KEY, mutate)
        return before, after

    async def replace(self, state: RotationState) -> RotationState:
        """Overwrite the stored state (seeding and maintenance)."""
        _, after = await self.apply(lambda current: state.model_copy(update={"version": current.version}))
        return after
