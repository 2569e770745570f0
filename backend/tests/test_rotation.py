"""
Tests for upnext/services/rotation.py - rotation transitions and persistence.
"""
import asyncio
import random
from datetime import timedelta

import pytest

from upnext.core.errors import ValidationError
from upnext.models.rotation import Employee, RotationState
from upnext.services import rotation as transitions


def make_state(*names, index=0, **flags):
    employees = [Employee(id=str(i + 1), name=name) for i, name in enumerate(names)]
    return RotationState(employees=employees, current_up_index=index, **flags)


class TestTransitions:
    """Test the pure rotation transitions."""

    def test_add_appends_active_employee_without_moving_pointer(self):
        state = make_state("A", "B", index=1)

        result = transitions.add_employee(state, "C")

        assert [e.name for e in result.employees] == ["A", "B", "C"]
        assert result.employees[-1].is_active is True
        assert result.current_up_index == 1

    def test_add_generates_unique_ids(self):
        state = RotationState()
        for name in ["A", "B", "C", "D"]:
            state = transitions.add_employee(state, name)

        assert len({e.id for e in state.employees}) == 4

    def test_cycle_wraps_around(self):
        """[A,B,C] with C up cycles back to A."""
        state = make_state("A", "B", "C", index=2)

        assert transitions.cycle(state).current_up_index == 0

    def test_cycle_on_empty_queue_is_noop(self):
        state = RotationState()

        assert transitions.cycle(state) == state

    def test_remove_resets_out_of_range_pointer_to_zero(self):
        """Pointer is reset, not clamped, when the list shrinks under it."""
        state = make_state("A", "B", "C", index=2)

        result = transitions.remove_employee(state, "1")

        assert [e.name for e in result.employees] == ["B", "C"]
        assert result.current_up_index == 0
        assert result.current_employee.name == "B"

    def test_remove_keeps_in_range_pointer(self):
        state = make_state("A", "B", "C", index=1)

        result = transitions.remove_employee(state, "3")

        assert result.current_up_index == 1

    def test_remove_unknown_id_returns_unchanged_state(self):
        state = make_state("A", "B")

        assert transitions.remove_employee(state, "missing") == state

    def test_remove_last_employee_leaves_empty_queue(self):
        state = make_state("A")

        result = transitions.remove_employee(state, "1")

        assert result.employees == []
        assert result.current_up_index == 0
        assert result.current_employee is None

    def test_reorder_always_resets_pointer(self):
        state = make_state("A", "B", "C", index=2)
        reordered = list(reversed(state.employees))

        result = transitions.reorder(state, reordered)

        assert [e.name for e in result.employees] == ["C", "B", "A"]
        assert result.current_up_index == 0

    def test_reorder_rejects_duplicate_ids(self):
        state = make_state("A", "B")

        with pytest.raises(ValidationError):
            transitions.reorder(state, [state.employees[0], state.employees[0]])

    def test_toggle_twice_restores_original(self):
        state = make_state("A", "B")

        once = transitions.toggle_active(state, "2")
        twice = transitions.toggle_active(once, "2")

        assert once.find("2").is_active is False
        assert twice.find("2").is_active is True

    def test_toggle_unknown_id_returns_unchanged_state(self):
        state = make_state("A")

        assert transitions.toggle_active(state, "missing") == state

    def test_toggle_to_active_clears_pending_inactivity(self, clock):
        state = transitions.set_temporary_inactive(make_state("A"), "1", clock() + timedelta(minutes=30))

        result = transitions.toggle_active(state, "1")

        assert result.find("1").is_active is True
        assert result.find("1").temporary_inactive_until is None

    def test_transitions_do_not_mutate_input(self):
        state = make_state("A", "B", index=1)
        snapshot = state.model_copy(deep=True)

        transitions.cycle(state)
        transitions.toggle_active(state, "1")
        transitions.remove_employee(state, "2")
        transitions.add_employee(state, "C")

        assert state == snapshot


class TestReconcile:
    """Test lazy reactivation of temporarily inactive employees."""

    def test_expired_inactivity_is_cleared(self, clock):
        state = transitions.set_temporary_inactive(make_state("A"), "1", clock() - timedelta(seconds=1))

        result, changed = transitions.reconcile(state, clock())

        assert changed is True
        assert result.find("1").is_active is True
        assert result.find("1").temporary_inactive_until is None

    def test_pending_inactivity_is_kept(self, clock):
        until = clock() + timedelta(minutes=5)
        state = transitions.set_temporary_inactive(make_state("A"), "1", until)

        result, changed = transitions.reconcile(state, clock())

        assert changed is False
        assert result.find("1").is_active is False
        assert result.find("1").temporary_inactive_until == until

    def test_plain_inactive_employee_is_untouched(self, clock):
        state = transitions.toggle_active(make_state("A"), "1")

        result, changed = transitions.reconcile(state, clock())

        assert changed is False
        assert result.find("1").is_active is False

    def test_naive_stored_timestamp_compares_as_utc(self, clock):
        expired = (clock() - timedelta(minutes=1)).replace(tzinfo=None).isoformat()
        state = RotationState.model_validate({
            "employees": [{"id": "1", "name": "A", "isActive": False, "temporaryInactiveUntil": expired}],
            "lastUpdated": "2024-05-01T09:30:00",
        })

        assert state.last_updated.tzinfo is not None
        result, changed = transitions.reconcile(state, clock())

        assert changed is True
        assert result.find("1").is_active is True


class TestPointerValidity:
    """Pointer stays in range across arbitrary operation sequences."""

    @pytest.mark.parametrize("seed", range(5))
    def test_random_operation_sequences(self, seed):
        rng = random.Random(seed)
        state = RotationState()

        for step in range(300):
            op = rng.choice(["add", "remove", "cycle", "reorder", "toggle"])
            ids = [e.id for e in state.employees]
            if op == "add":
                state = transitions.add_employee(state, f"emp-{step}", employee_id=f"id-{step}")
            elif op == "remove":
                state = transitions.remove_employee(state, rng.choice(ids + ["missing"]))
            elif op == "cycle":
                state = transitions.cycle(state)
            elif op == "reorder":
                shuffled = list(state.employees)
                rng.shuffle(shuffled)
                state = transitions.reorder(state, shuffled)
            else:
                state = transitions.toggle_active(state, rng.choice(ids + ["missing"]))

            assert 0 <= state.current_up_index < max(1, len(state.employees)), (op, step)


class TestRotationService:
    """Test loading and persisting the rotation record."""

    @pytest.mark.asyncio
    async def test_empty_store_yields_default_state(self, rotation):
        state = await rotation.get_state()

        assert state.employees == []
        assert state.current_up_index == 0
        assert state.version == 0

    @pytest.mark.asyncio
    async def test_apply_persists_and_bumps_version(self, rotation, clock):
        before, after = await rotation.apply(lambda s: transitions.add_employee(s, "A"))

        assert before.employees == []
        assert after.version == 1
        assert after.last_updated == clock()

        stored = await rotation.get_state()
        assert [e.name for e in stored.employees] == ["A"]
        assert stored.version == 1

    @pytest.mark.asyncio
    async def test_noop_transition_does_not_write(self, rotation):
        await rotation.apply(lambda s: transitions.add_employee(s, "A"))

        _, after = await rotation.apply(lambda s: transitions.toggle_active(s, "missing"))

        assert after.version == 1

    @pytest.mark.asyncio
    async def test_read_reactivates_and_persists(self, rotation, store, clock):
        await rotation.apply(lambda s: transitions.add_employee(s, "A", employee_id="a"))
        await rotation.apply(
            lambda s: transitions.set_temporary_inactive(s, "a", clock() + timedelta(minutes=30))
        )

        assert (await rotation.get_state()).find("a").is_active is False

        clock.advance(minutes=31)
        state = await rotation.get_state()

        assert state.find("a").is_active is True
        assert state.find("a").temporary_inactive_until is None
        # The reactivation was written back, not just computed
        stored = RotationState.model_validate_json(await store.get("system-state"))
        assert stored.find("a").is_active is True

    @pytest.mark.asyncio
    async def test_concurrent_cycles_all_take_effect(self, rotation):
        for name in ["A", "B", "C"]:
            await rotation.apply(lambda s, n=name: transitions.add_employee(s, n))

        await asyncio.gather(*[rotation.apply(transitions.cycle) for _ in range(10)])

        state = await rotation.get_state()
        assert state.current_up_index == 10 % 3

    @pytest.mark.asyncio
    async def test_replace_overwrites_state(self, rotation):
        await rotation.apply(lambda s: transitions.add_employee(s, "A"))

        replaced = await rotation.replace(make_state("X", "Y", index=1))

        assert [e.name for e in replaced.employees] == ["X", "Y"]
        assert replaced.current_up_index == 1
        assert replaced.version == 2
