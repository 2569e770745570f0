"""
Tests for upnext/services/lead_assignments.py - lead assignment log.
"""
import pytest

from upnext.services.lead_assignments import LeadAssignmentLog


class TestLeadAssignmentLog:
    """Test assigning and listing leads."""

    @pytest.mark.asyncio
    async def test_assign_records_fields(self, store, clock):
        leads = LeadAssignmentLog(store, now=clock)

        assignment = await leads.assign("Acme Corp", "1", "John", "main-display", assigned_by="bdc")

        assert assignment.lead_name == "Acme Corp"
        assert assignment.employee_id == "1"
        assert assignment.employee_name == "John"
        assert assignment.assigned_at == clock()
        assert assignment.assigned_by == "bdc"
        assert assignment.source == "main-display"

    @pytest.mark.asyncio
    async def test_assigned_by_defaults_to_system(self, store):
        leads = LeadAssignmentLog(store)

        assignment = await leads.assign("Lead", "1", "John", "api")

        assert assignment.assigned_by == "system"

    @pytest.mark.asyncio
    async def test_list_is_newest_first(self, store, clock):
        leads = LeadAssignmentLog(store, now=clock)

        await leads.assign("First", "1", "John", "test")
        clock.advance(seconds=5)
        await leads.assign("Second", "2", "Sarah", "test")

        assert [a.lead_name for a in await leads.list()] == ["Second", "First"]

    @pytest.mark.asyncio
    async def test_cap_keeps_newest(self, store):
        leads = LeadAssignmentLog(store, limit=3)

        for i in range(5):
            await leads.assign(f"Lead {i}", "1", "John", "test")

        names = [a.lead_name for a in await leads.list()]
        assert names == ["Lead 4", "Lead 3", "Lead 2"]
