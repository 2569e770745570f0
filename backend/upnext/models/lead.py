from upnext.models.base import CamelModel, UTCDateTime


class LeadAssignment(CamelModel):
    id: str
    lead_name: str
    employee_id: str
    employee_name: str
    assigned_at: UTCDateTime
    assigned_by: str
    source: str
