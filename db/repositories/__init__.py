"""Repository layer for the appointment scheduler.

Module-level async functions that take an AsyncSession:
- agents: get_by_id, get_calendar_id
- leads: get_by_id, upsert, update_fields
- appointments: get_by_id, get_active_for_lead, list_active_for_agent,
                insert, update_fields
"""
