"""Repository layer for the SynCRM reminder worker.

Provides read queries over CRM records and the reminder claim store:
- activities: get_by_id, get_open_in_trigger_window, get_open_for_user_between
- users: get_by_id, get_active_users
- leads: get_by_id
- reminder_events: claim, finalize, get_by_dedupe_key, count_by_status,
                   get_stale_pending
"""
