"""E-mail bodies for activity reminders and the daily digest.

Every builder is pure: same inputs, same RenderedEmail. User-supplied text
is escaped before it is placed in HTML; the plain-text body is left as is.
"""
from datetime import datetime
from html import escape
from typing import Sequence

from reminders.formatting import (
    format_activity_type,
    format_scheduled_datetime,
    format_short_date,
    format_time,
)
from schemas.reminders import DigestItem, RenderedEmail

EMPTY_DIGEST_MESSAGE = "No scheduled activities for today."

_CELL_LABEL = "padding:8px;background:#f3f4f6;font-weight:bold;"
_CELL_VALUE = "padding:8px;background:#f9fafb;"
_FOOTER = "color:#6b7280;font-size:13px;"


def _wrap(body: str) -> str:
    return (
        '<div style="font-family:sans-serif;max-width:600px;margin:0 auto;color:#333;">'
        f"{body}"
        "</div>"
    )


def _detail_table(rows: Sequence[tuple[str, str, str]]) -> str:
    cells = "".join(
        f'<tr><td style="{_CELL_LABEL}width:120px;">{label}</td>'
        f'<td style="{style}">{value}</td></tr>'
        for label, value, style in rows
    )
    return f'<table style="border-collapse:collapse;width:100%;margin:16px 0;">{cells}</table>'


def build_pre_start_email(
    user_name: str,
    activity_title: str,
    activity_type: str,
    scheduled_at: datetime,
    timezone: str,
    lead_name: str,
    lead_phone: str,
) -> RenderedEmail:
    """Reminder sent roughly one hour before an open activity starts."""
    when = format_scheduled_datetime(scheduled_at, timezone)
    type_label = format_activity_type(activity_type)
    subject = f'Reminder: "{activity_title}" starts in 1 hour'

    html = _wrap(
        '<h2 style="color:#2563eb;">Activity Reminder</h2>'
        f"<p>Hi <strong>{escape(user_name)}</strong>,</p>"
        f"<p>Your <strong>{escape(type_label)}</strong> "
        f"<em>&quot;{escape(activity_title)}&quot;</em> with "
        f"<strong>{escape(lead_name)}</strong> ({escape(lead_phone)}) is "
        "scheduled to start in <strong>1 hour</strong>.</p>"
        + _detail_table([
            ("When", escape(when), _CELL_VALUE),
            ("Lead", f"{escape(lead_name)} &mdash; {escape(lead_phone)}", _CELL_VALUE),
            ("Type", escape(type_label), _CELL_VALUE),
        ])
        + f'<p style="{_FOOTER}">Please prepare accordingly. '
        "This is an automated reminder from SynCRM.</p>"
    )

    text = (
        f"Hi {user_name},\n\n"
        f'Your {type_label} "{activity_title}" with {lead_name} ({lead_phone}) '
        f"is scheduled to start in 1 hour at {when}.\n\n"
        "Please prepare accordingly.\n\n-- SynCRM"
    )
    return RenderedEmail(subject=subject, html=html, text=text)


def build_post_start_email(
    user_name: str,
    activity_title: str,
    activity_type: str,
    scheduled_at: datetime,
    timezone: str,
    lead_name: str,
    lead_phone: str,
) -> RenderedEmail:
    """Nudge sent roughly one hour after an activity started and is still open."""
    when = format_scheduled_datetime(scheduled_at, timezone)
    type_label = format_activity_type(activity_type)
    subject = f'Action needed: "{activity_title}" is overdue'

    html = _wrap(
        '<h2 style="color:#dc2626;">Activity Update Required</h2>'
        f"<p>Hi <strong>{escape(user_name)}</strong>,</p>"
        f"<p>Your <strong>{escape(type_label)}</strong> "
        f"<em>&quot;{escape(activity_title)}&quot;</em> with "
        f"<strong>{escape(lead_name)}</strong> was scheduled for "
        f"<strong>{escape(when)}</strong> and is still open.</p>"
        "<p>Please log in to <strong>SynCRM</strong> to either "
        "<strong>close the activity</strong> or "
        "<strong>leave a progress update</strong>.</p>"
        + _detail_table([
            ("Scheduled", escape(when), "padding:8px;background:#fff3cd;"),
            ("Lead", f"{escape(lead_name)} &mdash; {escape(lead_phone)}", _CELL_VALUE),
            ("Type", escape(type_label), _CELL_VALUE),
        ])
        + f'<p style="{_FOOTER}">This is an automated reminder from SynCRM.</p>'
    )

    text = (
        f"Hi {user_name},\n\n"
        f'Your {type_label} "{activity_title}" with {lead_name} was scheduled '
        f"for {when} and is still open.\n\n"
        "Please log in to SynCRM to close the activity or add a progress update.\n\n-- SynCRM"
    )
    return RenderedEmail(subject=subject, html=html, text=text)


def _lead_label(item: DigestItem) -> str:
    if item.lead_phone:
        return f"{item.lead_name} ({item.lead_phone})"
    return item.lead_name


def build_daily_digest_email(
    user_name: str,
    local_date: str,
    timezone: str,
    items: Sequence[DigestItem],
) -> RenderedEmail:
    """Morning summary of a user's open activities for one local day.

    local_date is YYYY-MM-DD in the user's zone; times are shown in timezone.
    An empty list still renders, with an explicit "nothing scheduled" line.
    """
    date_label = format_short_date(local_date)
    subject = f"Your activity digest for {date_label}"

    if items:
        rows = "".join(
            "<tr>"
            '<td style="padding:8px;border-bottom:1px solid #e5e7eb;">'
            f"<strong>{escape(format_time(item.scheduled_at, timezone))}</strong></td>"
            '<td style="padding:8px;border-bottom:1px solid #e5e7eb;">'
            f"{escape(format_activity_type(item.activity_type))}: <em>{escape(item.title)}</em></td>"
            '<td style="padding:8px;border-bottom:1px solid #e5e7eb;color:#6b7280;">'
            f"{escape(_lead_label(item))}</td>"
            "</tr>"
            for item in items
        )
    else:
        rows = (
            '<tr><td colspan="3" style="padding:16px;text-align:center;color:#9ca3af;">'
            f"{EMPTY_DIGEST_MESSAGE}</td></tr>"
        )

    html = _wrap(
        '<h2 style="color:#2563eb;">Daily Activity Digest</h2>'
        f"<p>Hi <strong>{escape(user_name)}</strong>, here are your scheduled activities "
        f"for <strong>{escape(date_label)}</strong>:</p>"
        '<table style="border-collapse:collapse;width:100%;margin:16px 0;">'
        '<thead><tr style="background:#f3f4f6;">'
        '<th style="padding:8px;text-align:left;width:90px;">Time</th>'
        '<th style="padding:8px;text-align:left;">Activity</th>'
        '<th style="padding:8px;text-align:left;">Lead</th>'
        "</tr></thead>"
        f"<tbody>{rows}</tbody></table>"
        f'<p style="{_FOOTER}">Timezone: {escape(timezone)}. '
        "This is an automated digest from SynCRM.</p>"
    )

    if items:
        lines = "\n".join(
            f"  - {format_time(item.scheduled_at, timezone)}: "
            f"{format_activity_type(item.activity_type)}: {item.title} | {_lead_label(item)}"
            for item in items
        )
    else:
        lines = f"  {EMPTY_DIGEST_MESSAGE}"

    text = (
        f"Hi {user_name},\n\n"
        f"Here are your scheduled activities for {date_label}:\n\n"
        f"{lines}\n\n"
        f"Timezone: {timezone}\n-- SynCRM"
    )
    return RenderedEmail(subject=subject, html=html, text=text)
