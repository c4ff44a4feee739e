"""Reminder processors: one pass per reminder type.

Each pass selects candidates, then for every candidate:
claim -> enrich -> render -> dispatch -> finalize.

Only the run that wins the claim on a dedupe key goes past the claim step,
so overlapping passes (the ticker windows overlap on purpose) never send the
same reminder twice. Claim and finalize each commit in their own session so a
claim is visible to other workers before the e-mail goes out.

Usage:
    summary = await process_pre_start_reminders()
    summary = await process_daily_digests(now=datetime(2026, 2, 23, 13, 0, tzinfo=timezone.utc))
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, AsyncContextManager, Awaitable, Callable, Dict, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

import db.repositories.activities as activities_repo
import db.repositories.leads as leads_repo
import db.repositories.reminder_events as reminder_events_repo
import db.repositories.users as users_repo
from db.connection import get_db
from db.models import Activity, User
from reminders import config, rules
from reminders.formatting import UNKNOWN_LEAD_NAME, user_display_name
from reminders.templates import (
    build_daily_digest_email,
    build_post_start_email,
    build_pre_start_email,
)
from reminders.timezones import day_boundary, local_date, local_hour, safe_timezone, to_utc
from schemas.reminders import ClaimResult, DigestItem, RenderedEmail, RunSummary
from tools.email_tools import send_email

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], AsyncContextManager[AsyncSession]]
SendFn = Callable[..., Dict[str, Any]]
Outcome = Dict[str, Any]

_LOG_LABELS = {
    rules.PRE_START: "pre_start",
    rules.POST_START: "post_start",
    rules.DAILY_DIGEST: "daily_digest",
}


def _skipped(reason: str) -> Outcome:
    return {"status": "skipped", "skip_reason": reason}


def _failed(error: str) -> Outcome:
    return {"status": "failed", "error": error}


def _resolve_now(now: Optional[datetime]) -> datetime:
    return to_utc(now) if now is not None else datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------


async def _claim(session_factory: SessionFactory, dedupe_key: str, **fields: Any) -> ClaimResult:
    async with session_factory() as session:
        return await reminder_events_repo.claim(
            session,
            dedupe_key,
            stale_after=config.pending_reclaim_after(),
            **fields,
        )


async def _dispatch(send: SendFn, to: str, email: RenderedEmail, now: datetime) -> Outcome:
    # send is blocking (requests); keep it off the event loop
    result = await asyncio.to_thread(send, to, email.subject, email.html, email.text)
    if result.get("success"):
        return {"status": "sent", "sent_at": now, "message_id": result.get("message_id")}
    return _failed(result.get("error") or "unknown error")


async def _settle(
    label: str,
    dedupe_key: str,
    claim_id: UUID,
    deliver: Callable[[], Awaitable[Outcome]],
    *,
    now: datetime,
    session_factory: SessionFactory,
    summary: RunSummary,
) -> None:
    """Run the post-claim steps for one candidate and write its terminal status."""
    try:
        outcome = await deliver()
    except Exception as exc:
        logger.exception("[reminders:%s] Unexpected error for %s", label, dedupe_key)
        outcome = _failed(str(exc) or type(exc).__name__)

    status = outcome.pop("status")
    if status == "sent":
        logger.info(
            "[reminders:%s] Sent %s (message_id=%s)", label, dedupe_key, outcome.get("message_id")
        )
    elif status == "skipped":
        logger.info("[reminders:%s] Skipped %s: %s", label, dedupe_key, outcome["skip_reason"])
    else:
        logger.error("[reminders:%s] Failed %s: %s", label, dedupe_key, outcome["error"])

    try:
        async with session_factory() as session:
            await reminder_events_repo.finalize(session, claim_id, status, now=now, **outcome)
    except Exception:
        logger.exception(
            "[reminders:%s] Could not finalize %s as %s; claim left pending",
            label, dedupe_key, status,
        )
        summary.failed += 1
        return
    summary.record(status)


async def _lead_context(session_factory: SessionFactory, lead_id: UUID) -> tuple[str, str]:
    """Return (name, phone) for the lead, or the placeholder if it can't be read."""
    try:
        async with session_factory() as session:
            lead = await leads_repo.get_by_id(session, lead_id)
    except Exception as exc:
        logger.warning("Lead lookup failed for %s (using placeholder): %s", lead_id, exc)
        return UNKNOWN_LEAD_NAME, ""
    if lead is None:
        return UNKNOWN_LEAD_NAME, ""
    return lead.full_name, lead.phone or ""


def _display_name(user: User) -> str:
    return user_display_name(full_name=user.full_name, name=user.name, email=user.email)


# ---------------------------------------------------------------------------
# Pre-start / post-start
# ---------------------------------------------------------------------------


async def _deliver_activity_reminder(
    activity: Activity,
    reminder_type: str,
    *,
    now: datetime,
    session_factory: SessionFactory,
    send: SendFn,
) -> Outcome:
    async with session_factory() as session:
        if reminder_type == rules.POST_START:
            # status may have changed between selection and claim
            live = await activities_repo.get_by_id(session, activity.id)
            if live is None or rules.is_activity_closed(live.status):
                return _skipped("already closed")
            activity = live
        user = await users_repo.get_by_id(session, activity.assigned_to_user_id)

    if user is None:
        return _skipped("user not found")
    if not user.email:
        return _skipped("user has no email")

    lead_name, lead_phone = await _lead_context(session_factory, activity.lead_id)
    tz = safe_timezone(user.timezone)
    build = build_post_start_email if reminder_type == rules.POST_START else build_pre_start_email
    email = build(
        user_name=_display_name(user),
        activity_title=activity.title,
        activity_type=activity.type,
        scheduled_at=to_utc(activity.scheduled_at),
        timezone=tz,
        lead_name=lead_name,
        lead_phone=lead_phone,
    )
    return await _dispatch(send, user.email, email, now)


async def _process_activity_window(
    reminder_type: str,
    now: Optional[datetime],
    session_factory: Optional[SessionFactory],
    send: Optional[SendFn],
) -> RunSummary:
    now = _resolve_now(now)
    session_factory = session_factory or get_db
    send = send or send_email
    label = _LOG_LABELS[reminder_type]

    if reminder_type == rules.PRE_START:
        window_start, window_end = rules.pre_start_window(now)
    else:
        window_start, window_end = rules.post_start_window(now)

    async with session_factory() as session:
        candidates = await activities_repo.get_open_in_trigger_window(
            session, window_start, window_end
        )
    logger.info("[reminders:%s] Found %d eligible activities", label, len(candidates))

    summary = RunSummary()
    for activity in candidates:
        if activity.scheduled_at is None:
            continue

        dedupe_key = rules.activity_dedupe_key(reminder_type, activity.id)
        try:
            claim = await _claim(
                session_factory,
                dedupe_key,
                user_id=activity.assigned_to_user_id,
                reminder_type=reminder_type,
                scheduled_for=to_utc(activity.scheduled_at) + rules.SCHEDULED_FOR_OFFSET[reminder_type],
                activity_id=activity.id,
                org_id=activity.org_id,
                now=now,
            )
        except Exception:
            logger.exception("[reminders:%s] Claim failed for %s", label, dedupe_key)
            summary.failed += 1
            continue

        if not claim.claimed:
            logger.debug(
                "[reminders:%s] Skipping %s, already claimed (%s)",
                label, dedupe_key, claim.existing_status,
            )
            summary.skipped += 1
            summary.duplicates += 1
            continue

        async def deliver(activity=activity):
            return await _deliver_activity_reminder(
                activity, reminder_type, now=now, session_factory=session_factory, send=send
            )

        await _settle(
            label, dedupe_key, claim.id, deliver,
            now=now, session_factory=session_factory, summary=summary,
        )

    logger.info(
        "[reminders:%s] Done sent=%d skipped=%d failed=%d",
        label, summary.sent, summary.skipped, summary.failed,
    )
    return summary


async def process_pre_start_reminders(
    now: Optional[datetime] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
    send: Optional[SendFn] = None,
) -> RunSummary:
    """Remind assignees of open activities starting in about one hour."""
    return await _process_activity_window(rules.PRE_START, now, session_factory, send)


async def process_post_start_reminders(
    now: Optional[datetime] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
    send: Optional[SendFn] = None,
) -> RunSummary:
    """Nudge assignees of activities that started about an hour ago and are still open.

    The activity is read again after the claim; one closed in the meantime is
    finalized as skipped ("already closed") instead of being sent.
    """
    return await _process_activity_window(rules.POST_START, now, session_factory, send)


# ---------------------------------------------------------------------------
# Daily digest
# ---------------------------------------------------------------------------


async def _deliver_digest(
    user: User,
    tz: str,
    local_day: str,
    *,
    now: datetime,
    session_factory: SessionFactory,
    send: SendFn,
) -> Outcome:
    if not user.email:
        return _skipped("user has no email")

    day_start, day_end = day_boundary(local_day, tz)
    async with session_factory() as session:
        rows = await activities_repo.get_open_for_user_between(session, user.id, day_start, day_end)

    items = [
        DigestItem(
            scheduled_at=to_utc(activity.scheduled_at),
            activity_type=activity.type,
            title=activity.title,
            lead_name=lead.full_name if lead is not None else UNKNOWN_LEAD_NAME,
            lead_phone=(lead.phone or "") if lead is not None else "",
        )
        for activity, lead in rows
    ]
    email = build_daily_digest_email(
        user_name=_display_name(user),
        local_date=local_day,
        timezone=tz,
        items=items,
    )
    logger.debug("Digest for user %s on %s lists %d activities", user.id, local_day, len(items))
    return await _dispatch(send, user.email, email, now)


async def process_daily_digests(
    now: Optional[datetime] = None,
    *,
    session_factory: Optional[SessionFactory] = None,
    send: Optional[SendFn] = None,
) -> RunSummary:
    """Send each active user one digest per local day, during their local 8 o'clock hour.

    Safe to run more often than hourly: users outside the digest hour are
    passed over, and the date-scoped dedupe key absorbs repeats within it.
    """
    now = _resolve_now(now)
    session_factory = session_factory or get_db
    send = send or send_email
    label = _LOG_LABELS[rules.DAILY_DIGEST]

    async with session_factory() as session:
        users = await users_repo.get_active_users(session)
    logger.info("[reminders:%s] Processing %d active users", label, len(users))

    summary = RunSummary()
    for user in users:
        tz = safe_timezone(user.timezone)
        if local_hour(now, tz) != config.DIGEST_LOCAL_HOUR:
            continue

        local_day = local_date(now, tz)
        dedupe_key = rules.digest_dedupe_key(user.id, local_day)
        try:
            claim = await _claim(
                session_factory,
                dedupe_key,
                user_id=user.id,
                reminder_type=rules.DAILY_DIGEST,
                scheduled_for=now,
                org_id=user.org_id,
                now=now,
            )
        except Exception:
            logger.exception("[reminders:%s] Claim failed for %s", label, dedupe_key)
            summary.failed += 1
            continue

        if not claim.claimed:
            logger.debug(
                "[reminders:%s] Skipping %s, already claimed (%s)",
                label, dedupe_key, claim.existing_status,
            )
            summary.skipped += 1
            summary.duplicates += 1
            continue

        async def deliver(user=user, tz=tz, local_day=local_day):
            return await _deliver_digest(
                user, tz, local_day, now=now, session_factory=session_factory, send=send
            )

        await _settle(
            label, dedupe_key, claim.id, deliver,
            now=now, session_factory=session_factory, summary=summary,
        )

    logger.info(
        "[reminders:%s] Done sent=%d skipped=%d failed=%d",
        label, summary.sent, summary.skipped, summary.failed,
    )
    return summary
