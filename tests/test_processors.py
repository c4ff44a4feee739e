"""Processor tests against SQLite: exactly-once sends, skips, digest gating, fault isolation."""
import logging
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest

import db.repositories.activities as activities_repo
import db.repositories.reminder_events as reminder_events_repo
from reminders import processors
from reminders.processors import (
    process_daily_digests,
    process_post_start_reminders,
    process_pre_start_reminders,
)

START = datetime(2026, 2, 23, 15, 0, tzinfo=timezone.utc)


async def _claim_row(session_factory, key):
    async with session_factory() as session:
        return await reminder_events_repo.get_by_dedupe_key(session, key)


async def _mark_completed(session_factory, activity_id):
    async with session_factory() as session:
        activity = await activities_repo.get_by_id(session, activity_id)
        activity.status = "completed"
        activity.completed_at = START


# ---------------------------------------------------------------------------
# Pre-start
# ---------------------------------------------------------------------------


class TestPreStart:
    @pytest.mark.asyncio
    async def test_exactly_once_across_overlapping_ticks(self, session_factory, seed, sender):
        user = await seed.user()
        lead = await seed.lead()
        activity = await seed.activity(user, START, lead)

        summaries = []
        for minutes_before in (65, 60, 55):
            summaries.append(await process_pre_start_reminders(
                START - timedelta(minutes=minutes_before),
                session_factory=session_factory,
                send=sender,
            ))

        assert len(sender.calls) == 1, "Overlapping ticks must send exactly once"
        assert [s.sent for s in summaries] == [1, 0, 0]
        assert [s.duplicates for s in summaries] == [0, 1, 1]

        row = await _claim_row(session_factory, f"pre_start_1h:{activity.id}")
        assert row.status == "sent"
        assert row.message_id == "msg-1"
        assert row.activity_id == activity.id

    @pytest.mark.asyncio
    async def test_immediate_rerun_sends_nothing(self, session_factory, seed, sender):
        user = await seed.user()
        await seed.activity(user, START, await seed.lead())
        await seed.activity(user, START + timedelta(minutes=3), await seed.lead())
        now = START - timedelta(hours=1)

        first = await process_pre_start_reminders(now, session_factory=session_factory, send=sender)
        second = await process_pre_start_reminders(now, session_factory=session_factory, send=sender)

        assert first.sent == 2
        assert second.sent == 0
        assert second.skipped == 2 and second.duplicates == 2
        assert len(sender.calls) == 2

    @pytest.mark.asyncio
    async def test_email_content(self, session_factory, seed, sender):
        user = await seed.user(full_name="Dana Scully", timezone="America/New_York")
        lead = await seed.lead(full_name="Fox Mulder", phone="+1 555 0199")
        await seed.activity(user, START, lead, title="Viewing at 12 Elm St", type="viewing")

        await process_pre_start_reminders(
            START - timedelta(hours=1), session_factory=session_factory, send=sender
        )

        call = sender.calls[0]
        assert call["to"] == user.email
        assert call["subject"] == 'Reminder: "Viewing at 12 Elm St" starts in 1 hour'
        assert "Hi Dana Scully," in call["text"]
        assert "Fox Mulder (+1 555 0199)" in call["text"]
        assert "Monday, Feb 23, 2026 at 10:00 AM" in call["text"]

    @pytest.mark.asyncio
    async def test_only_open_activities_inside_window_are_selected(self, session_factory, seed, sender):
        user = await seed.user()
        lead = await seed.lead()
        now = START - timedelta(hours=1)
        await seed.activity(user, START, lead, title="in window")
        await seed.activity(user, now + timedelta(minutes=55), lead, title="near edge")
        await seed.activity(user, now + timedelta(minutes=65), lead, title="far edge")
        await seed.activity(user, now + timedelta(minutes=54), lead, title="too soon")
        await seed.activity(user, now + timedelta(minutes=66), lead, title="too late")
        await seed.activity(user, START, lead, title="closed", status="completed")
        await seed.activity(user, None, lead, title="unscheduled")

        summary = await process_pre_start_reminders(now, session_factory=session_factory, send=sender)

        titles = sorted(c["subject"].split('"')[1] for c in sender.calls)
        assert titles == ["far edge", "in window", "near edge"]
        assert summary.sent == 3 and summary.skipped == 0

    @pytest.mark.asyncio
    async def test_user_without_email_is_skipped(self, session_factory, seed, sender):
        user = await seed.user(email=None)
        activity = await seed.activity(user, START, await seed.lead())

        summary = await process_pre_start_reminders(
            START - timedelta(hours=1), session_factory=session_factory, send=sender
        )

        assert sender.calls == []
        assert summary.skipped == 1 and summary.duplicates == 0
        row = await _claim_row(session_factory, f"pre_start_1h:{activity.id}")
        assert row.status == "skipped"
        assert row.skip_reason == "user has no email"

    @pytest.mark.asyncio
    async def test_missing_user_is_skipped(self, session_factory, seed, sender):
        ghost = await seed.user()
        activity = await seed.activity(ghost, START, await seed.lead())
        async with session_factory() as session:
            await session.delete(await session.get(type(ghost), ghost.id))

        await process_pre_start_reminders(
            START - timedelta(hours=1), session_factory=session_factory, send=sender
        )

        row = await _claim_row(session_factory, f"pre_start_1h:{activity.id}")
        assert row.status == "skipped"
        assert row.skip_reason == "user not found"

    @pytest.mark.asyncio
    async def test_missing_lead_uses_placeholder(self, session_factory, seed, sender):
        user = await seed.user()
        await seed.activity(user, START, lead=None)

        summary = await process_pre_start_reminders(
            START - timedelta(hours=1), session_factory=session_factory, send=sender
        )

        assert summary.sent == 1
        assert "Unknown lead" in sender.calls[0]["text"]

    @pytest.mark.asyncio
    async def test_lead_lookup_error_uses_placeholder(self, session_factory, seed, sender):
        user = await seed.user()
        await seed.activity(user, START, await seed.lead())

        with patch.object(processors.leads_repo, "get_by_id", side_effect=RuntimeError("db gone")):
            summary = await process_pre_start_reminders(
                START - timedelta(hours=1), session_factory=session_factory, send=sender
            )

        assert summary.sent == 1
        assert "Unknown lead" in sender.calls[0]["text"]

    @pytest.mark.asyncio
    async def test_dispatch_failure_does_not_abort_batch(self, session_factory, seed, make_sender):
        failing = await seed.user()
        exploding = await seed.user()
        healthy = await seed.user()
        lead = await seed.lead()
        a_fail = await seed.activity(failing, START, lead)
        a_boom = await seed.activity(exploding, START + timedelta(minutes=1), lead)
        a_ok = await seed.activity(healthy, START + timedelta(minutes=2), lead)
        sender = make_sender(fail_for={failing.email}, raise_for={exploding.email})

        summary = await process_pre_start_reminders(
            START - timedelta(hours=1), session_factory=session_factory, send=sender
        )

        assert (summary.sent, summary.skipped, summary.failed) == (1, 0, 2)
        failed_row = await _claim_row(session_factory, f"pre_start_1h:{a_fail.id}")
        assert failed_row.status == "failed"
        assert failed_row.error == "mailbox unavailable"
        boom_row = await _claim_row(session_factory, f"pre_start_1h:{a_boom.id}")
        assert boom_row.status == "failed"
        assert "provider exploded" in boom_row.error
        ok_row = await _claim_row(session_factory, f"pre_start_1h:{a_ok.id}")
        assert ok_row.status == "sent"

    @pytest.mark.asyncio
    async def test_logs_summary_line(self, session_factory, seed, sender, caplog):
        user = await seed.user()
        await seed.activity(user, START, await seed.lead())

        with caplog.at_level(logging.INFO, logger="reminders.processors"):
            await process_pre_start_reminders(
                START - timedelta(hours=1), session_factory=session_factory, send=sender
            )

        summary_lines = [r.getMessage() for r in caplog.records if "sent=" in r.getMessage()]
        assert summary_lines == ["[reminders:pre_start] Done sent=1 skipped=0 failed=0"]


# ---------------------------------------------------------------------------
# Post-start
# ---------------------------------------------------------------------------


class TestPostStart:
    @pytest.mark.asyncio
    async def test_open_activity_gets_overdue_nudge_once(self, session_factory, seed, sender):
        user = await seed.user()
        activity = await seed.activity(user, START, await seed.lead(), title="Call back")

        for minutes_after in (55, 60, 65):
            await process_post_start_reminders(
                START + timedelta(minutes=minutes_after),
                session_factory=session_factory,
                send=sender,
            )

        assert len(sender.calls) == 1
        assert sender.calls[0]["subject"] == 'Action needed: "Call back" is overdue'
        row = await _claim_row(session_factory, f"post_start_1h_open:{activity.id}")
        assert row.status == "sent"
        assert row.reminder_type == "post_start_1h_open"

    @pytest.mark.asyncio
    async def test_activity_closed_before_send_is_skipped(self, session_factory, seed, sender):
        user = await seed.user()
        activity = await seed.activity(user, START, await seed.lead())
        real_claim = reminder_events_repo.claim

        async def close_while_claiming(session, dedupe_key, **kwargs):
            # activity is closed after it was selected, before the claim lands
            await _mark_completed(session_factory, activity.id)
            return await real_claim(session, dedupe_key, **kwargs)

        with patch.object(processors.reminder_events_repo, "claim", new=close_while_claiming):
            summary = await process_post_start_reminders(
                START + timedelta(hours=1), session_factory=session_factory, send=sender
            )

        assert sender.calls == []
        assert summary.skipped == 1 and summary.duplicates == 0
        row = await _claim_row(session_factory, f"post_start_1h_open:{activity.id}")
        assert row.status == "skipped"
        assert row.skip_reason == "already closed"

    @pytest.mark.asyncio
    async def test_pre_start_does_not_recheck_status(self, session_factory, seed, sender):
        user = await seed.user()
        activity = await seed.activity(user, START, await seed.lead())
        real_claim = reminder_events_repo.claim

        async def close_while_claiming(session, dedupe_key, **kwargs):
            # activity is closed after it was selected, before the claim lands
            await _mark_completed(session_factory, activity.id)
            return await real_claim(session, dedupe_key, **kwargs)

        with patch.object(processors.reminder_events_repo, "claim", new=close_while_claiming):
            summary = await process_pre_start_reminders(
                START - timedelta(hours=1), session_factory=session_factory, send=sender
            )

        assert summary.sent == 1


# ---------------------------------------------------------------------------
# Daily digest
# ---------------------------------------------------------------------------


class TestDailyDigest:
    @pytest.mark.asyncio
    async def test_sent_once_during_local_eight_oclock_hour(self, session_factory, seed, sender):
        user = await seed.user(timezone="America/New_York")

        ticks = [
            datetime(2026, 2, 23, 12, 45, tzinfo=timezone.utc),  # 07:45 local
            datetime(2026, 2, 23, 13, 0, tzinfo=timezone.utc),   # 08:00
            datetime(2026, 2, 23, 13, 15, tzinfo=timezone.utc),
            datetime(2026, 2, 23, 13, 45, tzinfo=timezone.utc),
            datetime(2026, 2, 23, 14, 0, tzinfo=timezone.utc),   # 09:00
        ]
        summaries = [
            await process_daily_digests(t, session_factory=session_factory, send=sender)
            for t in ticks
        ]

        assert len(sender.calls) == 1
        assert [s.sent for s in summaries] == [0, 1, 0, 0, 0]
        assert [s.duplicates for s in summaries] == [0, 0, 1, 1, 0]
        row = await _claim_row(session_factory, f"daily_digest:{user.id}:2026-02-23")
        assert row.status == "sent"
        assert row.activity_id is None

    @pytest.mark.asyncio
    async def test_next_local_day_gets_a_new_digest(self, session_factory, seed, sender):
        user = await seed.user(timezone="America/New_York")

        await process_daily_digests(
            datetime(2026, 2, 23, 13, 5, tzinfo=timezone.utc), session_factory=session_factory, send=sender
        )
        await process_daily_digests(
            datetime(2026, 2, 24, 13, 5, tzinfo=timezone.utc), session_factory=session_factory, send=sender
        )

        assert len(sender.calls) == 2
        assert (await _claim_row(session_factory, f"daily_digest:{user.id}:2026-02-24")).status == "sent"

    @pytest.mark.asyncio
    async def test_lists_only_that_local_days_open_activities(self, session_factory, seed, sender):
        user = await seed.user(timezone="America/New_York")
        lead = await seed.lead(full_name="Fox Mulder", phone="+1 555 0199")
        await seed.activity(user, datetime(2026, 2, 23, 20, 0, tzinfo=timezone.utc), lead, title="Afternoon viewing")
        await seed.activity(user, datetime(2026, 2, 23, 14, 0, tzinfo=timezone.utc), None, title="Morning call", type="call")
        await seed.activity(user, datetime(2026, 2, 24, 4, 30, tzinfo=timezone.utc), lead, title="Late note", type="note")
        await seed.activity(user, datetime(2026, 2, 23, 4, 59, tzinfo=timezone.utc), lead, title="Yesterday")
        await seed.activity(user, datetime(2026, 2, 24, 5, 0, tzinfo=timezone.utc), lead, title="Tomorrow")
        await seed.activity(user, datetime(2026, 2, 23, 16, 0, tzinfo=timezone.utc), lead, title="Done already", status="completed")
        other = await seed.user(timezone="America/New_York")
        await seed.activity(other, datetime(2026, 2, 23, 16, 0, tzinfo=timezone.utc), lead, title="Someone else's")

        await process_daily_digests(
            datetime(2026, 2, 23, 13, 10, tzinfo=timezone.utc), session_factory=session_factory, send=sender
        )

        text = next(c["text"] for c in sender.calls if c["to"] == user.email)
        assert "Morning call" in text and "Afternoon viewing" in text and "Late note" in text
        assert text.index("Morning call") < text.index("Afternoon viewing") < text.index("Late note")
        assert "Yesterday" not in text
        assert "Tomorrow" not in text
        assert "Done already" not in text
        assert "Someone else's" not in text
        assert "9:00 AM: Call: Morning call | Unknown lead" in text
        assert "Fox Mulder (+1 555 0199)" in text

    @pytest.mark.asyncio
    async def test_empty_day_still_sends_digest(self, session_factory, seed, sender):
        await seed.user(timezone="Europe/Paris")

        summary = await process_daily_digests(
            datetime(2026, 2, 23, 7, 30, tzinfo=timezone.utc), session_factory=session_factory, send=sender
        )

        assert summary.sent == 1
        assert "No scheduled activities for today." in sender.calls[0]["text"]
        assert sender.calls[0]["subject"] == "Your activity digest for Mon, Feb 23"

    @pytest.mark.asyncio
    async def test_missing_or_invalid_timezone_uses_utc(self, session_factory, seed, sender):
        unset = await seed.user(timezone=None)
        bogus = await seed.user(timezone="Mars/Olympus_Mons")

        at_utc_eight = datetime(2026, 2, 23, 8, 20, tzinfo=timezone.utc)
        summary = await process_daily_digests(at_utc_eight, session_factory=session_factory, send=sender)

        assert summary.sent == 2
        for user in (unset, bogus):
            row = await _claim_row(session_factory, f"daily_digest:{user.id}:2026-02-23")
            assert row.status == "sent"
        assert all("Timezone: UTC" in c["text"] for c in sender.calls)

    @pytest.mark.asyncio
    async def test_inactive_users_are_ignored(self, session_factory, seed, sender):
        await seed.user(is_active=False)

        summary = await process_daily_digests(
            datetime(2026, 2, 23, 8, 0, tzinfo=timezone.utc), session_factory=session_factory, send=sender
        )

        assert sender.calls == []
        assert (summary.sent, summary.skipped, summary.failed) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_user_without_email_is_claimed_and_skipped(self, session_factory, seed, sender):
        user = await seed.user(email=None, name="Walter")

        summary = await process_daily_digests(
            datetime(2026, 2, 23, 8, 0, tzinfo=timezone.utc), session_factory=session_factory, send=sender
        )

        assert summary.skipped == 1
        row = await _claim_row(session_factory, f"daily_digest:{user.id}:2026-02-23")
        assert row.status == "skipped"
        assert row.skip_reason == "user has no email"

    @pytest.mark.asyncio
    async def test_digest_failure_is_recorded(self, session_factory, seed, make_sender):
        user = await seed.user()
        sender = make_sender(fail_for={user.email})

        summary = await process_daily_digests(
            datetime(2026, 2, 23, 8, 0, tzinfo=timezone.utc), session_factory=session_factory, send=sender
        )

        assert summary.failed == 1
        row = await _claim_row(session_factory, f"daily_digest:{user.id}:2026-02-23")
        assert row.status == "failed"
        assert row.error == "mailbox unavailable"
