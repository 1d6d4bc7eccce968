from __future__ import annotations

from dataclasses import replace
from datetime import date, timedelta

import pytest

from src.promotion_voting.promotion_voting.campaigns.model import CampaignWindow
from src.promotion_voting.promotion_voting.core.enums import (
    CampaignOutcome,
    CampaignStatus,
    CampaignSubType,
    CandidateStatus,
)
from src.promotion_voting.promotion_voting.core.exceptions import (
    CampaignNotActive,
    CampaignNotEnded,
    InvalidTransition,
    RetryLimitExceeded,
    ValidationError,
)


def _auto_window(fixed_now, days=3):
    start = fixed_now.replace(hour=0, minute=0, second=0)
    return CampaignWindow(start=start, end=start + timedelta(days=days) - timedelta(seconds=1))


def _open_demotion(engine, directory, fixed_now, employee_id=1, **overrides):
    params = dict(
        candidate=directory.get_profile(employee_id),
        sub_type=CampaignSubType.AUTO_DEMOTION,
        target_role="trainee",
        window=_auto_window(fixed_now),
        pass_threshold=30,
        trigger_conditions={"late_minutes_total": 11},
        now=fixed_now,
    )
    params.update(overrides)
    return engine.campaign_manager.open_automatic_campaign(**params)


def _fail(engine, campaign_id, at):
    """Close a campaign as failed the way the resolver would."""
    manager = engine.campaign_manager
    assert manager.begin_closing(campaign_id, now=at)
    assert manager.complete_closing(
        campaign_id, outcome=CampaignOutcome.FAILED, results={}, total_votes=0, total_voters=0, now=at
    )


def test_manual_campaign_inside_window_is_active(open_manual, notifier):
    campaign = open_manual()
    assert campaign.status == CampaignStatus.ACTIVE
    assert campaign.sub_type == CampaignSubType.MANUAL
    assert campaign.system_generated is False
    assert notifier.of("campaign_opened")[0]["campaign_id"] == campaign.campaign_id


def test_manual_campaign_in_future_is_draft_until_activated(engine, open_manual, fixed_now, notifier):
    campaign = open_manual(
        window=CampaignWindow(start=fixed_now + timedelta(hours=2), end=fixed_now + timedelta(days=2))
    )
    assert campaign.status == CampaignStatus.DRAFT
    assert notifier.of("campaign_opened") == []

    assert engine.campaign_manager.activate_due_campaigns(now=fixed_now) == []
    later = fixed_now + timedelta(hours=3)
    assert engine.campaign_manager.activate_due_campaigns(now=later) == [campaign.campaign_id]
    assert engine.campaign_manager.get(campaign.campaign_id).status == CampaignStatus.ACTIVE
    assert len(notifier.of("campaign_opened")) == 1


@pytest.mark.parametrize(
    "overrides",
    [
        {"pass_threshold": 120},
        {"pass_threshold": -1},
        {"max_modifications": -1},
        {"name": "  "},
    ],
)
def test_manual_campaign_validation(open_manual, overrides):
    with pytest.raises(ValidationError):
        open_manual(**overrides)


def test_window_must_end_after_start(fixed_now):
    with pytest.raises(ValidationError):
        CampaignWindow(start=fixed_now, end=fixed_now)


def test_window_already_over_rejected(open_manual, fixed_now):
    with pytest.raises(ValidationError):
        open_manual(window=CampaignWindow(start=fixed_now - timedelta(days=2), end=fixed_now - timedelta(days=1)))


def test_open_voting_list_orders_by_priority_then_end(engine, open_manual, fixed_now, directory):
    low = open_manual(name="Low", priority=0)
    high = open_manual(name="High", priority=3, window=CampaignWindow(fixed_now, fixed_now + timedelta(days=5)))
    auto = _open_demotion(engine, directory, fixed_now)

    ids = [c.campaign_id for c in engine.campaign_manager.list_open_for_voting(now=fixed_now)]
    assert ids == [auto.campaign_id, high.campaign_id, low.campaign_id]


def test_automatic_campaign_has_single_approved_candidate(engine, directory, fixed_now):
    campaign = _open_demotion(engine, directory, fixed_now)

    assert campaign.status == CampaignStatus.ACTIVE
    assert campaign.system_generated is True
    assert campaign.created_by == "AUTO_SYSTEM"
    assert campaign.priority == 10
    assert campaign.buffer_period_days == 0
    candidates = engine.candidate_registry.list_for_campaign(campaign.campaign_id)
    assert [(c.employee_id, c.status) for c in candidates] == [(1, CandidateStatus.APPROVED)]
    assert candidates[0].profile.candidate_name == "Alice Nguyen"


def test_open_automatic_campaign_is_idempotent(engine, directory, fixed_now, notifier):
    first = _open_demotion(engine, directory, fixed_now)
    second = _open_demotion(engine, directory, fixed_now + timedelta(minutes=5))

    assert second.campaign_id == first.campaign_id
    assert len(engine.candidate_registry.list_for_campaign(first.campaign_id)) == 1
    assert len(notifier.of("campaign_opened")) == 1


def test_open_automatic_campaign_rejects_manual_sub_type(engine, directory, fixed_now):
    with pytest.raises(ValidationError):
        _open_demotion(engine, directory, fixed_now, sub_type=CampaignSubType.MANUAL)


def test_close_campaign_requires_end_time(engine, open_manual, fixed_now):
    campaign = open_manual()
    with pytest.raises(CampaignNotEnded):
        engine.campaign_manager.close_campaign(campaign.campaign_id, now=fixed_now)

    closed = engine.campaign_manager.close_campaign(campaign.campaign_id, now=campaign.end_time)
    assert closed.status == CampaignStatus.CLOSED
    assert closed.closed_at == campaign.end_time

    with pytest.raises(CampaignNotActive):
        engine.campaign_manager.close_campaign(campaign.campaign_id, now=campaign.end_time)


def test_cancel_campaign(engine, open_manual, fixed_now):
    campaign = open_manual()
    cancelled = engine.campaign_manager.cancel_campaign(campaign.campaign_id, actor="employee:99", now=fixed_now)
    assert cancelled.status == CampaignStatus.CANCELLED

    with pytest.raises(InvalidTransition):
        engine.campaign_manager.cancel_campaign(campaign.campaign_id, actor="employee:99", now=fixed_now)


def test_end_early_moves_end_time_to_now(engine, open_manual, fixed_now):
    campaign = open_manual()
    ended = engine.campaign_manager.end_early(campaign.campaign_id, now=fixed_now)
    assert ended.end_time == fixed_now
    assert ended.status == CampaignStatus.ACTIVE
    assert ended.has_ended(fixed_now)


def test_schedule_retry_starts_after_buffer(engine, directory, fixed_now):
    first = _open_demotion(
        engine, directory, fixed_now, candidate=directory.get_profile(3), sub_type=CampaignSubType.AUTO_PROMOTION,
        target_role="staff", pass_threshold=50,
    )
    assert first.buffer_period_days == 30
    _fail(engine, first.campaign_id, first.end_time)

    retry_id = engine.campaign_manager.schedule_retry(first.campaign_id, now=first.end_time)
    retry = engine.campaign_manager.get(retry_id)

    assert retry.start_time == first.end_time + timedelta(days=30)
    assert retry.window.duration == first.window.duration
    assert retry.attempt_number == 2
    assert retry.predecessor_campaign_id == first.campaign_id
    assert retry.status == CampaignStatus.DRAFT
    carried = engine.candidate_registry.list_for_campaign(retry_id)
    assert [(c.employee_id, c.status) for c in carried] == [(3, CandidateStatus.APPROVED)]

    assert engine.campaign_manager.schedule_retry(first.campaign_id, now=first.end_time) == retry_id


def test_demotion_retry_bumps_punishment_round(engine, directory, fixed_now, period):
    engine.statistics_tracker.record_late_event(1, event_date=date(2026, 3, 2), minutes=20, now=fixed_now)
    first = _open_demotion(engine, directory, fixed_now, trigger_period=period)
    _fail(engine, first.campaign_id, first.end_time)

    retry_id = engine.campaign_manager.schedule_retry(first.campaign_id, now=first.end_time)

    retry = engine.campaign_manager.get(retry_id)
    # No buffer for demotions: the next round opens right away.
    assert retry.start_time == first.end_time
    assert retry.status == CampaignStatus.ACTIVE
    assert engine.statistics_tracker.get(1, period).punishment_count == 2


def test_retry_limit(engine, directory, fixed_now):
    campaign = _open_demotion(engine, directory, fixed_now)
    for _ in range(2):
        _fail(engine, campaign.campaign_id, campaign.end_time)
        retry_id = engine.campaign_manager.schedule_retry(campaign.campaign_id, now=campaign.end_time)
        campaign = engine.campaign_manager.get(retry_id)
    assert campaign.attempt_number == 3

    _fail(engine, campaign.campaign_id, campaign.end_time)
    with pytest.raises(RetryLimitExceeded):
        engine.campaign_manager.schedule_retry(campaign.campaign_id, now=campaign.end_time)


def test_retry_needs_failed_automatic_campaign(engine, open_manual, directory, fixed_now):
    manual = open_manual()
    with pytest.raises(InvalidTransition):
        engine.campaign_manager.schedule_retry(manual.campaign_id, now=fixed_now)

    auto = _open_demotion(engine, directory, fixed_now)
    with pytest.raises(InvalidTransition):
        engine.campaign_manager.schedule_retry(auto.campaign_id, now=fixed_now)


def test_draft_automatic_campaign_not_activated_while_another_is_active(engine, directory, fixed_now):
    active = _open_demotion(engine, directory, fixed_now)
    later_window = CampaignWindow(start=fixed_now + timedelta(days=1), end=fixed_now + timedelta(days=2))
    draft = _open_demotion(engine, directory, fixed_now, window=later_window)
    assert draft.campaign_id != active.campaign_id
    assert draft.status == CampaignStatus.DRAFT

    assert engine.campaign_manager.activate_due_campaigns(now=fixed_now + timedelta(days=1, hours=1)) == []
    assert engine.campaign_manager.get(draft.campaign_id).status == CampaignStatus.DRAFT


def test_retry_waits_as_draft_when_another_campaign_is_active(engine, directory, fixed_now, period):
    engine.statistics_tracker.record_late_event(1, event_date=date(2026, 3, 2), minutes=20, now=fixed_now)
    failed = _open_demotion(engine, directory, fixed_now, trigger_period=period)
    _fail(engine, failed.campaign_id, failed.end_time)
    newer = _open_demotion(engine, directory, failed.end_time)
    assert newer.status == CampaignStatus.ACTIVE

    manager = engine.campaign_manager
    retry_id = manager.schedule_retry(failed.campaign_id, now=failed.end_time)

    assert retry_id != newer.campaign_id
    retry = manager.get(retry_id)
    assert retry.predecessor_campaign_id == failed.campaign_id
    assert retry.attempt_number == 2
    assert retry.status == CampaignStatus.DRAFT
    assert engine.statistics_tracker.get(1, period).punishment_count == 2
    assert manager.schedule_retry(failed.campaign_id, now=failed.end_time + timedelta(hours=1)) == retry_id

    _fail(engine, newer.campaign_id, newer.end_time)
    assert retry_id in manager.activate_due_campaigns(now=newer.end_time)


def test_lapsed_draft_is_cancelled_and_escalated(engine, directory, fixed_now, notifier):
    _open_demotion(engine, directory, fixed_now)
    blocked_window = CampaignWindow(start=fixed_now + timedelta(days=1), end=fixed_now + timedelta(days=1, hours=6))
    draft = _open_demotion(engine, directory, fixed_now, window=blocked_window)
    manager = engine.campaign_manager

    assert manager.activate_due_campaigns(now=fixed_now + timedelta(days=1, hours=1)) == []
    assert manager.get(draft.campaign_id).status == CampaignStatus.DRAFT

    assert manager.activate_due_campaigns(now=fixed_now + timedelta(days=1, hours=7)) == []

    lapsed = manager.get(draft.campaign_id)
    assert lapsed.status == CampaignStatus.CANCELLED
    (escalation,) = notifier.of("escalation_required")
    assert escalation["campaign_id"] == draft.campaign_id
    assert escalation["trigger_employee_id"] == 1
    assert manager.cancel_lapsed_drafts(now=fixed_now + timedelta(days=2)) == []


def test_in_retry_buffer(engine, directory, fixed_now):
    first = _open_demotion(
        engine, directory, fixed_now, candidate=directory.get_profile(3), sub_type=CampaignSubType.AUTO_PROMOTION,
        target_role="staff",
    )
    manager = engine.campaign_manager
    assert manager.in_retry_buffer(3, CampaignSubType.AUTO_PROMOTION, now=fixed_now) is False
    _fail(engine, first.campaign_id, first.end_time)

    assert manager.in_retry_buffer(3, CampaignSubType.AUTO_PROMOTION, now=first.end_time + timedelta(days=29))
    assert not manager.in_retry_buffer(3, CampaignSubType.AUTO_PROMOTION, now=first.end_time + timedelta(days=30))


def test_public_dict_hides_trigger_details(engine, directory, fixed_now):
    campaign = _open_demotion(engine, directory, fixed_now)
    public = campaign.to_public_dict(fixed_now)
    assert "trigger_employee_id" not in public
    assert public["remaining_minutes"] == int((campaign.end_time - fixed_now).total_seconds() // 60)
    admin = campaign.to_admin_dict(fixed_now)
    assert admin["trigger_employee_id"] == 1

    assert replace(campaign, status=CampaignStatus.CLOSED).remaining_minutes(fixed_now) == 0
