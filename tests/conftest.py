from __future__ import annotations

import threading
from dataclasses import replace
from datetime import date, datetime, timedelta
from typing import Optional

import pytest

from src.promotion_voting.promotion_voting.appeals.model import VoteAppeal
from src.promotion_voting.promotion_voting.campaigns.model import CampaignWindow, NewCampaign, PromotionCampaign
from src.promotion_voting.promotion_voting.candidates.model import (
    CandidateProfile,
    PromotionCandidate,
    format_anonymous_id,
)
from src.promotion_voting.promotion_voting.common.datetime_utils import StatsPeriod
from src.promotion_voting.promotion_voting.container import assemble
from src.promotion_voting.promotion_voting.core.enums import (
    AppealStatus,
    CampaignStatus,
    StatisticsState,
    VoteDecision,
    VoteWriteOutcome,
)
from src.promotion_voting.promotion_voting.core.exceptions import DuplicateAppeal, DuplicateCandidate
from src.promotion_voting.promotion_voting.employees.model import EmployeeProfile
from src.promotion_voting.promotion_voting.statistics.model import AttendanceStatistics
from src.promotion_voting.promotion_voting.voting.model import Vote, VoteModification, VoteTally, VoteWriteResult

FIXED_NOW = datetime(2026, 3, 10, 9, 0, 0)


class InMemoryStore:
    """Shared lock standing in for the database's transactions."""

    def __init__(self):
        self.lock = threading.RLock()
        self.candidate_seq = 1


class InMemoryStatistics:
    def __init__(self, store: InMemoryStore):
        self._store = store
        self._rows: dict[tuple[int, int, int], AttendanceStatistics] = {}
        self._next_id = 1

    def get(self, *, employee_id, period):
        return self._rows.get((int(employee_id), period.year, period.month))

    def append_late_event(self, *, employee_id, period, event, now):
        with self._store.lock:
            key = (int(employee_id), period.year, period.month)
            row = self._rows.get(key)
            if row is None:
                row = AttendanceStatistics(
                    stats_id=self._next_id,
                    employee_id=int(employee_id),
                    period=period,
                    late_count=0,
                    late_minutes_total=0,
                    state=StatisticsState.ACCUMULATING,
                    punishment_count=0,
                )
                self._next_id += 1
            row = replace(
                row,
                late_count=row.late_count + 1,
                late_minutes_total=row.late_minutes_total + event.minutes,
                late_records=row.late_records + (event,),
                last_updated=now,
            )
            self._rows[key] = row
            return row

    def mark_punishment_triggered(self, *, employee_id, period, rule, now):
        with self._store.lock:
            key = (int(employee_id), period.year, period.month)
            row = self._rows.get(key)
            if not row or row.state != StatisticsState.ACCUMULATING:
                return False
            if not rule.is_met(row.late_count, row.late_minutes_total):
                return False
            self._rows[key] = replace(
                row,
                state=StatisticsState.TRIGGERED,
                punishment_count=row.punishment_count + 1,
                triggered_at=now,
                last_updated=now,
            )
            return True

    def raise_punishment_count(self, *, employee_id, period, at_least):
        with self._store.lock:
            key = (int(employee_id), period.year, period.month)
            row = self._rows.get(key)
            if not row:
                return 0
            row = replace(row, punishment_count=max(row.punishment_count, int(at_least)))
            self._rows[key] = row
            return row.punishment_count

    def list_untriggered_over(self, *, period, rule):
        return [
            r
            for r in self.list_for_period(period=period)
            if r.state == StatisticsState.ACCUMULATING and rule.is_met(r.late_count, r.late_minutes_total)
        ]

    def list_for_period(self, *, period):
        rows = [r for r in self._rows.values() if r.period == period]
        return sorted(rows, key=lambda r: (-r.late_minutes_total, r.employee_id))

    def reset(self, *, period, employee_id=None, now):
        touched = 0
        with self._store.lock:
            for key, row in list(self._rows.items()):
                if row.period != period or (employee_id is not None and row.employee_id != int(employee_id)):
                    continue
                self._rows[key] = replace(
                    row,
                    late_count=0,
                    late_minutes_total=0,
                    late_records=(),
                    state=StatisticsState.ACCUMULATING,
                    punishment_count=0,
                    triggered_at=None,
                    last_updated=now,
                )
                touched += 1
        return touched


class InMemoryCampaigns:
    def __init__(self, store: InMemoryStore):
        self._store = store
        self.rows: dict[int, PromotionCampaign] = {}
        self._next_id = 1

    def get(self, campaign_id):
        return self.rows.get(int(campaign_id))

    def _guard_taken(self, trigger_employee_id, target_role, *, exclude=None):
        if trigger_employee_id is None:
            return None
        for c in self.rows.values():
            if (
                c.campaign_id != exclude
                and c.status == CampaignStatus.ACTIVE
                and c.trigger_employee_id == trigger_employee_id
                and c.target_role == target_role
            ):
                return c
        return None

    def _build(self, new: NewCampaign, status: CampaignStatus) -> PromotionCampaign:
        campaign = PromotionCampaign(
            campaign_id=self._next_id,
            name=new.name,
            target_role=new.target_role,
            sub_type=new.sub_type,
            status=status,
            start_time=new.window.start,
            end_time=new.window.end,
            pass_threshold=float(new.pass_threshold),
            max_modifications=int(new.max_modifications),
            can_modify_votes=bool(new.can_modify_votes),
            buffer_period_days=int(new.buffer_period_days),
            created_by=new.created_by,
            description=new.description,
            show_live_results=new.show_live_results,
            priority=new.priority,
            trigger_employee_id=new.trigger_employee_id,
            trigger_period=new.trigger_period,
            trigger_conditions=dict(new.trigger_conditions or {}),
            system_generated=new.system_generated,
            attempt_number=new.attempt_number,
            predecessor_campaign_id=new.predecessor_campaign_id,
            created_at=new.window.start,
        )
        self._next_id += 1
        self.rows[campaign.campaign_id] = campaign
        return campaign

    def create(self, new, *, status):
        with self._store.lock:
            return self._build(new, status)

    def create_or_get(self, new, *, status):
        with self._store.lock:
            if new.predecessor_campaign_id is not None:
                existing = self.find_by_predecessor(new.predecessor_campaign_id)
                if existing:
                    return existing, False
                if self._guard_taken(new.trigger_employee_id, new.target_role):
                    status = CampaignStatus.DRAFT
            elif status == CampaignStatus.ACTIVE:
                existing = self._guard_taken(new.trigger_employee_id, new.target_role)
                if existing:
                    return existing, False
            return self._build(new, status), True

    def find_active_automatic(self, *, trigger_employee_id, target_role):
        return self._guard_taken(int(trigger_employee_id), target_role)

    def find_by_predecessor(self, predecessor_campaign_id):
        for c in self.rows.values():
            if c.predecessor_campaign_id == int(predecessor_campaign_id):
                return c
        return None

    def find_latest_automatic(self, *, trigger_employee_id, sub_type):
        matches = [
            c for c in self.rows.values() if c.trigger_employee_id == int(trigger_employee_id) and c.sub_type == sub_type
        ]
        return max(matches, key=lambda c: c.campaign_id) if matches else None

    def list(self, *, status=None, limit=200):
        rows = [c for c in self.rows.values() if status is None or c.status == status]
        rows.sort(key=lambda c: (-c.priority, -c.start_time.timestamp(), -c.campaign_id))
        return rows[:limit]

    def list_due_for_activation(self, *, now):
        return [c for c in self.rows.values() if c.status == CampaignStatus.DRAFT and c.start_time <= now < c.end_time]

    def list_lapsed_drafts(self, *, now):
        rows = [c for c in self.rows.values() if c.status == CampaignStatus.DRAFT and c.end_time <= now]
        return sorted(rows, key=lambda c: (c.end_time, c.campaign_id))

    def list_due_for_resolution(self, *, now):
        rows = [
            c
            for c in self.rows.values()
            if (c.status == CampaignStatus.ACTIVE and c.end_time <= now) or c.status == CampaignStatus.CLOSING
        ]
        return sorted(rows, key=lambda c: (c.end_time, c.campaign_id))

    def _set(self, campaign_id, **changes):
        self.rows[int(campaign_id)] = replace(self.rows[int(campaign_id)], **changes)

    def transition(self, *, campaign_id, from_statuses, to_status, now):
        with self._store.lock:
            c = self.rows.get(int(campaign_id))
            if not c or c.status not in from_statuses:
                return False
            if to_status == CampaignStatus.ACTIVE and self._guard_taken(
                c.trigger_employee_id, c.target_role, exclude=c.campaign_id
            ):
                return False
            closed_at = now if to_status in {CampaignStatus.CLOSED, CampaignStatus.CANCELLED} else c.closed_at
            self._set(campaign_id, status=to_status, closed_at=closed_at)
            return True

    def begin_closing(self, *, campaign_id, now):
        with self._store.lock:
            c = self.rows.get(int(campaign_id))
            if not c or c.status != CampaignStatus.ACTIVE or c.end_time > now:
                return False
            self._set(campaign_id, status=CampaignStatus.CLOSING)
            return True

    def complete_closing(self, *, campaign_id, outcome, results, total_votes, total_voters, now):
        with self._store.lock:
            c = self.rows.get(int(campaign_id))
            if not c or c.status != CampaignStatus.CLOSING:
                return False
            self._set(
                campaign_id,
                status=CampaignStatus.CLOSED,
                outcome=outcome,
                results=dict(results),
                total_votes=total_votes,
                total_voters=total_voters,
                closed_at=now,
            )
            return True

    def close(self, *, campaign_id, now):
        with self._store.lock:
            c = self.rows.get(int(campaign_id))
            if not c or c.status != CampaignStatus.ACTIVE or c.end_time > now:
                return False
            self._set(campaign_id, status=CampaignStatus.CLOSED, closed_at=now)
            return True

    def update_end_time(self, *, campaign_id, end_time):
        with self._store.lock:
            c = self.rows.get(int(campaign_id))
            if not c or c.status != CampaignStatus.ACTIVE or c.start_time >= end_time:
                return False
            self._set(campaign_id, end_time=end_time)
            return True


class InMemoryCandidates:
    def __init__(self, store: InMemoryStore):
        self._store = store
        self.rows: dict[int, PromotionCandidate] = {}
        self._next_id = 1

    def get(self, candidate_id):
        return self.rows.get(int(candidate_id))

    def get_by_anonymous_id(self, *, campaign_id, anonymous_id):
        for c in self.rows.values():
            if c.campaign_id == int(campaign_id) and c.anonymous_id == anonymous_id:
                return c
        return None

    def find_for_employee(self, *, campaign_id, employee_id):
        for c in self.rows.values():
            if c.campaign_id == int(campaign_id) and c.employee_id == int(employee_id):
                return c
        return None

    def list_for_campaign(self, campaign_id):
        return sorted(
            (c for c in self.rows.values() if c.campaign_id == int(campaign_id)), key=lambda c: c.anonymous_seq
        )

    def create(self, *, campaign_id, employee_id, profile, status, nominated_by, now):
        with self._store.lock:
            if self.find_for_employee(campaign_id=campaign_id, employee_id=employee_id):
                raise DuplicateCandidate(f"Employee {employee_id} is already a candidate in campaign {campaign_id}")
            seq = self._store.candidate_seq
            self._store.candidate_seq += 1
            candidate = PromotionCandidate(
                candidate_id=self._next_id,
                campaign_id=int(campaign_id),
                employee_id=int(employee_id),
                anonymous_seq=seq,
                anonymous_id=format_anonymous_id(seq),
                profile=profile,
                status=status,
                nominated_by=nominated_by,
                display_order=len(self.list_for_campaign(campaign_id)) + 1,
                created_at=now,
            )
            self._next_id += 1
            self.rows[candidate.candidate_id] = candidate
            return candidate

    def create_or_get(self, *, campaign_id, employee_id, profile, status, nominated_by, now):
        with self._store.lock:
            existing = self.find_for_employee(campaign_id=campaign_id, employee_id=employee_id)
            if existing:
                return existing, False
            return (
                self.create(
                    campaign_id=campaign_id,
                    employee_id=employee_id,
                    profile=profile,
                    status=status,
                    nominated_by=nominated_by,
                    now=now,
                ),
                True,
            )

    def set_status(self, *, candidate_id, from_statuses, to_status, decided_by, now):
        with self._store.lock:
            c = self.rows.get(int(candidate_id))
            if not c or c.status not in from_statuses:
                return False
            self.rows[c.candidate_id] = replace(
                c, status=to_status, decided_by=decided_by or c.decided_by, decided_at=now
            )
            return True

    def save_tallies(self, *, campaign_id, tallies):
        with self._store.lock:
            for t in tallies:
                c = self.rows[t.candidate_id]
                self.rows[t.candidate_id] = replace(
                    c, vote_count=t.vote_count, vote_percentage=t.vote_percentage, ranking=t.ranking
                )


class InMemoryVotes:
    def __init__(self, store: InMemoryStore, campaigns: InMemoryCampaigns):
        self._store = store
        self._campaigns = campaigns
        self.rows: dict[tuple[int, str], Vote] = {}
        self.modifications: list[VoteModification] = []
        self._next_id = 1

    def cast_or_update(self, *, campaign_id, voter_fingerprint, candidate_id, decision, now):
        with self._store.lock:
            campaign = self._campaigns.get(campaign_id)
            if (
                not campaign
                or campaign.status != CampaignStatus.ACTIVE
                or not campaign.start_time <= now <= campaign.end_time
            ):
                return VoteWriteResult(outcome=VoteWriteOutcome.CAMPAIGN_NOT_ACTIVE)

            key = (int(campaign_id), voter_fingerprint)
            existing = self.rows.get(key)
            if existing is None:
                vote = Vote(
                    vote_id=self._next_id,
                    campaign_id=int(campaign_id),
                    candidate_id=int(candidate_id),
                    voter_fingerprint=voter_fingerprint,
                    decision=decision,
                    modification_count=0,
                    cast_at=now,
                )
                self._next_id += 1
                self.rows[key] = vote
                return VoteWriteResult(outcome=VoteWriteOutcome.CREATED, vote=vote)

            if existing.candidate_id == int(candidate_id) and existing.decision == decision:
                return VoteWriteResult(outcome=VoteWriteOutcome.UNCHANGED, vote=existing)
            if not campaign.can_modify_votes or existing.modification_count >= campaign.max_modifications:
                return VoteWriteResult(outcome=VoteWriteOutcome.LOCKED, vote=existing)

            updated = replace(
                existing,
                candidate_id=int(candidate_id),
                decision=decision,
                modification_count=existing.modification_count + 1,
                last_modified_at=now,
            )
            self.rows[key] = updated
            self.modifications.append(
                VoteModification(
                    modification_id=len(self.modifications) + 1,
                    vote_id=existing.vote_id,
                    campaign_id=int(campaign_id),
                    modification_number=updated.modification_count,
                    old_candidate_id=existing.candidate_id,
                    new_candidate_id=int(candidate_id),
                    old_decision=existing.decision,
                    new_decision=decision,
                    modified_at=now,
                )
            )
            return VoteWriteResult(outcome=VoteWriteOutcome.MODIFIED, vote=updated)

    def get_by_fingerprint(self, *, campaign_id, voter_fingerprint):
        return self.rows.get((int(campaign_id), voter_fingerprint))

    def tally(self, campaign_id):
        votes = [v for v in self.rows.values() if v.campaign_id == int(campaign_id)]
        agree: dict[int, int] = {}
        decisions: dict[str, int] = {}
        for v in votes:
            decisions[v.decision.value] = decisions.get(v.decision.value, 0) + 1
            if v.decision == VoteDecision.AGREE:
                agree[v.candidate_id] = agree.get(v.candidate_id, 0) + 1
        return VoteTally(
            campaign_id=int(campaign_id), total_voters=len(votes), agree_counts=agree, decision_counts=decisions
        )

    def list_modifications(self, campaign_id):
        return [m for m in self.modifications if m.campaign_id == int(campaign_id)]

    def integrity_counts(self, *, campaign_id, start_time, end_time):
        votes = [v for v in self.rows.values() if v.campaign_id == int(campaign_id)]
        outside = [
            v
            for v in votes
            if v.cast_at < start_time or v.cast_at > end_time or (v.last_modified_at or v.cast_at) > end_time
        ]
        return {
            "total_votes": len(votes),
            "duplicate_fingerprints": 0,
            "votes_outside_window": len(outside),
            "votes_for_foreign_candidates": 0,
        }


class InMemoryAppeals:
    def __init__(self, store: InMemoryStore):
        self._store = store
        self.rows: dict[int, VoteAppeal] = {}
        self._next_id = 1

    def get(self, appeal_id):
        return self.rows.get(int(appeal_id))

    def create(self, new):
        with self._store.lock:
            for a in self.rows.values():
                if (a.campaign_id, a.appellant_id, a.appeal_type) == (
                    new.campaign_id,
                    new.appellant_id,
                    new.appeal_type,
                ):
                    raise DuplicateAppeal(f"An {new.appeal_type.value} appeal was already filed against this campaign")
            appeal = VoteAppeal(
                appeal_id=self._next_id,
                campaign_id=new.campaign_id,
                appellant_id=new.appellant_id,
                appeal_type=new.appeal_type,
                reason=new.reason,
                status=AppealStatus.PENDING,
                submitted_at=new.submitted_at,
                appeal_deadline=new.appeal_deadline,
                resolution_due=new.resolution_due,
                target_employee_id=new.target_employee_id,
                original_result=new.original_result,
                evidence=new.evidence,
                supporting_employee_ids=new.supporting_employee_ids,
            )
            self.rows[appeal.appeal_id] = appeal
            self._next_id += 1
            return appeal

    def count_submitted_since(self, *, appellant_id, since):
        return sum(1 for a in self.rows.values() if a.appellant_id == int(appellant_id) and a.submitted_at >= since)

    def list(self, *, statuses=None, campaign_id=None, appellant_id=None, appeal_type=None, limit=200):
        out = [
            a
            for a in self.rows.values()
            if (not statuses or a.status in statuses)
            and (campaign_id is None or a.campaign_id == int(campaign_id))
            and (appellant_id is None or a.appellant_id == int(appellant_id))
            and (appeal_type is None or a.appeal_type == appeal_type)
        ]
        out.sort(key=lambda a: (a.submitted_at, a.appeal_id), reverse=True)
        return out[:limit]

    def set_status(self, *, appeal_id, from_statuses, to_status, reviewed_by, review_notes, outcome, reviewed_at):
        with self._store.lock:
            appeal = self.rows.get(int(appeal_id))
            if not appeal or appeal.status not in from_statuses:
                return False
            self.rows[appeal.appeal_id] = replace(
                appeal,
                status=to_status,
                reviewed_by=reviewed_by if reviewed_by is not None else appeal.reviewed_by,
                reviewed_at=reviewed_at if reviewed_at is not None else appeal.reviewed_at,
                review_notes=review_notes if review_notes is not None else appeal.review_notes,
                outcome=outcome if outcome is not None else appeal.outcome,
            )
            return True

    def count_by_status_and_type(self, *, since=None, until=None):
        counts: dict[tuple, int] = {}
        for a in self.rows.values():
            if (since is None or a.submitted_at >= since) and (until is None or a.submitted_at <= until):
                counts[(a.status, a.appeal_type)] = counts.get((a.status, a.appeal_type), 0) + 1
        return [(status, appeal_type, n) for (status, appeal_type), n in counts.items()]


class InMemoryDirectory:
    def __init__(self, profiles: list[EmployeeProfile]):
        self.profiles = {p.employee_id: p for p in profiles}

    def get_profile(self, employee_id):
        return self.profiles.get(int(employee_id))

    def list_by_position(self, position, *, status="active"):
        return [p for p in self.profiles.values() if p.position == position and p.status == status]


class RecordingNotifier:
    def __init__(self):
        self.events: list[tuple[str, dict]] = []

    def notify(self, event, payload):
        self.events.append((event, dict(payload)))

    def of(self, event: str) -> list[dict]:
        return [p for e, p in self.events if e == event]


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def period(fixed_now) -> StatsPeriod:
    return StatsPeriod.of(fixed_now.date())


@pytest.fixture
def directory(fixed_now) -> InMemoryDirectory:
    today = fixed_now.date()
    return InMemoryDirectory(
        [
            EmployeeProfile(1, "Alice Nguyen", "staff", date(2023, 5, 1), store="Store A"),
            EmployeeProfile(2, "Bao Tran", "store_manager", date(2019, 1, 15), store="Store A"),
            EmployeeProfile(3, "Chi Le", "trainee", today - timedelta(days=25), store="Store B"),
            EmployeeProfile(4, "Dung Pham", "trainee", today - timedelta(days=5), store="Store B"),
            EmployeeProfile(5, "Hanh Vo", "assistant_manager", date(2021, 8, 2), store="Store C"),
            EmployeeProfile(6, "Khoa Do", "staff", date(2022, 3, 9), store="Store C"),
        ]
    )


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def engine(store, directory, notifier):
    campaigns = InMemoryCampaigns(store)
    return assemble(
        statistics_repo=InMemoryStatistics(store),
        campaigns_repo=campaigns,
        candidates_repo=InMemoryCandidates(store),
        votes_repo=InMemoryVotes(store, campaigns),
        appeals_repo=InMemoryAppeals(store),
        directory=directory,
        fingerprint_salt="test-salt",
        notifier=notifier,
    )


@pytest.fixture
def profile_of(directory, fixed_now):
    def _profile(employee_id: int, statement: Optional[str] = None) -> CandidateProfile:
        return CandidateProfile.from_employee(
            directory.get_profile(employee_id), today=fixed_now.date(), statement=statement
        )

    return _profile


@pytest.fixture
def open_manual(engine, fixed_now):
    """Active manual campaign running from an hour ago for one day."""

    def _open(**overrides):
        params = dict(
            name="Store manager election",
            target_role="store_manager",
            window=CampaignWindow(start=fixed_now - timedelta(hours=1), end=fixed_now + timedelta(days=1)),
            created_by="employee:99",
            now=fixed_now,
        )
        params.update(overrides)
        return engine.campaign_manager.open_manual_campaign(**params)

    return _open


@pytest.fixture
def approved_candidates(engine, profile_of, fixed_now):
    def _register(campaign_id: int, employee_ids: list[int]) -> list[PromotionCandidate]:
        registry = engine.candidate_registry
        out = []
        for employee_id in employee_ids:
            c = registry.register_candidate(
                campaign_id, employee_id, profile_of(employee_id), nominated_by="hr", now=fixed_now
            )
            out.append(registry.approve(c.candidate_id, actor="hr", now=fixed_now))
        return out

    return _register

