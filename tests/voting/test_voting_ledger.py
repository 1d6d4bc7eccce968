from __future__ import annotations

import threading
from datetime import timedelta

import pytest

from src.promotion_voting.promotion_voting.campaigns.model import CampaignWindow
from src.promotion_voting.promotion_voting.core.enums import CampaignSubType, VoteDecision
from src.promotion_voting.promotion_voting.core.exceptions import (
    CampaignNotActive,
    IneligibleVoter,
    NotFoundError,
    ValidationError,
    VoteLocked,
)
from src.promotion_voting.promotion_voting.voting.fingerprint import VoterFingerprinter
from src.promotion_voting.promotion_voting.voting.service import parse_decision


@pytest.fixture
def ballot(open_manual, approved_candidates):
    campaign = open_manual(max_modifications=3)
    candidates = approved_candidates(campaign.campaign_id, [1, 6])
    return campaign, candidates


def test_revise_vote_until_locked(engine, ballot, fixed_now):
    campaign, (first, second) = ballot
    ledger = engine.voting_ledger

    receipt = ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)
    assert receipt.created is True
    assert receipt.modification_count == 0
    assert receipt.modifications_remaining == 3

    receipt = ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_002", now=fixed_now)
    assert receipt.anonymous_id == "CANDIDATE_002"
    assert receipt.modification_count == 1
    assert receipt.created is False

    ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)
    ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_002", now=fixed_now)
    with pytest.raises(VoteLocked):
        ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)

    mine = ledger.get_my_vote(campaign.campaign_id, 200)
    assert mine.anonymous_id == "CANDIDATE_002"
    assert mine.modification_count == 3
    assert mine.modifications_remaining == 0

    history = ledger.modification_history(campaign.campaign_id)
    assert [m.modification_number for m in history] == [1, 2, 3]
    assert history[0].old_candidate_id == first.candidate_id
    assert history[0].new_candidate_id == second.candidate_id


def test_same_vote_again_is_not_a_modification(engine, ballot, fixed_now):
    campaign, _ = ballot
    ledger = engine.voting_ledger
    ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)
    receipt = ledger.cast_or_update_vote(campaign.campaign_id, 200, "candidate_001", now=fixed_now)

    assert receipt.modification_count == 0
    assert ledger.modification_history(campaign.campaign_id) == []


def test_changing_decision_counts_as_modification(engine, ballot, fixed_now):
    campaign, _ = ballot
    ledger = engine.voting_ledger
    ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)
    receipt = ledger.cast_or_update_vote(
        campaign.campaign_id, 200, "CANDIDATE_001", decision="disagree", now=fixed_now
    )
    assert receipt.decision == VoteDecision.DISAGREE
    assert receipt.modification_count == 1


def test_locked_campaign_refuses_any_revision(engine, open_manual, approved_candidates, fixed_now):
    campaign = open_manual(can_modify_votes=False)
    approved_candidates(campaign.campaign_id, [1, 6])
    ledger = engine.voting_ledger
    receipt = ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)
    assert receipt.modifications_remaining == 0

    with pytest.raises(VoteLocked):
        ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_002", now=fixed_now)


def test_votes_outside_window_or_on_inactive_campaign(engine, ballot, open_manual, fixed_now):
    campaign, _ = ballot
    ledger = engine.voting_ledger
    with pytest.raises(CampaignNotActive):
        ledger.cast_or_update_vote(
            campaign.campaign_id, 200, "CANDIDATE_001", now=campaign.end_time + timedelta(seconds=1)
        )

    draft = open_manual(window=CampaignWindow(fixed_now + timedelta(days=1), fixed_now + timedelta(days=2)))
    with pytest.raises(CampaignNotActive):
        ledger.cast_or_update_vote(draft.campaign_id, 200, "CANDIDATE_001", now=fixed_now)

    engine.campaign_manager.cancel_campaign(campaign.campaign_id, actor="hr", now=fixed_now)
    with pytest.raises(CampaignNotActive):
        ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)


def test_vote_at_exact_end_time_is_accepted(engine, ballot):
    campaign, _ = ballot
    receipt = engine.voting_ledger.cast_or_update_vote(
        campaign.campaign_id, 200, "CANDIDATE_001", now=campaign.end_time
    )
    assert receipt.created is True


def test_only_approved_candidates_are_on_the_ballot(engine, open_manual, profile_of, fixed_now):
    campaign = open_manual()
    engine.candidate_registry.register_candidate(
        campaign.campaign_id, 1, profile_of(1), nominated_by="hr", now=fixed_now
    )

    with pytest.raises(ValidationError):
        engine.voting_ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)
    with pytest.raises(NotFoundError):
        engine.voting_ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_404", now=fixed_now)


def test_subject_of_automatic_campaign_cannot_vote(engine, directory, fixed_now):
    start = fixed_now.replace(hour=0)
    campaign = engine.campaign_manager.open_automatic_campaign(
        candidate=directory.get_profile(1),
        sub_type=CampaignSubType.AUTO_DEMOTION,
        target_role="trainee",
        window=CampaignWindow(start, start + timedelta(days=3)),
        pass_threshold=30,
        now=fixed_now,
    )
    (candidate,) = engine.candidate_registry.list_for_campaign(campaign.campaign_id)

    with pytest.raises(IneligibleVoter):
        engine.voting_ledger.cast_or_update_vote(campaign.campaign_id, 1, candidate.anonymous_id, now=fixed_now)
    receipt = engine.voting_ledger.cast_or_update_vote(campaign.campaign_id, 2, candidate.anonymous_id, now=fixed_now)
    assert receipt.created is True

    with pytest.raises(IneligibleVoter):
        engine.voting_ledger.cast_or_update_vote(campaign.campaign_id, "1", candidate.anonymous_id, now=fixed_now)
    receipt = engine.voting_ledger.cast_or_update_vote(
        campaign.campaign_id, "sso:khoa.do", candidate.anonymous_id, now=fixed_now
    )
    assert receipt.created is True
    mine = engine.voting_ledger.get_my_vote(campaign.campaign_id, "sso:khoa.do")
    assert mine.anonymous_id == candidate.anonymous_id


def test_concurrent_votes_from_one_voter_leave_one_row(engine, ballot, fixed_now):
    campaign, _ = ballot
    ledger = engine.voting_ledger
    outcomes = []

    def vote(ref):
        try:
            outcomes.append(ledger.cast_or_update_vote(campaign.campaign_id, 300, ref, now=fixed_now))
        except VoteLocked:
            outcomes.append(None)

    threads = [
        threading.Thread(target=vote, args=("CANDIDATE_001" if i % 2 else "CANDIDATE_002",)) for i in range(12)
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    tally = ledger.tally(campaign.campaign_id)
    assert tally.total_voters == 1
    assert sum(1 for o in outcomes if o is not None and o.created) == 1
    assert ledger.get_my_vote(campaign.campaign_id, 300).modification_count <= 3


def test_tally_counts_agree_ballots_per_candidate(engine, ballot, fixed_now):
    campaign, (first, second) = ballot
    ledger = engine.voting_ledger
    for voter in (201, 202, 203):
        ledger.cast_or_update_vote(campaign.campaign_id, voter, "CANDIDATE_002", now=fixed_now)
    ledger.cast_or_update_vote(campaign.campaign_id, 204, "CANDIDATE_001", now=fixed_now)
    ledger.cast_or_update_vote(campaign.campaign_id, 205, "CANDIDATE_001", decision="abstain", now=fixed_now)

    tally = ledger.tally(campaign.campaign_id)
    assert tally.total_voters == 5
    assert tally.agree_counts == {second.candidate_id: 3, first.candidate_id: 1}
    assert tally.total_votes == 4
    assert tally.decision_counts == {"agree": 4, "abstain": 1}


def test_ledger_never_stores_voter_identity(engine, ballot, fixed_now):
    campaign, _ = ballot
    engine.voting_ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)

    (row,) = engine.votes_repo.rows.values()
    assert row.voter_fingerprint == VoterFingerprinter("test-salt").fingerprint(200, campaign.campaign_id)
    assert len(row.voter_fingerprint) == 64
    assert all(value not in (200, "200") for value in vars(row).values())
    assert engine.voting_ledger.get_my_vote(campaign.campaign_id, 201) is None


def test_verify_integrity_on_clean_ledger(engine, ballot, fixed_now):
    campaign, _ = ballot
    engine.voting_ledger.cast_or_update_vote(campaign.campaign_id, 200, "CANDIDATE_001", now=fixed_now)

    report = engine.voting_ledger.verify_integrity(campaign.campaign_id)
    assert report.is_clean
    assert report.to_dict()["total_votes"] == 1


def test_fingerprint_is_deterministic_and_keyed():
    fp = VoterFingerprinter("salt-a")
    assert fp.fingerprint(7, 1) == fp.fingerprint("7", 1)
    assert fp.fingerprint(7, 1) != fp.fingerprint(7, 2)
    assert fp.fingerprint(7, 1) != VoterFingerprinter("salt-b").fingerprint(7, 1)
    with pytest.raises(ValueError):
        VoterFingerprinter("")


@pytest.mark.parametrize(
    "raw, expected",
    [
        (None, VoteDecision.AGREE),
        ("", VoteDecision.AGREE),
        (" Disagree ", VoteDecision.DISAGREE),
        ("abstain", VoteDecision.ABSTAIN),
    ],
)
def test_parse_decision(raw, expected):
    assert parse_decision(raw) == expected


def test_parse_decision_rejects_unknown():
    with pytest.raises(ValidationError):
        parse_decision("maybe")
