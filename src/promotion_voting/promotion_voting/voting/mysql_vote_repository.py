from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.enums import CampaignStatus, VoteDecision, VoteWriteOutcome
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, is_duplicate_key
from .model import Vote, VoteModification, VoteTally, VoteWriteResult
from .repository import VoteRepository

_COLUMNS = """
    vote_id, campaign_id, candidate_id, voter_fingerprint, decision,
    modification_count, cast_at, last_modified_at
"""


def _row_to_vote(r: dict) -> Vote:
    return Vote(
        vote_id=int(r["vote_id"]),
        campaign_id=int(r["campaign_id"]),
        candidate_id=int(r["candidate_id"]),
        voter_fingerprint=r["voter_fingerprint"],
        decision=VoteDecision(r["decision"]),
        modification_count=int(r["modification_count"]),
        cast_at=r["cast_at"],
        last_modified_at=r.get("last_modified_at"),
    )


def _row_to_modification(r: dict) -> VoteModification:
    return VoteModification(
        modification_id=int(r["modification_id"]),
        vote_id=int(r["vote_id"]),
        campaign_id=int(r["campaign_id"]),
        modification_number=int(r["modification_number"]),
        old_candidate_id=int(r["old_candidate_id"]),
        new_candidate_id=int(r["new_candidate_id"]),
        old_decision=VoteDecision(r["old_decision"]),
        new_decision=VoteDecision(r["new_decision"]),
        modified_at=r["modified_at"],
    )


class MySQLVoteRepository(VoteRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def cast_or_update(
        self,
        *,
        campaign_id: int,
        voter_fingerprint: str,
        candidate_id: int,
        decision: VoteDecision,
        now: datetime,
    ) -> VoteWriteResult:
        with db_cursor(self._conn_factory) as (_, cur):
            # Shared lock: concurrent voters proceed together, the resolver's
            # active -> closing update waits for them and later votes see closing.
            cur.execute(
                """
                SELECT status, start_time, end_time, can_modify_votes, max_modifications
                FROM promotion_campaigns
                WHERE campaign_id=%s
                LOCK IN SHARE MODE
                """,
                (int(campaign_id),),
            )
            campaign = fetchone(cur)
            if (
                not campaign
                or campaign["status"] != CampaignStatus.ACTIVE.value
                or not campaign["start_time"] <= now <= campaign["end_time"]
            ):
                return VoteWriteResult(outcome=VoteWriteOutcome.CAMPAIGN_NOT_ACTIVE)

            try:
                cur.execute(
                    """
                    INSERT INTO promotion_votes(campaign_id, candidate_id, voter_fingerprint, decision, modification_count, cast_at)
                    VALUES(%s,%s,%s,%s,0,%s)
                    """,
                    (int(campaign_id), int(candidate_id), voter_fingerprint, decision.value, now),
                )
                vote_id = int(cur.lastrowid)
                cur.execute(f"SELECT {_COLUMNS} FROM promotion_votes WHERE vote_id=%s", (vote_id,))
                return VoteWriteResult(outcome=VoteWriteOutcome.CREATED, vote=_row_to_vote(fetchone(cur)))
            except mysql.connector.IntegrityError as e:
                if not is_duplicate_key(e):
                    raise

            cur.execute(
                f"SELECT {_COLUMNS} FROM promotion_votes WHERE campaign_id=%s AND voter_fingerprint=%s FOR UPDATE",
                (int(campaign_id), voter_fingerprint),
            )
            existing = _row_to_vote(fetchone(cur))
            if existing.candidate_id == int(candidate_id) and existing.decision == decision:
                return VoteWriteResult(outcome=VoteWriteOutcome.UNCHANGED, vote=existing)

            max_modifications = int(campaign["max_modifications"])
            if not campaign["can_modify_votes"] or existing.modification_count >= max_modifications:
                return VoteWriteResult(outcome=VoteWriteOutcome.LOCKED, vote=existing)

            cur.execute(
                """
                UPDATE promotion_votes
                SET candidate_id=%s, decision=%s, modification_count=modification_count+1, last_modified_at=%s
                WHERE vote_id=%s AND modification_count < %s
                """,
                (int(candidate_id), decision.value, now, existing.vote_id, max_modifications),
            )
            if cur.rowcount == 0:
                return VoteWriteResult(outcome=VoteWriteOutcome.LOCKED, vote=existing)

            cur.execute(
                """
                INSERT INTO vote_modifications(
                    vote_id, campaign_id, modification_number, old_candidate_id, new_candidate_id,
                    old_decision, new_decision, modified_at
                )
                VALUES(%s,%s,%s,%s,%s,%s,%s,%s)
                """,
                (
                    existing.vote_id,
                    int(campaign_id),
                    existing.modification_count + 1,
                    existing.candidate_id,
                    int(candidate_id),
                    existing.decision.value,
                    decision.value,
                    now,
                ),
            )
            cur.execute(f"SELECT {_COLUMNS} FROM promotion_votes WHERE vote_id=%s", (existing.vote_id,))
            return VoteWriteResult(outcome=VoteWriteOutcome.MODIFIED, vote=_row_to_vote(fetchone(cur)))

    def get_by_fingerprint(self, *, campaign_id: int, voter_fingerprint: str) -> Optional[Vote]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM promotion_votes WHERE campaign_id=%s AND voter_fingerprint=%s",
                (int(campaign_id), voter_fingerprint),
            )
            r = fetchone(cur)
            return _row_to_vote(r) if r else None

    def tally(self, campaign_id: int) -> VoteTally:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT candidate_id, decision, COUNT(*) AS cnt
                FROM promotion_votes
                WHERE campaign_id=%s
                GROUP BY candidate_id, decision
                """,
                (int(campaign_id),),
            )
            rows = fetchall(cur)

        agree_counts: dict[int, int] = {}
        decision_counts: dict[str, int] = {}
        total = 0
        for r in rows:
            cnt = int(r["cnt"])
            total += cnt
            decision_counts[r["decision"]] = decision_counts.get(r["decision"], 0) + cnt
            if r["decision"] == VoteDecision.AGREE.value:
                agree_counts[int(r["candidate_id"])] = agree_counts.get(int(r["candidate_id"]), 0) + cnt
        return VoteTally(
            campaign_id=int(campaign_id),
            total_voters=total,
            agree_counts=agree_counts,
            decision_counts=decision_counts,
        )

    def list_modifications(self, campaign_id: int) -> Sequence[VoteModification]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                SELECT modification_id, vote_id, campaign_id, modification_number, old_candidate_id,
                       new_candidate_id, old_decision, new_decision, modified_at
                FROM vote_modifications
                WHERE campaign_id=%s
                ORDER BY modified_at ASC, modification_id ASC
                """,
                (int(campaign_id),),
            )
            return [_row_to_modification(r) for r in fetchall(cur)]

    def integrity_counts(self, *, campaign_id: int, start_time: datetime, end_time: datetime) -> dict:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute("SELECT COUNT(*) AS cnt FROM promotion_votes WHERE campaign_id=%s", (int(campaign_id),))
            total = int(fetchone(cur)["cnt"])

            cur.execute(
                """
                SELECT COUNT(*) AS cnt FROM (
                    SELECT voter_fingerprint FROM promotion_votes
                    WHERE campaign_id=%s
                    GROUP BY voter_fingerprint
                    HAVING COUNT(*) > 1
                ) dup
                """,
                (int(campaign_id),),
            )
            duplicates = int(fetchone(cur)["cnt"])

            cur.execute(
                """
                SELECT COUNT(*) AS cnt FROM promotion_votes
                WHERE campaign_id=%s
                  AND (cast_at < %s OR cast_at > %s OR COALESCE(last_modified_at, cast_at) > %s)
                """,
                (int(campaign_id), start_time, end_time, end_time),
            )
            outside = int(fetchone(cur)["cnt"])

            cur.execute(
                """
                SELECT COUNT(*) AS cnt
                FROM promotion_votes v
                JOIN promotion_candidates c ON c.candidate_id = v.candidate_id
                WHERE v.campaign_id=%s AND c.campaign_id <> v.campaign_id
                """,
                (int(campaign_id),),
            )
            foreign = int(fetchone(cur)["cnt"])

        return {
            "total_votes": total,
            "duplicate_fingerprints": duplicates,
            "votes_outside_window": outside,
            "votes_for_foreign_candidates": foreign,
        }
