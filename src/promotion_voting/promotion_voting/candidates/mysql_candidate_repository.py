from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.constants import CANDIDATE_SEQUENCE_KEY
from ..core.enums import CandidateStatus
from ..core.exceptions import DuplicateCandidate
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_json, is_duplicate_key, to_json
from .model import CandidateProfile, CandidateTally, PromotionCandidate, format_anonymous_id
from .repository import CandidateRepository

_COLUMNS = """
    candidate_id, campaign_id, employee_id, anonymous_seq, anonymous_id,
    candidate_name, current_position, current_store, years_of_service, statement,
    qualifications, achievements, nominated_by, display_order, status,
    vote_count, vote_percentage, ranking, created_at, decided_by, decided_at
"""


def _row_to_candidate(r: dict) -> PromotionCandidate:
    years = r.get("years_of_service")
    return PromotionCandidate(
        candidate_id=int(r["candidate_id"]),
        campaign_id=int(r["campaign_id"]),
        employee_id=int(r["employee_id"]),
        anonymous_seq=int(r["anonymous_seq"]),
        anonymous_id=r["anonymous_id"],
        profile=CandidateProfile(
            candidate_name=r.get("candidate_name") or "",
            current_position=r.get("current_position") or "",
            current_store=r.get("current_store"),
            years_of_service=float(years) if years is not None else None,
            statement=r.get("statement"),
            qualifications=tuple(from_json(r.get("qualifications"), default=[]) or []),
            achievements=tuple(from_json(r.get("achievements"), default=[]) or []),
        ),
        status=CandidateStatus(r["status"]),
        nominated_by=r.get("nominated_by"),
        display_order=int(r.get("display_order") or 1),
        vote_count=int(r.get("vote_count") or 0),
        vote_percentage=float(r.get("vote_percentage") or 0),
        ranking=int(r["ranking"]) if r.get("ranking") is not None else None,
        created_at=r.get("created_at"),
        decided_by=r.get("decided_by"),
        decided_at=r.get("decided_at"),
    )


class MySQLCandidateRepository(CandidateRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, candidate_id: int) -> Optional[PromotionCandidate]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM promotion_candidates WHERE candidate_id=%s", (int(candidate_id),))
            r = fetchone(cur)
            return _row_to_candidate(r) if r else None

    def get_by_anonymous_id(self, *, campaign_id: int, anonymous_id: str) -> Optional[PromotionCandidate]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM promotion_candidates WHERE campaign_id=%s AND anonymous_id=%s",
                (int(campaign_id), anonymous_id),
            )
            r = fetchone(cur)
            return _row_to_candidate(r) if r else None

    def find_for_employee(self, *, campaign_id: int, employee_id: int) -> Optional[PromotionCandidate]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM promotion_candidates WHERE campaign_id=%s AND employee_id=%s",
                (int(campaign_id), int(employee_id)),
            )
            r = fetchone(cur)
            return _row_to_candidate(r) if r else None

    def list_for_campaign(self, campaign_id: int) -> Sequence[PromotionCandidate]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM promotion_candidates WHERE campaign_id=%s ORDER BY anonymous_seq ASC",
                (int(campaign_id),),
            )
            return [_row_to_candidate(r) for r in fetchall(cur)]

    def create(
        self,
        *,
        campaign_id: int,
        employee_id: int,
        profile: CandidateProfile,
        status: CandidateStatus,
        nominated_by: Optional[str],
        now: datetime,
    ) -> PromotionCandidate:
        with db_cursor(self._conn_factory) as (_, cur):
            # The sequence row lock is held until commit, so numbers are never handed out twice.
            cur.execute(
                "UPDATE id_sequences SET next_value = LAST_INSERT_ID(next_value + 1) WHERE seq_key=%s",
                (CANDIDATE_SEQUENCE_KEY,),
            )
            cur.execute("SELECT LAST_INSERT_ID() AS next_value")
            seq = int(fetchone(cur)["next_value"]) - 1

            cur.execute(
                "SELECT COALESCE(MAX(display_order), 0) + 1 AS next_order FROM promotion_candidates WHERE campaign_id=%s",
                (int(campaign_id),),
            )
            display_order = int(fetchone(cur)["next_order"])

            try:
                cur.execute(
                    """
                    INSERT INTO promotion_candidates(
                        campaign_id, employee_id, anonymous_seq, anonymous_id,
                        candidate_name, current_position, current_store, years_of_service, statement,
                        qualifications, achievements, nominated_by, display_order, status, created_at
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        int(campaign_id),
                        int(employee_id),
                        seq,
                        format_anonymous_id(seq),
                        profile.candidate_name,
                        profile.current_position,
                        profile.current_store,
                        profile.years_of_service,
                        profile.statement,
                        to_json(list(profile.qualifications)),
                        to_json(list(profile.achievements)),
                        nominated_by,
                        display_order,
                        status.value,
                        now,
                    ),
                )
            except mysql.connector.IntegrityError as e:
                if is_duplicate_key(e):
                    raise DuplicateCandidate(
                        f"Employee {employee_id} is already a candidate in campaign {campaign_id}"
                    ) from e
                raise

            candidate_id = int(cur.lastrowid)
            cur.execute(f"SELECT {_COLUMNS} FROM promotion_candidates WHERE candidate_id=%s", (candidate_id,))
            return _row_to_candidate(fetchone(cur))

    def create_or_get(
        self,
        *,
        campaign_id: int,
        employee_id: int,
        profile: CandidateProfile,
        status: CandidateStatus,
        nominated_by: Optional[str],
        now: datetime,
    ) -> tuple[PromotionCandidate, bool]:
        try:
            created = self.create(
                campaign_id=campaign_id,
                employee_id=employee_id,
                profile=profile,
                status=status,
                nominated_by=nominated_by,
                now=now,
            )
            return created, True
        except DuplicateCandidate:
            existing = self.find_for_employee(campaign_id=campaign_id, employee_id=employee_id)
            if not existing:
                raise
            return existing, False

    def set_status(
        self,
        *,
        candidate_id: int,
        from_statuses: Sequence[CandidateStatus],
        to_status: CandidateStatus,
        decided_by: Optional[str],
        now: datetime,
    ) -> bool:
        placeholders = ",".join(["%s"] * len(from_statuses))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE promotion_candidates
                SET status=%s, decided_by=COALESCE(%s, decided_by), decided_at=%s
                WHERE candidate_id=%s AND status IN ({placeholders})
                """,
                tuple([to_status.value, decided_by, now, int(candidate_id)] + [s.value for s in from_statuses]),
            )
            return cur.rowcount > 0

    def save_tallies(self, *, campaign_id: int, tallies: Sequence[CandidateTally]) -> None:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.executemany(
                """
                UPDATE promotion_candidates
                SET vote_count=%s, vote_percentage=%s, ranking=%s
                WHERE candidate_id=%s AND campaign_id=%s
                """,
                [(t.vote_count, t.vote_percentage, t.ranking, t.candidate_id, int(campaign_id)) for t in tallies],
            )
