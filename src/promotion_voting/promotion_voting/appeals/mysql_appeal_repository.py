from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..core.enums import AppealOutcome, AppealStatus, AppealType
from ..core.exceptions import DuplicateAppeal
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_json, is_duplicate_key, to_json
from .model import NewAppeal, VoteAppeal
from .repository import AppealRepository

_COLUMNS = """
    appeal_id, campaign_id, appellant_id, target_employee_id, appeal_type, reason, status,
    submitted_at, appeal_deadline, resolution_due, original_result, evidence, supporting_employees,
    reviewed_by, reviewed_at, review_notes, outcome
"""


def _row_to_appeal(r: dict) -> VoteAppeal:
    return VoteAppeal(
        appeal_id=int(r["appeal_id"]),
        campaign_id=int(r["campaign_id"]),
        appellant_id=int(r["appellant_id"]),
        target_employee_id=int(r["target_employee_id"]) if r.get("target_employee_id") is not None else None,
        appeal_type=AppealType(r["appeal_type"]),
        reason=r["reason"],
        status=AppealStatus(r["status"]),
        submitted_at=r["submitted_at"],
        appeal_deadline=r["appeal_deadline"],
        resolution_due=r["resolution_due"],
        original_result=from_json(r.get("original_result")),
        evidence=tuple(from_json(r.get("evidence"), default=[]) or []),
        supporting_employee_ids=tuple(int(e) for e in from_json(r.get("supporting_employees"), default=[]) or []),
        reviewed_by=r.get("reviewed_by"),
        reviewed_at=r.get("reviewed_at"),
        review_notes=r.get("review_notes"),
        outcome=AppealOutcome(r["outcome"]) if r.get("outcome") else None,
    )


class MySQLAppealRepository(AppealRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, appeal_id: int) -> Optional[VoteAppeal]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM vote_appeals WHERE appeal_id=%s", (int(appeal_id),))
            r = fetchone(cur)
            return _row_to_appeal(r) if r else None

    def create(self, new: NewAppeal) -> VoteAppeal:
        with db_cursor(self._conn_factory) as (_, cur):
            try:
                cur.execute(
                    """
                    INSERT INTO vote_appeals(
                        campaign_id, appellant_id, target_employee_id, appeal_type, reason, status,
                        submitted_at, appeal_deadline, resolution_due, original_result, evidence,
                        supporting_employees
                    )
                    VALUES(%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
                    """,
                    (
                        new.campaign_id,
                        new.appellant_id,
                        new.target_employee_id,
                        new.appeal_type.value,
                        new.reason,
                        AppealStatus.PENDING.value,
                        new.submitted_at,
                        new.appeal_deadline,
                        new.resolution_due,
                        to_json(new.original_result),
                        to_json(list(new.evidence)),
                        to_json(list(new.supporting_employee_ids)),
                    ),
                )
            except mysql.connector.IntegrityError as e:
                if is_duplicate_key(e):
                    raise DuplicateAppeal(
                        f"An {new.appeal_type.value} appeal was already filed against this campaign"
                    ) from e
                raise

            appeal_id = int(cur.lastrowid)
            cur.execute(f"SELECT {_COLUMNS} FROM vote_appeals WHERE appeal_id=%s", (appeal_id,))
            return _row_to_appeal(fetchone(cur))

    def count_submitted_since(self, *, appellant_id: int, since: datetime) -> int:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                "SELECT COUNT(*) AS n FROM vote_appeals WHERE appellant_id=%s AND submitted_at>=%s",
                (int(appellant_id), since),
            )
            return int(fetchone(cur)["n"])

    def list(
        self,
        *,
        statuses: Optional[Sequence[AppealStatus]] = None,
        campaign_id: Optional[int] = None,
        appellant_id: Optional[int] = None,
        appeal_type: Optional[AppealType] = None,
        limit: int = 200,
    ) -> Sequence[VoteAppeal]:
        where: list[str] = []
        params: list[object] = []
        if statuses:
            where.append(f"status IN ({','.join(['%s'] * len(statuses))})")
            params.extend(s.value for s in statuses)
        if campaign_id is not None:
            where.append("campaign_id=%s")
            params.append(int(campaign_id))
        if appellant_id is not None:
            where.append("appellant_id=%s")
            params.append(int(appellant_id))
        if appeal_type is not None:
            where.append("appeal_type=%s")
            params.append(appeal_type.value)

        sql = f"SELECT {_COLUMNS} FROM vote_appeals"
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " ORDER BY submitted_at DESC, appeal_id DESC LIMIT %s"
        params.append(int(limit))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_appeal(r) for r in fetchall(cur)]

    def set_status(
        self,
        *,
        appeal_id: int,
        from_statuses: Sequence[AppealStatus],
        to_status: AppealStatus,
        reviewed_by: Optional[str],
        review_notes: Optional[str],
        outcome: Optional[AppealOutcome],
        reviewed_at: Optional[datetime],
    ) -> bool:
        placeholders = ",".join(["%s"] * len(from_statuses))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                UPDATE vote_appeals
                SET status=%s,
                    reviewed_by=COALESCE(%s, reviewed_by),
                    reviewed_at=COALESCE(%s, reviewed_at),
                    review_notes=COALESCE(%s, review_notes),
                    outcome=COALESCE(%s, outcome)
                WHERE appeal_id=%s AND status IN ({placeholders})
                """,
                tuple(
                    [
                        to_status.value,
                        reviewed_by,
                        reviewed_at,
                        review_notes,
                        outcome.value if outcome else None,
                        int(appeal_id),
                    ]
                    + [s.value for s in from_statuses]
                ),
            )
            return cur.rowcount > 0

    def count_by_status_and_type(
        self, *, since: Optional[datetime] = None, until: Optional[datetime] = None
    ) -> Sequence[tuple[AppealStatus, AppealType, int]]:
        sql = "SELECT status, appeal_type, COUNT(*) AS n FROM vote_appeals"
        where: list[str] = []
        params: list[object] = []
        if since is not None:
            where.append("submitted_at>=%s")
            params.append(since)
        if until is not None:
            where.append("submitted_at<=%s")
            params.append(until)
        if where:
            sql += " WHERE " + " AND ".join(where)
        sql += " GROUP BY status, appeal_type"
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [(AppealStatus(r["status"]), AppealType(r["appeal_type"]), int(r["n"])) for r in fetchall(cur)]
