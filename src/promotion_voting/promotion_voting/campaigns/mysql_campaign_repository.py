from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import mysql.connector

from ..common.datetime_utils import StatsPeriod
from ..core.enums import CampaignOutcome, CampaignStatus, CampaignSubType
from ..database.connection import DatabaseConnection
from ..database.mysql_base import db_cursor, fetchall, fetchone, from_json, is_duplicate_key, to_json
from .model import NewCampaign, PromotionCampaign
from .repository import CampaignRepository

_COLUMNS = """
    campaign_id, campaign_name, description, target_role, sub_type, status, start_time, end_time,
    is_anonymous, can_modify_votes, max_modifications, buffer_period_days, pass_threshold,
    show_live_results, priority, trigger_employee_id, trigger_year, trigger_month, trigger_conditions,
    system_generated, attempt_number, predecessor_campaign_id, outcome, results,
    total_votes, total_voters, created_by, created_at, closed_at
"""


def _row_to_campaign(r: dict) -> PromotionCampaign:
    period = None
    if r.get("trigger_year") and r.get("trigger_month"):
        period = StatsPeriod(int(r["trigger_year"]), int(r["trigger_month"]))
    return PromotionCampaign(
        campaign_id=int(r["campaign_id"]),
        name=r["campaign_name"],
        description=r.get("description"),
        target_role=r["target_role"],
        sub_type=CampaignSubType(r["sub_type"]),
        status=CampaignStatus(r["status"]),
        start_time=r["start_time"],
        end_time=r["end_time"],
        is_anonymous=bool(r.get("is_anonymous", 1)),
        can_modify_votes=bool(r["can_modify_votes"]),
        max_modifications=int(r["max_modifications"]),
        buffer_period_days=int(r["buffer_period_days"]),
        pass_threshold=float(r["pass_threshold"]),
        show_live_results=bool(r.get("show_live_results")),
        priority=int(r.get("priority") or 0),
        trigger_employee_id=int(r["trigger_employee_id"]) if r.get("trigger_employee_id") is not None else None,
        trigger_period=period,
        trigger_conditions=from_json(r.get("trigger_conditions"), default={}) or {},
        system_generated=bool(r.get("system_generated")),
        attempt_number=int(r.get("attempt_number") or 1),
        predecessor_campaign_id=(
            int(r["predecessor_campaign_id"]) if r.get("predecessor_campaign_id") is not None else None
        ),
        outcome=CampaignOutcome(r["outcome"]) if r.get("outcome") else None,
        results=from_json(r.get("results")),
        total_votes=int(r.get("total_votes") or 0),
        total_voters=int(r.get("total_voters") or 0),
        created_by=r["created_by"],
        created_at=r.get("created_at"),
        closed_at=r.get("closed_at"),
    )


class MySQLCampaignRepository(CampaignRepository):
    def __init__(self, conn_factory: DatabaseConnection):
        self._conn_factory = conn_factory

    def get(self, campaign_id: int) -> Optional[PromotionCampaign]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(f"SELECT {_COLUMNS} FROM promotion_campaigns WHERE campaign_id=%s", (int(campaign_id),))
            r = fetchone(cur)
            return _row_to_campaign(r) if r else None

    @staticmethod
    def _insert(cur, new: NewCampaign, status: CampaignStatus) -> int:
        period = new.trigger_period
        cur.execute(
            """
            INSERT INTO promotion_campaigns(
                campaign_name, description, target_role, sub_type, status, start_time, end_time,
                is_anonymous, can_modify_votes, max_modifications, buffer_period_days, pass_threshold,
                show_live_results, priority, trigger_employee_id, trigger_year, trigger_month,
                trigger_conditions, system_generated, attempt_number, predecessor_campaign_id, created_by
            )
            VALUES(%s,%s,%s,%s,%s,%s,%s,1,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s,%s)
            """,
            (
                new.name,
                new.description,
                new.target_role,
                new.sub_type.value,
                status.value,
                new.window.start,
                new.window.end,
                1 if new.can_modify_votes else 0,
                int(new.max_modifications),
                int(new.buffer_period_days),
                float(new.pass_threshold),
                1 if new.show_live_results else 0,
                int(new.priority),
                new.trigger_employee_id,
                period.year if period else None,
                period.month if period else None,
                to_json(new.trigger_conditions) if new.trigger_conditions is not None else None,
                1 if new.system_generated else 0,
                int(new.attempt_number),
                new.predecessor_campaign_id,
                new.created_by,
            ),
        )
        return int(cur.lastrowid)

    def create(self, new: NewCampaign, *, status: CampaignStatus) -> PromotionCampaign:
        with db_cursor(self._conn_factory) as (_, cur):
            campaign_id = self._insert(cur, new, status)
            cur.execute(f"SELECT {_COLUMNS} FROM promotion_campaigns WHERE campaign_id=%s", (campaign_id,))
            return _row_to_campaign(fetchone(cur))

    def create_or_get(self, new: NewCampaign, *, status: CampaignStatus) -> tuple[PromotionCampaign, bool]:
        with db_cursor(self._conn_factory) as (_, cur):
            try:
                campaign_id = self._insert(cur, new, status)
            except mysql.connector.IntegrityError as e:
                if not is_duplicate_key(e):
                    raise
                campaign_id = None
            if campaign_id is not None:
                cur.execute(f"SELECT {_COLUMNS} FROM promotion_campaigns WHERE campaign_id=%s", (campaign_id,))
                return _row_to_campaign(fetchone(cur)), True

        # Lost the race for a unique slot: hand back whoever holds it.
        existing = None
        if new.predecessor_campaign_id is not None:
            existing = self.find_by_predecessor(new.predecessor_campaign_id)
            if existing is None and status == CampaignStatus.ACTIVE:
                # Another campaign holds the active slot; the successor waits as a draft.
                return self.create_or_get(new, status=CampaignStatus.DRAFT)
        elif new.trigger_employee_id is not None:
            existing = self.find_active_automatic(
                trigger_employee_id=new.trigger_employee_id, target_role=new.target_role
            )
        if existing is None:
            # The slot holder moved on between our insert and the lookup; try once more.
            return self.create(new, status=status), True
        return existing, False

    def find_active_automatic(self, *, trigger_employee_id: int, target_role: str) -> Optional[PromotionCampaign]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM promotion_campaigns
                WHERE trigger_employee_id=%s AND target_role=%s AND status=%s
                """,
                (int(trigger_employee_id), target_role, CampaignStatus.ACTIVE.value),
            )
            r = fetchone(cur)
            return _row_to_campaign(r) if r else None

    def find_by_predecessor(self, predecessor_campaign_id: int) -> Optional[PromotionCampaign]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"SELECT {_COLUMNS} FROM promotion_campaigns WHERE predecessor_campaign_id=%s",
                (int(predecessor_campaign_id),),
            )
            r = fetchone(cur)
            return _row_to_campaign(r) if r else None

    def find_latest_automatic(self, *, trigger_employee_id: int, sub_type: CampaignSubType) -> Optional[PromotionCampaign]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM promotion_campaigns
                WHERE trigger_employee_id=%s AND sub_type=%s
                ORDER BY campaign_id DESC
                LIMIT 1
                """,
                (int(trigger_employee_id), sub_type.value),
            )
            r = fetchone(cur)
            return _row_to_campaign(r) if r else None

    def list(self, *, status: Optional[CampaignStatus] = None, limit: int = 200) -> Sequence[PromotionCampaign]:
        sql = f"SELECT {_COLUMNS} FROM promotion_campaigns"
        params: list[object] = []
        if status is not None:
            sql += " WHERE status=%s"
            params.append(status.value)
        sql += " ORDER BY priority DESC, start_time DESC, campaign_id DESC LIMIT %s"
        params.append(int(limit))
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(sql, tuple(params))
            return [_row_to_campaign(r) for r in fetchall(cur)]

    def list_due_for_activation(self, *, now: datetime) -> Sequence[PromotionCampaign]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM promotion_campaigns
                WHERE status=%s AND start_time<=%s AND end_time>%s
                ORDER BY start_time ASC, campaign_id ASC
                """,
                (CampaignStatus.DRAFT.value, now, now),
            )
            return [_row_to_campaign(r) for r in fetchall(cur)]

    def list_lapsed_drafts(self, *, now: datetime) -> Sequence[PromotionCampaign]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM promotion_campaigns
                WHERE status=%s AND end_time<=%s
                ORDER BY end_time ASC, campaign_id ASC
                """,
                (CampaignStatus.DRAFT.value, now),
            )
            return [_row_to_campaign(r) for r in fetchall(cur)]

    def list_due_for_resolution(self, *, now: datetime) -> Sequence[PromotionCampaign]:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                f"""
                SELECT {_COLUMNS} FROM promotion_campaigns
                WHERE (status=%s AND end_time<=%s) OR status=%s
                ORDER BY end_time ASC, campaign_id ASC
                """,
                (CampaignStatus.ACTIVE.value, now, CampaignStatus.CLOSING.value),
            )
            return [_row_to_campaign(r) for r in fetchall(cur)]

    def transition(
        self,
        *,
        campaign_id: int,
        from_statuses: Sequence[CampaignStatus],
        to_status: CampaignStatus,
        now: datetime,
    ) -> bool:
        placeholders = ",".join(["%s"] * len(from_statuses))
        closed_at = now if to_status in {CampaignStatus.CLOSED, CampaignStatus.CANCELLED} else None
        with db_cursor(self._conn_factory) as (_, cur):
            try:
                cur.execute(
                    f"""
                    UPDATE promotion_campaigns
                    SET status=%s, closed_at=COALESCE(%s, closed_at)
                    WHERE campaign_id=%s AND status IN ({placeholders})
                    """,
                    tuple([to_status.value, closed_at, int(campaign_id)] + [s.value for s in from_statuses]),
                )
            except mysql.connector.IntegrityError as e:
                # Activating would give the trigger employee a second active campaign.
                if is_duplicate_key(e):
                    return False
                raise
            return cur.rowcount > 0

    def begin_closing(self, *, campaign_id: int, now: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            # Waits for in-flight vote transactions holding the shared row lock.
            cur.execute(
                """
                UPDATE promotion_campaigns
                SET status=%s
                WHERE campaign_id=%s AND status=%s AND end_time<=%s
                """,
                (CampaignStatus.CLOSING.value, int(campaign_id), CampaignStatus.ACTIVE.value, now),
            )
            return cur.rowcount > 0

    def complete_closing(
        self,
        *,
        campaign_id: int,
        outcome: CampaignOutcome,
        results: dict,
        total_votes: int,
        total_voters: int,
        now: datetime,
    ) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE promotion_campaigns
                SET status=%s, outcome=%s, results=%s, total_votes=%s, total_voters=%s, closed_at=%s
                WHERE campaign_id=%s AND status=%s
                """,
                (
                    CampaignStatus.CLOSED.value,
                    outcome.value,
                    to_json(results),
                    int(total_votes),
                    int(total_voters),
                    now,
                    int(campaign_id),
                    CampaignStatus.CLOSING.value,
                ),
            )
            return cur.rowcount > 0

    def close(self, *, campaign_id: int, now: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE promotion_campaigns
                SET status=%s, closed_at=%s
                WHERE campaign_id=%s AND status=%s AND end_time<=%s
                """,
                (CampaignStatus.CLOSED.value, now, int(campaign_id), CampaignStatus.ACTIVE.value, now),
            )
            return cur.rowcount > 0

    def update_end_time(self, *, campaign_id: int, end_time: datetime) -> bool:
        with db_cursor(self._conn_factory) as (_, cur):
            cur.execute(
                """
                UPDATE promotion_campaigns
                SET end_time=%s
                WHERE campaign_id=%s AND status=%s AND start_time<%s
                """,
                (end_time, int(campaign_id), CampaignStatus.ACTIVE.value, end_time),
            )
            return cur.rowcount > 0
