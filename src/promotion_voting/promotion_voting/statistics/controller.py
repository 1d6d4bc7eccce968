from __future__ import annotations

from flask import Flask, request

from ..common.datetime_utils import StatsPeriod, now_local, parse_iso_date
from ..common.http import admin_required, api_view, json_body, ok
from ..container import Container
from ..core.exceptions import ValidationError


def _period_from(args) -> StatsPeriod:
    today = now_local().date()
    try:
        return StatsPeriod(int(args.get("year") or today.year), int(args.get("month") or today.month))
    except (TypeError, ValueError):
        raise ValidationError("year/month are invalid")


def _stats_to_dict(s) -> dict:
    return {
        "employee_id": s.employee_id,
        "period": str(s.period),
        "late_count": s.late_count,
        "late_minutes_total": s.late_minutes_total,
        "state": s.state.value,
        "is_punishment_triggered": s.is_punishment_triggered,
        "punishment_count": s.punishment_count,
        "late_records": [e.to_dict() for e in s.late_records],
    }


def register(app: Flask, container: Container) -> None:
    @app.route("/api/attendance/late-events", methods=["POST"], endpoint="api_late_event")
    @admin_required
    @api_view
    def record_late_event():
        data = json_body()
        try:
            employee_id = int(data.get("employee_id"))
            event_date = parse_iso_date(str(data.get("date") or now_local().date().isoformat()))
        except (TypeError, ValueError):
            raise ValidationError("employee_id and date (YYYY-MM-DD) are required")

        handled = container.auto_voting_service.handle_late_event(
            employee_id,
            event_date=event_date,
            minutes=data.get("minutes"),
            reason=str(data.get("reason") or ""),
        )
        return ok(handled.to_dict(), 201)

    @app.route("/api/admin/statistics", methods=["GET"], endpoint="api_admin_statistics")
    @admin_required
    @api_view
    def list_statistics():
        period = _period_from(request.args)
        return ok([_stats_to_dict(s) for s in container.statistics_tracker.list_period(period)])

    @app.route("/api/admin/statistics/reset", methods=["POST"], endpoint="api_admin_statistics_reset")
    @admin_required
    @api_view
    def reset_statistics():
        data = json_body()
        period = _period_from(data)
        if data.get("employee_id") not in (None, ""):
            try:
                employee_id = int(data["employee_id"])
            except (TypeError, ValueError):
                raise ValidationError("employee_id must be an integer")
            container.statistics_tracker.reset_monthly_stats(employee_id, period)
            return ok({"period": str(period), "rows": 1})
        return ok({"period": str(period), "rows": container.auto_voting_service.reset_monthly_statistics(period)})
