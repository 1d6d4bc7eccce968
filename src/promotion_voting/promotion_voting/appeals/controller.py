from __future__ import annotations

from flask import Flask, request

from ..common.datetime_utils import now_local
from ..common.http import (
    admin_required,
    api_view,
    current_actor,
    current_employee_id,
    json_body,
    login_required,
    ok,
    parse_datetime_field,
)
from ..container import Container
from ..core.enums import AppealStatus
from ..core.exceptions import ValidationError
from .service import parse_appeal_outcome, parse_appeal_type


def _optional_int(value, name: str):
    if value in (None, ""):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer")


def _int_list(value, name: str) -> list[int]:
    if value in (None, ""):
        return []
    if not isinstance(value, list):
        raise ValidationError(f"{name} must be a list")
    try:
        return [int(v) for v in value]
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must hold integers")


def _status_from(value):
    if value in (None, ""):
        return None
    try:
        return AppealStatus(str(value).strip().lower())
    except ValueError:
        raise ValidationError(f"Unknown appeal status: {value}")


def register(app: Flask, container: Container) -> None:
    service = container.appeal_service

    @app.route("/api/campaigns/<int:campaign_id>/appeals", methods=["POST"], endpoint="api_appeal_submit")
    @login_required
    @api_view
    def submit_appeal(campaign_id: int):
        data = json_body()
        evidence = data.get("evidence") or []
        if not isinstance(evidence, list):
            raise ValidationError("evidence must be a list")
        appeal = service.submit_appeal(
            campaign_id,
            current_employee_id(),
            parse_appeal_type(data.get("appeal_type")),
            str(data.get("reason") or ""),
            target_employee_id=_optional_int(data.get("target_employee_id"), "target_employee_id"),
            evidence=[str(e) for e in evidence],
            supporting_employee_ids=_int_list(data.get("supporting_employee_ids"), "supporting_employee_ids"),
        )
        return ok(appeal.to_dict(now_local()), 201)

    @app.route(
        "/api/campaigns/<int:campaign_id>/appeals/eligibility",
        methods=["POST"],
        endpoint="api_appeal_eligibility",
    )
    @login_required
    @api_view
    def appeal_eligibility(campaign_id: int):
        data = json_body()
        result = service.check_eligibility(
            campaign_id, current_employee_id(), parse_appeal_type(data.get("appeal_type"))
        )
        return ok(result.to_dict())

    @app.route("/api/my/appeals", methods=["GET"], endpoint="api_my_appeals")
    @login_required
    @api_view
    def my_appeals():
        moment = now_local()
        appeals = service.list_appeals(
            status=_status_from(request.args.get("status")), appellant_id=current_employee_id()
        )
        return ok([a.to_dict(moment) for a in appeals])

    @app.route("/api/appeals/<int:appeal_id>/withdraw", methods=["POST"], endpoint="api_appeal_withdraw")
    @login_required
    @api_view
    def withdraw_appeal(appeal_id: int):
        data = json_body()
        appeal = service.withdraw(appeal_id, current_employee_id(), reason=data.get("reason"))
        return ok(appeal.to_dict(now_local()))

    @app.route("/api/admin/appeals", methods=["GET"], endpoint="api_admin_appeals")
    @admin_required
    @api_view
    def list_appeals():
        moment = now_local()
        appeals = service.list_appeals(
            status=_status_from(request.args.get("status")),
            campaign_id=_optional_int(request.args.get("campaign_id"), "campaign_id"),
        )
        return ok([a.to_dict(moment) for a in appeals])

    @app.route("/api/admin/appeals/pending", methods=["GET"], endpoint="api_admin_appeals_pending")
    @admin_required
    @api_view
    def pending_appeals():
        moment = now_local()
        return ok([a.to_dict(moment) for a in service.list_pending()])

    @app.route("/api/admin/appeals/overdue", methods=["GET"], endpoint="api_admin_appeals_overdue")
    @admin_required
    @api_view
    def overdue_appeals():
        moment = now_local()
        return ok([a.to_dict(moment) for a in service.list_overdue(now=moment)])

    @app.route("/api/admin/appeals/statistics", methods=["GET"], endpoint="api_admin_appeals_statistics")
    @admin_required
    @api_view
    def appeal_statistics():
        args = request.args
        since = parse_datetime_field(args, "since") if args.get("since") else None
        until = parse_datetime_field(args, "until") if args.get("until") else None
        return ok(service.statistics(since=since, until=until).to_dict())

    @app.route("/api/admin/appeals/<int:appeal_id>", methods=["GET"], endpoint="api_admin_appeal")
    @admin_required
    @api_view
    def get_appeal(appeal_id: int):
        return ok(service.get(appeal_id).to_dict(now_local()))

    @app.route(
        "/api/admin/appeals/<int:appeal_id>/start-review",
        methods=["POST"],
        endpoint="api_admin_appeal_start_review",
    )
    @admin_required
    @api_view
    def start_review(appeal_id: int):
        return ok(service.start_review(appeal_id, actor=current_actor()).to_dict(now_local()))

    @app.route("/api/admin/appeals/<int:appeal_id>/review", methods=["POST"], endpoint="api_admin_appeal_review")
    @admin_required
    @api_view
    def review_appeal(appeal_id: int):
        data = json_body()
        decision = _status_from(data.get("decision"))
        if decision is None:
            raise ValidationError("decision is required")
        appeal = service.review(
            appeal_id,
            decision,
            actor=current_actor(),
            notes=(str(data["notes"]).strip() or None) if data.get("notes") else None,
            outcome=parse_appeal_outcome(data.get("outcome")),
        )
        return ok(appeal.to_dict(now_local()))
