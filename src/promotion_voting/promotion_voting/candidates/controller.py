from __future__ import annotations

from flask import Flask

from ..common.datetime_utils import now_local
from ..common.http import admin_required, api_view, current_actor, json_body, ok
from ..container import Container
from ..core.exceptions import NotFoundError, ValidationError
from .model import CandidateProfile


def _string_list(value, field_name: str) -> list[str]:
    if value is None or value == "":
        return []
    if isinstance(value, str):
        return [v.strip() for v in value.split(",") if v.strip()]
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    raise ValidationError(f"{field_name} must be a list of strings")


def register(app: Flask, container: Container) -> None:
    registry = container.candidate_registry

    @app.route(
        "/api/admin/campaigns/<int:campaign_id>/candidates", methods=["POST"], endpoint="api_admin_register_candidate"
    )
    @admin_required
    @api_view
    def admin_register_candidate(campaign_id: int):
        data = json_body()
        try:
            employee_id = int(data.get("employee_id"))
        except (TypeError, ValueError):
            raise ValidationError("employee_id must be an integer")

        employee = container.directory.get_profile(employee_id)
        if not employee:
            raise NotFoundError(f"Employee {employee_id} does not exist")

        profile = CandidateProfile.from_employee(
            employee,
            today=now_local().date(),
            statement=(data.get("statement") or "").strip() or None,
            qualifications=_string_list(data.get("qualifications"), "qualifications"),
            achievements=_string_list(data.get("achievements"), "achievements"),
        )
        candidate = registry.register_candidate(campaign_id, employee_id, profile, nominated_by=current_actor())
        return ok(candidate.to_full_dict(), 201)

    @app.route(
        "/api/admin/candidates/<int:candidate_id>/<action>", methods=["POST"], endpoint="api_admin_candidate_action"
    )
    @admin_required
    @api_view
    def admin_candidate_action(candidate_id: int, action: str):
        actions = {
            "approve": registry.approve,
            "reject": registry.reject,
            "withdraw": registry.withdraw,
        }
        handler = actions.get(action)
        if handler is None:
            raise NotFoundError(f"Unknown candidate action: {action}")
        candidate = handler(candidate_id, actor=current_actor())
        return ok(candidate.to_full_dict())
