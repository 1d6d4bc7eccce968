from __future__ import annotations

from flask import Flask

from ..common.http import admin_required, api_view, current_employee_id, json_body, login_required, ok
from ..container import Container
from ..core.exceptions import ValidationError


def register(app: Flask, container: Container) -> None:
    ledger = container.voting_ledger

    @app.route("/api/campaigns/<int:campaign_id>/votes", methods=["POST"], endpoint="api_cast_vote")
    @login_required
    @api_view
    def cast_vote(campaign_id: int):
        data = json_body()
        candidate = data.get("candidate")
        if candidate is None or str(candidate).strip() == "":
            raise ValidationError("candidate is required")
        receipt = ledger.cast_or_update_vote(
            campaign_id,
            current_employee_id(),
            candidate,
            decision=data.get("decision"),
        )
        return ok(receipt.to_dict(), 201 if receipt.created else 200)

    @app.route("/api/campaigns/<int:campaign_id>/my-vote", methods=["GET"], endpoint="api_my_vote")
    @login_required
    @api_view
    def my_vote(campaign_id: int):
        receipt = ledger.get_my_vote(campaign_id, current_employee_id())
        return ok(receipt.to_dict() if receipt else None)

    @app.route(
        "/api/admin/campaigns/<int:campaign_id>/integrity", methods=["GET"], endpoint="api_admin_vote_integrity"
    )
    @admin_required
    @api_view
    def vote_integrity(campaign_id: int):
        return ok(ledger.verify_integrity(campaign_id).to_dict())

    @app.route(
        "/api/admin/campaigns/<int:campaign_id>/modification-history",
        methods=["GET"],
        endpoint="api_admin_vote_modifications",
    )
    @admin_required
    @api_view
    def modification_history(campaign_id: int):
        return ok([m.to_dict() for m in ledger.modification_history(campaign_id)])
