from __future__ import annotations

from flask import Flask, request, send_file

from ..common.datetime_utils import now_local
from ..common.http import (
    admin_required,
    api_view,
    current_actor,
    json_body,
    login_required,
    ok,
    parse_bool,
    parse_datetime_field,
)
from ..container import Container
from ..core.constants import DEFAULT_MAX_MODIFICATIONS, DEFAULT_PASS_THRESHOLD
from ..core.enums import CampaignStatus, CandidateStatus
from ..core.exceptions import ValidationError
from ..reports.service import EXCEL_MIMETYPE
from .model import CampaignWindow


def register(app: Flask, container: Container) -> None:
    manager = container.campaign_manager
    registry = container.candidate_registry

    def _ballot(campaign) -> list[dict]:
        if campaign.status == CampaignStatus.CLOSED:
            return registry.anonymous_view(campaign.campaign_id, include_tally=True)
        if campaign.show_live_results or container.show_live_results:
            tally = container.voting_ledger.tally(campaign.campaign_id)
            ranked = registry.preview_tallies(
                campaign.campaign_id, agree_counts=tally.agree_counts, total_voters=tally.total_voters
            )
            return [
                c.to_anonymous_dict(include_tally=True)
                for c in ranked.candidates
                if c.status in {CandidateStatus.APPROVED, CandidateStatus.ELECTED}
            ]
        return registry.anonymous_view(campaign.campaign_id, include_tally=False)

    @app.route("/api/campaigns", methods=["GET"], endpoint="api_campaigns")
    @login_required
    @api_view
    def list_open_campaigns():
        now = now_local()
        return ok([c.to_public_dict(now) for c in manager.list_open_for_voting(now=now)])

    @app.route("/api/campaigns/<int:campaign_id>", methods=["GET"], endpoint="api_campaign_detail")
    @login_required
    @api_view
    def campaign_detail(campaign_id: int):
        campaign = manager.get(campaign_id)
        if campaign.status in {CampaignStatus.DRAFT, CampaignStatus.CANCELLED}:
            raise ValidationError("Campaign is not open")
        data = campaign.to_public_dict(now_local())
        data["candidates"] = _ballot(campaign)
        return ok(data)

    @app.route("/api/admin/campaigns", methods=["GET"], endpoint="api_admin_campaigns")
    @admin_required
    @api_view
    def admin_list_campaigns():
        raw_status = (request.args.get("status") or "").strip()
        try:
            status = CampaignStatus(raw_status) if raw_status else None
        except ValueError:
            raise ValidationError(f"Unknown campaign status: {raw_status}")
        now = now_local()
        return ok([c.to_admin_dict(now) for c in manager.list_campaigns(status=status)])

    @app.route("/api/admin/campaigns", methods=["POST"], endpoint="api_admin_open_campaign")
    @admin_required
    @api_view
    def admin_open_campaign():
        data = json_body()
        window = CampaignWindow(
            start=parse_datetime_field(data, "start_time"),
            end=parse_datetime_field(data, "end_time"),
        )
        campaign = manager.open_manual_campaign(
            name=str(data.get("name") or ""),
            target_role=str(data.get("target_role") or ""),
            window=window,
            created_by=current_actor(),
            pass_threshold=data.get("pass_threshold", DEFAULT_PASS_THRESHOLD),
            max_modifications=data.get("max_modifications", DEFAULT_MAX_MODIFICATIONS),
            can_modify_votes=parse_bool(data.get("can_modify_votes"), default=True),
            description=data.get("description"),
            show_live_results=parse_bool(data.get("show_live_results")),
            priority=int(data.get("priority") or 0),
        )
        return ok(campaign.to_admin_dict(now_local()), 201)

    @app.route("/api/admin/campaigns/<int:campaign_id>", methods=["GET"], endpoint="api_admin_campaign_detail")
    @admin_required
    @api_view
    def admin_campaign_detail(campaign_id: int):
        campaign = manager.get(campaign_id)
        data = campaign.to_admin_dict(now_local())
        data["candidates"] = registry.full_view(campaign.campaign_id)
        return ok(data)

    @app.route("/api/admin/campaigns/<int:campaign_id>/cancel", methods=["POST"], endpoint="api_admin_cancel_campaign")
    @admin_required
    @api_view
    def admin_cancel_campaign(campaign_id: int):
        campaign = manager.cancel_campaign(campaign_id, actor=current_actor())
        return ok(campaign.to_admin_dict(now_local()))

    @app.route(
        "/api/admin/campaigns/<int:campaign_id>/force-close", methods=["POST"], endpoint="api_admin_force_close"
    )
    @admin_required
    @api_view
    def admin_force_close(campaign_id: int):
        now = now_local()
        campaign = manager.get(campaign_id)
        if campaign.status == CampaignStatus.ACTIVE:
            manager.end_early(campaign_id, now=now)
        result = container.result_resolver.resolve(campaign_id, now=now)
        return ok(result.to_dict())

    @app.route("/api/admin/campaigns/<int:campaign_id>/export", methods=["GET"], endpoint="api_admin_export_campaign")
    @admin_required
    @api_view
    def admin_export_campaign(campaign_id: int):
        output = container.report_service.export_excel(campaign_id)
        return send_file(
            output,
            download_name=f"campaign_{campaign_id}_results.xlsx",
            as_attachment=True,
            mimetype=EXCEL_MIMETYPE,
        )
