from __future__ import annotations

import io
from dataclasses import dataclass

import pandas as pd

from ..campaigns.service import CampaignManager
from ..candidates.service import CandidateRegistry
from ..common.datetime_utils import now_local

EXCEL_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(frozen=True)
class ReportData:
    rows: list[dict]
    summary: list[dict]


class CampaignReportService:
    def __init__(self, campaigns: CampaignManager, registry: CandidateRegistry):
        self._campaigns = campaigns
        self._registry = registry

    def build_campaign_report(self, campaign_id: int) -> ReportData:
        campaign = self._campaigns.get(campaign_id)
        rows = [
            {
                "anonymous_id": c.anonymous_id,
                "candidate_name": c.profile.candidate_name,
                "current_position": c.profile.current_position,
                "current_store": c.profile.current_store or "-",
                "years_of_service": c.profile.years_of_service,
                "status": c.status.value,
                "vote_count": c.vote_count,
                "vote_percentage": c.vote_percentage,
                "ranking": c.ranking if c.ranking is not None else "-",
            }
            for c in sorted(
                self._registry.list_for_campaign(campaign.campaign_id),
                key=lambda c: (c.ranking is None, c.ranking or 0, c.anonymous_seq),
            )
        ]
        summary = [
            {"field": "campaign", "value": campaign.name},
            {"field": "target_role", "value": campaign.target_role},
            {"field": "sub_type", "value": campaign.sub_type.value},
            {"field": "status", "value": campaign.status.value},
            {"field": "start_time", "value": campaign.start_time.strftime("%Y-%m-%d %H:%M:%S")},
            {"field": "end_time", "value": campaign.end_time.strftime("%Y-%m-%d %H:%M:%S")},
            {"field": "pass_threshold", "value": campaign.pass_threshold},
            {"field": "outcome", "value": campaign.outcome.value if campaign.outcome else "-"},
            {"field": "total_votes", "value": campaign.total_votes},
            {"field": "total_voters", "value": campaign.total_voters},
            {"field": "exported_at", "value": now_local().strftime("%Y-%m-%d %H:%M:%S")},
        ]
        return ReportData(rows=rows, summary=summary)

    def export_excel(self, campaign_id: int) -> io.BytesIO:
        """Workbook in memory with a Candidates and a Summary sheet."""
        report = self.build_campaign_report(campaign_id)
        output = io.BytesIO()
        with pd.ExcelWriter(output, engine="openpyxl") as writer:
            pd.DataFrame(report.rows, columns=[
                "anonymous_id",
                "candidate_name",
                "current_position",
                "current_store",
                "years_of_service",
                "status",
                "vote_count",
                "vote_percentage",
                "ranking",
            ]).to_excel(writer, index=False, sheet_name="Candidates")
            pd.DataFrame(report.summary, columns=["field", "value"]).to_excel(writer, index=False, sheet_name="Summary")
        output.seek(0)
        return output
