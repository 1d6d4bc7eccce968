from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .appeals.mysql_appeal_repository import MySQLAppealRepository
from .appeals.repository import AppealRepository
from .appeals.service import AppealService
from .automation.service import AutoVotingService
from .campaigns.repository import CampaignRepository
from .campaigns.mysql_campaign_repository import MySQLCampaignRepository
from .campaigns.service import CampaignManager
from .candidates.mysql_candidate_repository import MySQLCandidateRepository
from .candidates.repository import CandidateRepository
from .candidates.service import CandidateRegistry
from .core.constants import (
    DEFAULT_LATE_COUNT_THRESHOLD,
    DEFAULT_LATE_MINUTES_THRESHOLD,
    DEFAULT_MAX_PUNISHMENT_ROUNDS,
)
from .database.connection import DBConfig, DatabaseConnection
from .employees.directory import EmployeeDirectory
from .employees.mysql_employee_directory import MySQLEmployeeDirectory
from .notifications.notifier import LoggingNotifier, Notifier
from .reports.service import CampaignReportService
from .results.service import ResultResolver
from .statistics.mysql_statistics_repository import MySQLStatisticsRepository
from .statistics.repository import StatisticsRepository
from .statistics.service import AttendanceStatisticsTracker
from .voting.fingerprint import VoterFingerprinter
from .voting.mysql_vote_repository import MySQLVoteRepository
from .voting.repository import VoteRepository
from .voting.service import AnonymizedVotingLedger


@dataclass(frozen=True)
class Container:
    conn: Optional[DatabaseConnection]

    statistics_repo: StatisticsRepository
    campaigns_repo: CampaignRepository
    candidates_repo: CandidateRepository
    votes_repo: VoteRepository
    appeals_repo: AppealRepository
    directory: EmployeeDirectory
    notifier: Notifier

    statistics_tracker: AttendanceStatisticsTracker
    campaign_manager: CampaignManager
    candidate_registry: CandidateRegistry
    voting_ledger: AnonymizedVotingLedger
    result_resolver: ResultResolver
    auto_voting_service: AutoVotingService
    report_service: CampaignReportService
    appeal_service: AppealService

    show_live_results: bool = False


def assemble(
    *,
    statistics_repo: StatisticsRepository,
    campaigns_repo: CampaignRepository,
    candidates_repo: CandidateRepository,
    votes_repo: VoteRepository,
    appeals_repo: AppealRepository,
    directory: EmployeeDirectory,
    fingerprint_salt: str,
    notifier: Optional[Notifier] = None,
    conn: Optional[DatabaseConnection] = None,
    late_count_threshold: int = DEFAULT_LATE_COUNT_THRESHOLD,
    late_minutes_threshold: int = DEFAULT_LATE_MINUTES_THRESHOLD,
    max_punishment_rounds: int = DEFAULT_MAX_PUNISHMENT_ROUNDS,
    show_live_results: bool = False,
) -> Container:
    """Wire the services over whatever repositories are given (MySQL in production, fakes in tests)."""
    notifier = notifier or LoggingNotifier()

    tracker = AttendanceStatisticsTracker(
        statistics_repo,
        late_count_threshold=late_count_threshold,
        late_minutes_threshold=late_minutes_threshold,
    )
    registry = CandidateRegistry(candidates_repo, campaigns_repo)
    manager = CampaignManager(
        campaigns_repo,
        registry,
        tracker,
        notifier=notifier,
        max_punishment_rounds=max_punishment_rounds,
    )
    ledger = AnonymizedVotingLedger(votes_repo, manager, registry, VoterFingerprinter(fingerprint_salt))
    resolver = ResultResolver(manager, registry, ledger, notifier=notifier)
    auto_voting = AutoVotingService(tracker, manager, resolver, directory, notifier=notifier)
    reports = CampaignReportService(manager, registry)
    appeals = AppealService(appeals_repo, manager, notifier=notifier)

    return Container(
        conn=conn,
        statistics_repo=statistics_repo,
        campaigns_repo=campaigns_repo,
        candidates_repo=candidates_repo,
        votes_repo=votes_repo,
        appeals_repo=appeals_repo,
        directory=directory,
        notifier=notifier,
        statistics_tracker=tracker,
        campaign_manager=manager,
        candidate_registry=registry,
        voting_ledger=ledger,
        result_resolver=resolver,
        auto_voting_service=auto_voting,
        report_service=reports,
        appeal_service=appeals,
        show_live_results=bool(show_live_results),
    )


def build_container(
    *,
    db_config: dict,
    fingerprint_salt: str,
    notifier: Optional[Notifier] = None,
    late_count_threshold: int = DEFAULT_LATE_COUNT_THRESHOLD,
    late_minutes_threshold: int = DEFAULT_LATE_MINUTES_THRESHOLD,
    max_punishment_rounds: int = DEFAULT_MAX_PUNISHMENT_ROUNDS,
    show_live_results: bool = False,
) -> Container:
    config = DBConfig(
        host=str(db_config["host"]),
        port=int(db_config.get("port", 3306)),
        user=str(db_config["user"]),
        password=str(db_config["password"]),
        database=str(db_config["database"]),
    )
    conn = DatabaseConnection.get_instance(config)

    return assemble(
        statistics_repo=MySQLStatisticsRepository(conn),
        campaigns_repo=MySQLCampaignRepository(conn),
        candidates_repo=MySQLCandidateRepository(conn),
        votes_repo=MySQLVoteRepository(conn),
        appeals_repo=MySQLAppealRepository(conn),
        directory=MySQLEmployeeDirectory(conn),
        fingerprint_salt=fingerprint_salt,
        notifier=notifier,
        conn=conn,
        late_count_threshold=late_count_threshold,
        late_minutes_threshold=late_minutes_threshold,
        max_punishment_rounds=max_punishment_rounds,
        show_live_results=show_live_results,
    )
