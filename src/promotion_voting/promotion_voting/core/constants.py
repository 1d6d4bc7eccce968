"""Constants and defaults.

Note: Keep constants here to avoid magic numbers spread across code.
"""

# Punishment trigger: lateCount > N or lateMinutesTotal > M within one month.
DEFAULT_LATE_COUNT_THRESHOLD = 3
DEFAULT_LATE_MINUTES_THRESHOLD = 10
DEFAULT_LATE_REASON = "late check-in"

# Escalation cap for automatic campaign rounds (first round counts).
DEFAULT_MAX_PUNISHMENT_ROUNDS = 3

DEFAULT_MAX_MODIFICATIONS = 3
DEFAULT_PASS_THRESHOLD = 50.0

AUTO_DEMOTION_WINDOW_DAYS = 3
AUTO_DEMOTION_PASS_THRESHOLD = 30.0
AUTO_DEMOTION_BUFFER_DAYS = 0
AUTO_DEMOTION_PRIORITY = 10

AUTO_PROMOTION_WINDOW_DAYS = 5
AUTO_PROMOTION_PASS_THRESHOLD = 50.0
AUTO_PROMOTION_BUFFER_DAYS = 30
AUTO_PROMOTION_PRIORITY = 5
NEW_EMPLOYEE_PROMOTION_DAYS = 20

SYSTEM_ACTOR = "AUTO_SYSTEM"

ANONYMOUS_ID_PREFIX = "CANDIDATE_"
CANDIDATE_SEQUENCE_KEY = "candidate"

# Highest first.
POSITION_HIERARCHY = (
    "regional_manager",
    "store_manager",
    "assistant_manager",
    "staff",
    "trainee",
)
TRAINEE_POSITION = "trainee"
ACTIVE_EMPLOYEE_STATUS = "active"

# Appeals may be filed up to N days after a campaign's end time.
APPEAL_WINDOW_DAYS = 7
APPEAL_MONTHLY_LIMIT = 2
APPEAL_LIMIT_PERIOD_DAYS = 30
# Days an administrator has to settle an appeal, by appeal type.
APPEAL_RESOLUTION_DAYS = {
    "vote_manipulation": 1,
    "demotion_result": 2,
    "promotion_result": 3,
    "unfair_process": 5,
}
