"""
Centralized thresholds and point constants -- single source of truth.

Duplicate detection, the review lifecycle and the notification trail import
these constants instead of hard-coding magic numbers.

The values serve as defaults; ``settings.ReportingSettings.from_env()`` can
override them at process start.
"""

# ---------------------------------------------------------------------------
# Duplicate candidate window
# ---------------------------------------------------------------------------

# +/- minutes around the incident time when looking for candidates
DUPLICATE_TIME_WINDOW_MINUTES = 30

# +/- degrees of lat/lon for the bounding-box prefilter (~100m)
DUPLICATE_BBOX_DELTA_DEG = 0.001

# Max candidates fetched per submission
DUPLICATE_CANDIDATE_LIMIT = 5

# Score must be strictly greater than this to mark a duplicate
DUPLICATE_CONFIDENCE_THRESHOLD = 0.7

# ---------------------------------------------------------------------------
# Confidence scoring tiers (points out of 100)
# ---------------------------------------------------------------------------

LOCATION_NEAR_METERS = 50
LOCATION_FAR_METERS = 100
LOCATION_NEAR_POINTS = 50
LOCATION_FAR_POINTS = 25

TIME_NEAR_MINUTES = 5
TIME_FAR_MINUTES = 15
TIME_NEAR_POINTS = 30
TIME_FAR_POINTS = 15

VEHICLE_MATCH_POINTS = 20

# ---------------------------------------------------------------------------
# Points
# ---------------------------------------------------------------------------

POINTS_PER_APPROVED_REPORT = 100

BONUS_POINTS_FIRST_REPORTER = 50

# ---------------------------------------------------------------------------
# Submission limits and notifications
# ---------------------------------------------------------------------------

MAX_REPORTS_PER_DAY = 50

NOTIFICATION_TTL_DAYS = 7

NOTIFICATION_PAGE_SIZE = 20

RECENT_TRANSACTIONS_LIMIT = 10
