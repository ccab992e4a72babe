"""
Error taxonomy for the reporting core.

Every error carries the HTTP status the API layer should answer with.
Errors are raised inside a storage transaction, so the transaction is rolled
back and no partial state change is persisted.
"""


class ReportingError(Exception):
    """Base class for reporting core errors."""
    status_code: int = 400
    error_code: str = "reporting_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self):
        return f"{self.error_code}: {self.message}"


class ReportNotFoundError(ReportingError):
    status_code = 404
    error_code = "report_not_found"

    def __init__(self, report_id: int):
        super().__init__(f"Report {report_id} not found")
        self.report_id = report_id


class CitizenNotFoundError(ReportingError):
    status_code = 404
    error_code = "citizen_not_found"

    def __init__(self, citizen_id: str):
        super().__init__(f"Citizen {citizen_id} not found")
        self.citizen_id = citizen_id


class NotificationNotFoundError(ReportingError):
    status_code = 404
    error_code = "notification_not_found"

    def __init__(self, notification_id: int):
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


class InvalidTransitionError(ReportingError):
    status_code = 409
    error_code = "invalid_transition"

    def __init__(self, report_id: int, current: str, target: str):
        super().__init__(
            f"Report {report_id} cannot move from {current} to {target}"
        )
        self.report_id = report_id
        self.current = current
        self.target = target


class DailyLimitExceededError(ReportingError):
    status_code = 429
    error_code = "daily_limit_exceeded"

    def __init__(self, citizen_id: str, limit: int):
        super().__init__(f"Daily report limit of {limit} exceeded")
        self.citizen_id = citizen_id
        self.limit = limit


class InsufficientPointsError(ReportingError):
    status_code = 400
    error_code = "insufficient_points"

    def __init__(self, requested: int, available: int):
        super().__init__(
            f"Cannot redeem {requested} points, only {available} available"
        )
        self.requested = requested
        self.available = available
