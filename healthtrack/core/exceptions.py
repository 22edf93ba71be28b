"""
Error taxonomy for daily activity writes and monthly rollup maintenance.

InvalidInput, NotFound and Unauthenticated describe a bad request and are shown
to the caller as-is. StorageFailure (and ConcurrentModification, which the
aggregator retries before giving up) are infrastructure problems; the API maps
them to a generic retryable error and only the logs carry the detail.
"""


class HealthTrackError(Exception):
    """Base class for all service errors"""

    def __init__(self, message: str = ""):
        super().__init__(message)
        self.message = message


class InvalidInput(HealthTrackError):
    """Malformed or missing required fields (date, score payload)"""


class NotFound(HealthTrackError):
    """The targeted daily record (or rollup) does not exist"""


class Unauthenticated(HealthTrackError):
    """No identified user on a request that needs one"""


class StorageFailure(HealthTrackError):
    """Persistence I/O failed during a daily write or a rollup read-modify-write"""


class ConcurrentModification(StorageFailure):
    """A competing writer changed the rollup between our read and our write"""

    def __init__(self, user_id: str, month: str, expected_version: int):
        super().__init__(
            f"Rollup {user_id}/{month} changed concurrently (expected version {expected_version})"
        )
        self.user_id = user_id
        self.month = month
        self.expected_version = expected_version
