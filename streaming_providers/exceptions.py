from typing import Optional

from db.enums import ErrorKind
from db.schemas import ResolutionOutcome
from utils.validation_helper import InvalidInput

NOT_ENTITLED_PHRASES = (
    "invalid token",
    "permission denied",
    "premium account",
    "premium required",
    "need premium",
    "not premium",
    "access denied",
    "not logged in",
    "unauthorized",
    "forbidden",
    "expired api key",
)
DOWNLOAD_LIMIT_PHRASES = (
    "active download limit",
    "active_limit",
    "torrent limit",
    "torrents limit",
    "daily limit",
)
RATE_LIMIT_PHRASES = ("too many requests", "rate limit", "rate-limit", "ratelimit")
NOT_CACHED_PHRASES = ("not cached", "not in cache", "no cached")
PERMANENT_ERROR_PHRASES = (
    "infringing",
    "invalid magnet",
    "not a video",
    "invalid stream url",
)


def classify_error(message: Optional[str], status_code: Optional[int] = None) -> ErrorKind:
    """Map a provider failure to an ErrorKind by status code, then by message phrasing."""
    message = (message or "").lower()
    if status_code in (401, 403) or any(p in message for p in NOT_ENTITLED_PHRASES):
        return ErrorKind.NOT_ENTITLED
    if any(p in message for p in DOWNLOAD_LIMIT_PHRASES):
        return ErrorKind.DOWNLOAD_LIMIT_REACHED
    if status_code == 429 or any(p in message for p in RATE_LIMIT_PHRASES):
        return ErrorKind.RATE_LIMITED
    if any(p in message for p in NOT_CACHED_PHRASES):
        return ErrorKind.NOT_CACHED
    if any(p in message for p in PERMANENT_ERROR_PHRASES):
        return ErrorKind.PERMANENT_ERROR
    return ErrorKind.TRANSIENT_ERROR


class ProviderException(Exception):
    def __init__(
        self,
        message,
        video_file_name,
        error_kind: Optional[ErrorKind] = None,
        status_code: Optional[int] = None,
    ):
        self.message = message
        self.video_file_name = video_file_name
        self.status_code = status_code
        self.error_kind = error_kind or classify_error(message, status_code)
        super().__init__(self.message)


class AvailabilityDisabled(ProviderException):
    """The provider's cache check endpoint is switched off or unusable."""

    def __init__(self, message: str = "Availability check is disabled"):
        super().__init__(message, "api_error.mp4", ErrorKind.TRANSIENT_ERROR)


class InvalidMagnet(InvalidInput):
    pass


class AllProvidersFailed(Exception):
    def __init__(self, outcomes: list[ResolutionOutcome]):
        self.outcomes = outcomes
        summary = ", ".join(
            f"{outcome.provider_id}={outcome.status}" for outcome in outcomes
        )
        super().__init__(f"All debrid providers failed: {summary or 'no providers'}")

    @property
    def reasons(self) -> dict[str, str]:
        return {
            outcome.provider_id: outcome.reason or str(outcome.status)
            for outcome in self.outcomes
        }
