from enum import IntEnum, StrEnum


# Enums
class MediaType(StrEnum):
    MOVIE = "movie"
    SERIES = "series"


class Quality(IntEnum):
    UHD = 2160
    FHD = 1080
    HD = 720
    SD = 480
    UNKNOWN = 0


class ResolutionStatus(StrEnum):
    READY = "ready"
    NOT_CACHED = "not_cached"
    NOT_ENTITLED = "not_entitled"
    RATE_LIMITED = "rate_limited"
    TRANSIENT_ERROR = "transient_error"
    PERMANENT_ERROR = "permanent_error"


class ErrorKind(StrEnum):
    NOT_ENTITLED = "not_entitled"
    NOT_CACHED = "not_cached"
    RATE_LIMITED = "rate_limited"
    DOWNLOAD_LIMIT_REACHED = "download_limit_reached"
    PERMANENT_ERROR = "permanent_error"
    TRANSIENT_ERROR = "transient_error"

    @property
    def resolution_status(self) -> ResolutionStatus:
        """Download limits are reported to callers as rate limiting."""
        if self is ErrorKind.DOWNLOAD_LIMIT_REACHED:
            return ResolutionStatus.RATE_LIMITED
        return ResolutionStatus(self.value)
