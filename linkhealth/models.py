"""Data models for URL health checks and monitoring reports."""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType


class UrlType(str, Enum):
    """The three URL fields a record can carry, in check order.

    The value is the field name used by the upstream record source.
    """

    COMPONENT_SCREENSHOT = "Component_Screenshot_URL__c"
    HTML_SOURCE = "HTML_Source__c"
    SCREENSHOT = "Screenshot_URL__c"

    @property
    def label(self) -> str:
        """Human-readable name without the upstream field suffix."""
        return self.value.removesuffix("__c")


class Health(str, Enum):
    """Aggregate health of a record."""

    HEALTHY = "healthy"
    PARTIAL = "partial"
    BROKEN = "broken"


class CheckError(str, Enum):
    """Closed set of classified causes for an unhealthy check."""

    NOT_AVAILABLE = "NotAvailable"
    TOOL_MISSING = "ToolMissing"
    NETWORK_UNREACHABLE = "NetworkUnreachable"
    TIMEOUT = "Timeout"
    HTTP_ERROR = "HttpError"
    TRANSPORT_ERROR = "TransportError"
    MISSING_PARAMETERS = "MissingParameters"
    ARTIFACT_NOT_FOUND = "ArtifactNotFound"
    DOWNLOAD_INCOMPLETE = "DownloadIncomplete"
    EMPTY_ARTIFACT = "EmptyArtifact"
    AUTH_FAILED = "AuthFailed"
    AUTH_FAILED_AFTER_REFRESH = "AuthFailedAfterRefresh"
    TOOL_FAILED = "ToolFailed"
    UNEXPECTED_FAILURE = "UnexpectedFailure"
    ALL_RETRIES_FAILED = "AllRetriesFailed"


@dataclass(frozen=True)
class Record:
    """A record fetched from the record source.

    Attributes:
        id: Upstream record identifier.
        name: Display name.
        component_screenshot_url: Component screenshot URL, if any.
        html_source_url: HTML source URL, if any.
        screenshot_url: Screenshot URL, if any.
    """

    id: str
    name: str
    component_screenshot_url: str | None = None
    html_source_url: str | None = None
    screenshot_url: str | None = None

    def url_for(self, url_type: UrlType) -> str | None:
        """Return the trimmed URL for a field, or None if it is blank."""
        value = {
            UrlType.COMPONENT_SCREENSHOT: self.component_screenshot_url,
            UrlType.HTML_SOURCE: self.html_source_url,
            UrlType.SCREENSHOT: self.screenshot_url,
        }[url_type]
        if value is None:
            return None
        value = value.strip()
        return value or None

    @property
    def has_urls(self) -> bool:
        return any(self.url_for(url_type) for url_type in UrlType)


@dataclass(frozen=True)
class CheckOutcome:
    """Final outcome of checking one URL field, after retries.

    Attributes:
        url: URL that was checked, or an empty string if the field was absent.
        url_type: Which record field the URL came from.
        is_healthy: Whether the URL is reachable (and, for managed-store URLs,
            downloadable and non-empty).
        status_code: HTTP status code, or None when no response was received.
        error: Classified cause when unhealthy, None otherwise.
        error_message: Free text detail for the error, if any.
        response_time_ms: Time spent on the final attempt in milliseconds.
    """

    url: str
    url_type: UrlType
    is_healthy: bool
    status_code: int | None = None
    error: CheckError | None = None
    error_message: str | None = None
    response_time_ms: int | None = None

    @classmethod
    def not_available(cls, url_type: UrlType) -> "CheckOutcome":
        """Sentinel outcome for a field that is absent from the record."""
        return cls(
            url="",
            url_type=url_type,
            is_healthy=False,
            error=CheckError.NOT_AVAILABLE,
            error_message="URL not available in record",
            response_time_ms=0,
        )

    @property
    def is_available(self) -> bool:
        """True if a check was actually attempted for this field."""
        return self.error is not CheckError.NOT_AVAILABLE

    def describe_error(self) -> str:
        """Return a short description such as 'HttpError (404)'."""
        if self.error is None:
            return ""
        text = self.error.value
        if self.status_code is not None:
            text = f"{text} ({self.status_code})"
        if self.error_message:
            text = f"{text}: {self.error_message}"
        return text

    def to_dict(self) -> dict:
        return {
            "url": self.url,
            "url_type": self.url_type.value,
            "is_healthy": self.is_healthy,
            "status_code": self.status_code,
            "error": self.error.value if self.error else None,
            "error_message": self.error_message,
            "response_time_ms": self.response_time_ms,
        }


@dataclass(frozen=True)
class RecordOutcome:
    """All check outcomes for one record plus the derived health."""

    record: Record
    checks: tuple[CheckOutcome, ...]
    health: Health

    def to_dict(self) -> dict:
        return {
            "id": self.record.id,
            "name": self.record.name,
            "health": self.health.value,
            "checks": [check.to_dict() for check in self.checks],
        }


@dataclass(frozen=True)
class UrlTypeStats:
    """Counters for one URL type across all records."""

    total: int = 0
    healthy: int = 0
    broken: int = 0
    not_available: int = 0

    @property
    def health_percent(self) -> float:
        """Share of healthy URLs among all counted ones (0.0-100.0)."""
        if self.total == 0:
            return 0.0
        return self.healthy / self.total * 100

    def to_dict(self) -> dict[str, int]:
        return {
            "total": self.total,
            "healthy": self.healthy,
            "broken": self.broken,
            "not_available": self.not_available,
        }


@dataclass(frozen=True)
class MonitoringReport:
    """Aggregated result of a monitoring run.

    Attributes:
        total_records: Number of records checked.
        healthy_records: Records whose URLs are all present and healthy.
        partial_records: Records with some healthy URLs.
        broken_records: Records with no healthy URL.
        url_type_summary: Per URL type counters (read-only mapping).
        results: Per record outcomes, in input order.
    """

    total_records: int
    healthy_records: int
    partial_records: int
    broken_records: int
    url_type_summary: Mapping[UrlType, UrlTypeStats] = field(default_factory=dict)
    results: tuple[RecordOutcome, ...] = ()

    def __post_init__(self) -> None:
        # Freeze the summary so the report stays read-only after construction.
        object.__setattr__(self, "url_type_summary", MappingProxyType(dict(self.url_type_summary)))
        object.__setattr__(self, "results", tuple(self.results))

    @property
    def has_issues(self) -> bool:
        return self.broken_records > 0 or self.partial_records > 0

    def percent(self, count: int) -> float:
        """Return count as a percentage of total records."""
        if self.total_records == 0:
            return 0.0
        return count / self.total_records * 100

    def to_dict(self) -> dict:
        return {
            "summary": {
                "total_records": self.total_records,
                "healthy_records": self.healthy_records,
                "partial_records": self.partial_records,
                "broken_records": self.broken_records,
            },
            "url_type_summary": {
                url_type.value: stats.to_dict() for url_type, stats in self.url_type_summary.items()
            },
            "results": [result.to_dict() for result in self.results],
        }
