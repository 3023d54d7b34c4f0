"""
Crawl run data models.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from dateutil import parser as date_parser

from .listing import RawRecord


class CrawlStatus(Enum):
    """Lifecycle status of a crawl run."""

    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    INTERRUPTED = "INTERRUPTED"

    @property
    def is_terminal(self) -> bool:
        return self is not CrawlStatus.RUNNING


class FailureKind(Enum):
    """Why a page produced no usable records."""

    NAVIGATION = "navigation"
    EXTRACTION = "extraction"


@dataclass
class CrawlOptions:
    """Per-source crawl options."""

    max_pages: int = 5
    filters: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CrawlOptions":
        """Accept ``maxPages``/``max_pages`` plus free-form source filters."""
        data = dict(data or {})
        max_pages = data.pop("maxPages", data.pop("max_pages", 5))
        nested = data.pop("filters", None) or {}
        filters = {key: str(value) for key, value in {**data, **nested}.items() if value is not None}
        return cls(max_pages=int(max_pages), filters=filters)

    def validate(self) -> bool:
        if not isinstance(self.max_pages, int) or self.max_pages <= 0:
            raise ValueError("max_pages must be a positive integer")
        return True


@dataclass
class PageResult:
    """One page of an adapter's crawl, successful or not."""

    page_number: int
    records: List[RawRecord] = field(default_factory=list)
    has_next: bool = False
    failure: Optional[FailureKind] = None
    error_message: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.failure is not None

    @property
    def is_fatal(self) -> bool:
        """A failure on the first page aborts the whole run."""
        return self.failed and self.page_number == 1


@dataclass
class CrawlRun:
    """One execution attempt of one source."""

    id: int
    source: str
    status: CrawlStatus
    started_at: datetime
    completed_at: Optional[datetime] = None
    total_found: int = 0
    new_count: int = 0
    updated_count: int = 0
    error_message: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source,
            "status": self.status.value,
            "startedAt": self.started_at.isoformat(),
            "completedAt": self.completed_at.isoformat() if self.completed_at else None,
            "totalFound": self.total_found,
            "newProperties": self.new_count,
            "updatedProperties": self.updated_count,
            "errorMessage": self.error_message,
        }


@dataclass
class SourceRunResult:
    """Counts and outcome of one source within an invocation."""

    source: str
    status: Optional[CrawlStatus]
    run_id: Optional[int] = None
    total_found: int = 0
    new_count: int = 0
    updated_count: int = 0
    price_changes: int = 0
    skipped_records: int = 0
    error: Optional[str] = None
    note: Optional[str] = None
    skipped: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "runId": self.run_id,
            "status": self.status.value if self.status else ("SKIPPED" if self.skipped else None),
            "totalFound": self.total_found,
            "newProperties": self.new_count,
            "updatedProperties": self.updated_count,
            "priceChanges": self.price_changes,
            "error": self.error,
            "note": self.note,
        }


@dataclass
class RunSummary:
    """Aggregate result of a crawl invocation across sources."""

    runs: List[SourceRunResult] = field(default_factory=list)
    errors: List[Dict[str, str]] = field(default_factory=list)

    @property
    def total_found(self) -> int:
        return sum(run.total_found for run in self.runs)

    @property
    def new_properties(self) -> int:
        return sum(run.new_count for run in self.runs)

    @property
    def updated_properties(self) -> int:
        return sum(run.updated_count for run in self.runs)

    def add(self, result: SourceRunResult):
        self.runs.append(result)
        if result.error:
            self.errors.append({"source": result.source, "error": result.error})

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalFound": self.total_found,
            "newProperties": self.new_properties,
            "updatedProperties": self.updated_properties,
            "errors": list(self.errors),
            "runs": [run.to_dict() for run in self.runs],
        }


@dataclass
class RunLogFilter:
    """Filters for listing crawl runs."""

    source: Optional[str] = None
    status: Optional[CrawlStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RunLogFilter":
        """Build a filter from query-string style values; dates may be any dateutil-parseable text."""
        data = data or {}

        def parse_date(value: Any) -> Optional[datetime]:
            if value is None or value == "":
                return None
            if isinstance(value, datetime):
                return value
            try:
                return date_parser.parse(str(value))
            except (ValueError, OverflowError) as e:
                raise ValueError(f"Invalid date: {value!r}") from e

        status = data.get("status")
        return cls(
            source=data.get("source") or None,
            status=CrawlStatus(str(status).upper()) if status else None,
            start_date=parse_date(data.get("startDate", data.get("start_date"))),
            end_date=parse_date(data.get("endDate", data.get("end_date"))),
        )
