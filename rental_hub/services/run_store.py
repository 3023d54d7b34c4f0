"""
Crawl run persistence.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import func, select

from ..models.crawl import CrawlRun, CrawlStatus, RunLogFilter
from ..utils.error_handling import NotFound
from .database import CrawlRunRecord, Database


def to_crawl_run(record: CrawlRunRecord) -> CrawlRun:
    return CrawlRun(
        id=record.id,
        source=record.source,
        status=CrawlStatus(record.status),
        started_at=record.started_at,
        completed_at=record.completed_at,
        total_found=record.total_found,
        new_count=record.new_count,
        updated_count=record.updated_count,
        error_message=record.error_message,
    )


class CrawlRunStore:
    """Create, finalise and query crawl runs. Runs are immutable once finalised."""

    def __init__(self, database: Database):
        self.database = database

    def create_run(self, source: str, started_at: datetime) -> CrawlRun:
        with self.database.session_scope() as session:
            record = CrawlRunRecord(source=source, status=CrawlStatus.RUNNING.value, started_at=started_at)
            session.add(record)
            session.flush()
            return to_crawl_run(record)

    def finalize_run(
        self,
        run_id: int,
        status: CrawlStatus,
        completed_at: datetime,
        total_found: int = 0,
        new_count: int = 0,
        updated_count: int = 0,
        error_message: Optional[str] = None,
    ) -> CrawlRun:
        """
        Move a RUNNING run to its terminal status.

        Raises:
            NotFound: If the run does not exist.
            ValueError: If the status is not terminal or the run was already finalised.
        """
        if not status.is_terminal:
            raise ValueError(f"{status.value} is not a terminal status")

        with self.database.session_scope() as session:
            record = session.get(CrawlRunRecord, run_id)
            if record is None:
                raise NotFound(f"Crawl run {run_id} not found")
            if record.status != CrawlStatus.RUNNING.value:
                raise ValueError(f"Crawl run {run_id} is already {record.status}")

            record.status = status.value
            record.completed_at = completed_at
            record.total_found = total_found
            record.new_count = new_count
            record.updated_count = updated_count
            record.error_message = error_message[:2000] if error_message else None
            session.flush()
            return to_crawl_run(record)

    def get_run(self, run_id: int) -> CrawlRun:
        with self.database.session_scope() as session:
            record = session.get(CrawlRunRecord, run_id)
            if record is None:
                raise NotFound(f"Crawl run {run_id} not found")
            return to_crawl_run(record)

    def list_runs(self, run_filter: Optional[RunLogFilter] = None, page: int = 1, limit: int = 20) -> Tuple[List[CrawlRun], int]:
        """Runs matching the filter, newest first, with the unpaginated total."""
        if page < 1 or limit < 1:
            raise ValueError("page and limit must be positive")

        run_filter = run_filter or RunLogFilter()
        conds = []
        if run_filter.source:
            conds.append(CrawlRunRecord.source == run_filter.source)
        if run_filter.status:
            conds.append(CrawlRunRecord.status == run_filter.status.value)
        if run_filter.start_date:
            conds.append(CrawlRunRecord.started_at >= run_filter.start_date)
        if run_filter.end_date:
            conds.append(CrawlRunRecord.started_at <= run_filter.end_date)

        with self.database.session_scope() as session:
            total = session.scalar(select(func.count()).select_from(CrawlRunRecord).where(*conds))
            records = session.scalars(
                select(CrawlRunRecord)
                .where(*conds)
                .order_by(CrawlRunRecord.started_at.desc(), CrawlRunRecord.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
            ).all()
            return [to_crawl_run(r) for r in records], total or 0

    def running_runs(self) -> List[CrawlRun]:
        with self.database.session_scope() as session:
            records = session.scalars(
                select(CrawlRunRecord)
                .where(CrawlRunRecord.status == CrawlStatus.RUNNING.value)
                .order_by(CrawlRunRecord.started_at)
            ).all()
            return [to_crawl_run(r) for r in records]

    def latest_run(self) -> Optional[CrawlRun]:
        runs, _ = self.list_runs(page=1, limit=1)
        return runs[0] if runs else None

    def run_stats(self, now: Optional[datetime] = None, days: int = 7) -> Dict[str, Any]:
        """Summary counts, per-day counts for recent days, and per-source totals."""
        now = now or datetime.now()

        with self.database.session_scope() as session:
            status_counts = dict(
                session.execute(
                    select(CrawlRunRecord.status, func.count()).group_by(CrawlRunRecord.status)
                ).all()
            )

            day = func.date(CrawlRunRecord.started_at)
            daily_rows = session.execute(
                select(day.label("day"), CrawlRunRecord.status, func.count().label("runs"))
                .where(CrawlRunRecord.started_at >= now - timedelta(days=days))
                .group_by(day, CrawlRunRecord.status)
                .order_by(day.desc(), CrawlRunRecord.status)
            ).all()

            source_rows = session.execute(
                select(
                    CrawlRunRecord.source,
                    CrawlRunRecord.status,
                    func.count().label("runs"),
                    func.coalesce(func.sum(CrawlRunRecord.total_found), 0).label("total_found"),
                    func.coalesce(func.sum(CrawlRunRecord.new_count), 0).label("new_count"),
                )
                .group_by(CrawlRunRecord.source, CrawlRunRecord.status)
                .order_by(CrawlRunRecord.source, CrawlRunRecord.status)
            ).all()

        total_runs = sum(status_counts.values())
        successful = status_counts.get(CrawlStatus.COMPLETED.value, 0)

        return {
            "summary": {
                "totalRuns": total_runs,
                "successfulRuns": successful,
                "failedRuns": status_counts.get(CrawlStatus.FAILED.value, 0),
                "runningRuns": status_counts.get(CrawlStatus.RUNNING.value, 0),
                "interruptedRuns": status_counts.get(CrawlStatus.INTERRUPTED.value, 0),
                "successRate": round(successful / total_runs * 100, 2) if total_runs else 0,
            },
            "dailyStats": [
                {"date": str(row.day), "status": row.status, "count": row.runs} for row in daily_rows
            ],
            "sourceStats": [
                {
                    "source": row.source,
                    "status": row.status,
                    "count": row.runs,
                    "totalFound": row.total_found,
                    "newProperties": row.new_count,
                }
                for row in source_rows
            ],
        }
