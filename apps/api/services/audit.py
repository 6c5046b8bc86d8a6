"""
Audit orchestration: start an audit, run every check against a content
snapshot, score the findings and persist them.
"""

import asyncio
import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, List, Optional, Sequence

from sqlalchemy import case, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.audit import (
    ACTIVE_AUDIT_STATUSES,
    AUDIT_STATUS_COMPLETED,
    AUDIT_STATUS_FAILED,
    AUDIT_STATUS_PENDING,
    Audit,
)
from models.audit_issue import AuditIssue
from models.store import Store
from services.audit_queue import AuditJob, JobRunner, as_utc, get_job_runner, queue_audit, utcnow
from services.cache import CacheBackend, get_cache
from services.cache_invalidation import DataChangeEvent, on_data_change
from services.checks import ALL_CHECKS, Check, CheckResult, Severity, build_check_context
from services.content import ContentSource, ShopifyContentSource, StoreCredentials
from services.errors import AuditAlreadyRunningError, AuditNotFoundError, AuditStateError, StoreNotFoundError
from services.scoring import AuditStatistics, calculate_audit_statistics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditProgress:
    stage: str
    percent: int
    message: str


PROGRESS_FETCHING = AuditProgress("FETCHING", 10, "Fetching store content")
PROGRESS_CHECKING = AuditProgress("CHECKING", 40, "Running SEO checks")
PROGRESS_SAVING = AuditProgress("SAVING", 80, "Saving audit results")
PROGRESS_COMPLETED = AuditProgress("COMPLETED", 100, "Audit complete")

ProgressCallback = Callable[[AuditProgress], Any]

_SEVERITY_RANK = {
    Severity.CRITICAL.value: 0,
    Severity.HIGH.value: 1,
    Severity.MEDIUM.value: 2,
    Severity.LOW.value: 3,
}


@dataclass(frozen=True)
class AuditJobResult:
    audit_id: str
    status: str
    overall_score: int
    critical: int
    high: int
    medium: int
    low: int
    total: int


@dataclass(frozen=True)
class AuditHistoryEntry:
    id: str
    status: str
    overall_score: Optional[int]
    total_issues: int
    critical_issues: int
    high_issues: int
    medium_issues: int
    low_issues: int
    total_urls: int
    created_at: Optional[datetime]
    started_at: Optional[datetime]
    completed_at: Optional[datetime]
    duration_seconds: Optional[int]


@dataclass(frozen=True)
class IssueFilters:
    severity: Optional[str] = None
    issue_type: Optional[str] = None
    resource_type: Optional[str] = None
    is_fixed: Optional[bool] = None
    search: Optional[str] = None


@dataclass(frozen=True)
class IssuePage:
    items: List[AuditIssue] = field(default_factory=list)
    total: int = 0
    page: int = 1
    page_size: int = 50


def _duration_seconds(audit: Audit) -> Optional[int]:
    started = as_utc(audit.started_at) or as_utc(audit.created_at)
    completed = as_utc(audit.completed_at)
    if started is None or completed is None:
        return None
    return max(int((completed - started).total_seconds()), 0)


class AuditService:
    """Runs audits against injected storage, job runner, content source and cache."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        job_runner: JobRunner,
        content_source: ContentSource,
        cache: CacheBackend,
        checks: Sequence[Check] = ALL_CHECKS,
    ):
        self.session_maker = session_maker
        self.job_runner = job_runner
        self.content_source = content_source
        self.cache = cache
        self.checks = tuple(checks)
        self.job_runner.bind_processor(self._process_job)

    async def close(self) -> None:
        await self.cache.close()

    async def _process_job(self, job: AuditJob) -> AuditJobResult:
        return await self.process_audit(job.audit_id, job.shop_domain)

    async def start_audit(self, store_id: str, shop_domain: str) -> str:
        """Create a PENDING audit and queue it; returns the audit id."""
        async with self.session_maker() as db:
            store = await db.get(Store, store_id)
            if store is None:
                raise StoreNotFoundError(store_id)

            audit = Audit(
                store_id=store_id,
                status=AUDIT_STATUS_PENDING,
                progress=0,
                total_urls=0,
                completed_urls=0,
                critical_issues=0,
                high_issues=0,
                medium_issues=0,
                low_issues=0,
                total_issues=0,
            )
            db.add(audit)
            try:
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                raise AuditAlreadyRunningError(store_id) from exc
            audit_id = audit.id

        logger.info(f"Created audit {audit_id} for store {store_id} ({shop_domain})")
        await queue_audit(
            self.session_maker,
            AuditJob(audit_id=audit_id, store_id=store_id, shop_domain=shop_domain),
            self.job_runner,
        )
        return audit_id

    async def process_audit(
        self,
        audit_id: str,
        shop_domain: str,
        on_progress: Optional[ProgressCallback] = None,
        mark_failed: bool = True,
    ) -> AuditJobResult:
        """Fetch content, run every check, persist issues and mark the audit COMPLETED.

        With ``mark_failed=False`` a failure leaves the audit RUNNING so a
        queued retry can pick it up again.
        """
        async with self.session_maker() as db:
            audit = (await db.execute(select(Audit).where(Audit.id == audit_id))).scalar_one_or_none()
            if audit is None:
                raise AuditNotFoundError(audit_id)
            if audit.status == AUDIT_STATUS_FAILED:
                raise AuditStateError(f"Audit {audit_id} has already failed and cannot be processed")
            store_id = audit.store_id
            store = await db.get(Store, store_id)

        try:
            if store is None:
                raise StoreNotFoundError(store_id)
            logger.info(f"Starting audit {audit_id} for {shop_domain}")

            await self._report(audit_id, PROGRESS_FETCHING, on_progress)
            snapshot = await self.content_source.fetch(
                StoreCredentials(store_id=store_id, shop_domain=shop_domain, access_token=store.access_token)
            )
            logger.info(f"Fetched {snapshot.total} resources for audit {audit_id}")
            context = build_check_context(
                shop_domain,
                store_id,
                products=snapshot.products,
                collections=snapshot.collections,
                pages=snapshot.pages,
            )

            await self._report(audit_id, PROGRESS_CHECKING, on_progress, total_urls=context.total_resources)
            results = await asyncio.gather(*(check.run(context) for check in self.checks))
            stats = calculate_audit_statistics(results)

            await self._report(audit_id, PROGRESS_SAVING, on_progress)
            await self._save_results(audit_id, results, stats, context.total_resources)
        except Exception as exc:
            if not mark_failed:
                logger.exception(f"Audit {audit_id} attempt failed; leaving it running for retry")
                raise
            logger.exception(f"Audit {audit_id} failed")
            await self._mark_failed(audit_id, str(exc) or type(exc).__name__)
            raise

        await on_data_change(self.cache, store_id, DataChangeEvent.AUDIT_COMPLETED)
        await self._notify(on_progress, PROGRESS_COMPLETED)
        logger.info(
            f"Audit {audit_id} completed: score={stats.overall_score} issues={stats.total} "
            f"(critical={stats.critical} high={stats.high} medium={stats.medium} low={stats.low})"
        )
        return AuditJobResult(
            audit_id=audit_id,
            status="SUCCESS",
            overall_score=stats.overall_score,
            critical=stats.critical,
            high=stats.high,
            medium=stats.medium,
            low=stats.low,
            total=stats.total,
        )

    @staticmethod
    async def _notify(on_progress: Optional[ProgressCallback], progress: AuditProgress) -> None:
        if on_progress is None:
            return
        outcome = on_progress(progress)
        if inspect.isawaitable(outcome):
            await outcome

    async def _report(
        self,
        audit_id: str,
        progress: AuditProgress,
        on_progress: Optional[ProgressCallback],
        **values: Any,
    ) -> None:
        async with self.session_maker() as db:
            await db.execute(
                update(Audit)
                .where(Audit.id == audit_id, Audit.status.in_(ACTIVE_AUDIT_STATUSES))
                .values(progress=progress.percent, **values)
            )
            await db.commit()
        await self._notify(on_progress, progress)

    async def _save_results(
        self,
        audit_id: str,
        results: Sequence[CheckResult],
        stats: AuditStatistics,
        total_urls: int,
    ) -> None:
        async with self.session_maker() as db:
            try:
                updated = await db.execute(
                    update(Audit)
                    .where(
                        Audit.id == audit_id,
                        Audit.status.in_((*ACTIVE_AUDIT_STATUSES, AUDIT_STATUS_COMPLETED)),
                    )
                    .values(
                        status=AUDIT_STATUS_COMPLETED,
                        progress=PROGRESS_COMPLETED.percent,
                        total_urls=total_urls,
                        completed_urls=total_urls,
                        critical_issues=stats.critical,
                        high_issues=stats.high,
                        medium_issues=stats.medium,
                        low_issues=stats.low,
                        total_issues=stats.total,
                        overall_score=stats.overall_score,
                        error_message=None,
                        completed_at=utcnow(),
                    )
                )
                if updated.rowcount == 0:
                    raise AuditStateError(f"Audit {audit_id} is no longer active; results were discarded")

                await db.execute(delete(AuditIssue).where(AuditIssue.audit_id == audit_id))
                db.add_all(
                    AuditIssue(
                        audit_id=audit_id,
                        resource_type=issue.resource_type.value,
                        resource_id=issue.resource_id,
                        resource_title=issue.resource_title,
                        resource_handle=issue.resource_handle,
                        url=issue.url,
                        issue_type=result.type.value,
                        severity=result.severity.value,
                        message=issue.message,
                        suggestion=issue.suggestion,
                        details=issue.details,
                        is_fixed=False,
                    )
                    for result in results
                    for issue in result.issues
                )
                await db.commit()
            except Exception:
                await db.rollback()
                raise

    async def _mark_failed(self, audit_id: str, message: str) -> None:
        async with self.session_maker() as db:
            await db.execute(
                update(Audit)
                .where(Audit.id == audit_id, Audit.status.in_(ACTIVE_AUDIT_STATUSES))
                .values(status=AUDIT_STATUS_FAILED, error_message=message[:1000], completed_at=utcnow())
            )
            await db.commit()

    async def get_audit(self, audit_id: str) -> Audit:
        async with self.session_maker() as db:
            audit = (await db.execute(select(Audit).where(Audit.id == audit_id))).scalar_one_or_none()
        if audit is None:
            raise AuditNotFoundError(audit_id)
        return audit

    async def list_audit_history(self, store_id: str, days: Optional[int] = None) -> List[AuditHistoryEntry]:
        """Audits created within the last ``days`` days, newest first."""
        window = settings.AUDIT_HISTORY_DAYS if days is None else days
        cutoff = utcnow() - timedelta(days=max(window, 0))
        async with self.session_maker() as db:
            result = await db.execute(
                select(Audit)
                .where(Audit.store_id == store_id, Audit.created_at >= cutoff)
                .order_by(Audit.created_at.desc())
            )
            audits = result.scalars().all()
        return [
            AuditHistoryEntry(
                id=audit.id,
                status=audit.status,
                overall_score=audit.overall_score,
                total_issues=audit.total_issues or 0,
                critical_issues=audit.critical_issues or 0,
                high_issues=audit.high_issues or 0,
                medium_issues=audit.medium_issues or 0,
                low_issues=audit.low_issues or 0,
                total_urls=audit.total_urls or 0,
                created_at=as_utc(audit.created_at),
                started_at=as_utc(audit.started_at),
                completed_at=as_utc(audit.completed_at),
                duration_seconds=_duration_seconds(audit),
            )
            for audit in audits
        ]

    async def list_audit_issues(
        self,
        audit_id: str,
        filters: Optional[IssueFilters] = None,
        page: int = 1,
        page_size: int = 50,
    ) -> IssuePage:
        filters = filters or IssueFilters()
        page = max(page, 1)
        page_size = min(max(page_size, 1), 200)

        conditions = [AuditIssue.audit_id == audit_id]
        if filters.severity:
            conditions.append(AuditIssue.severity == filters.severity.upper())
        if filters.issue_type:
            conditions.append(AuditIssue.issue_type == filters.issue_type.upper())
        if filters.resource_type:
            conditions.append(AuditIssue.resource_type == filters.resource_type.upper())
        if filters.is_fixed is not None:
            conditions.append(AuditIssue.is_fixed.is_(filters.is_fixed))
        if filters.search and filters.search.strip():
            pattern = f"%{filters.search.strip().lower()}%"
            conditions.append(
                or_(
                    func.lower(AuditIssue.resource_title).like(pattern),
                    func.lower(AuditIssue.message).like(pattern),
                )
            )

        async with self.session_maker() as db:
            exists = await db.execute(select(Audit.id).where(Audit.id == audit_id))
            if exists.scalar_one_or_none() is None:
                raise AuditNotFoundError(audit_id)

            total = (await db.execute(select(func.count(AuditIssue.id)).where(*conditions))).scalar_one()
            result = await db.execute(
                select(AuditIssue)
                .where(*conditions)
                .order_by(
                    case(_SEVERITY_RANK, value=AuditIssue.severity, else_=len(_SEVERITY_RANK)),
                    AuditIssue.issue_type,
                    AuditIssue.resource_title,
                    AuditIssue.id,
                )
                .offset((page - 1) * page_size)
                .limit(page_size)
            )
            items = list(result.scalars().all())
        return IssuePage(items=items, total=int(total or 0), page=page, page_size=page_size)


def build_audit_service(
    session_maker: async_sessionmaker[AsyncSession],
    *,
    job_runner: Optional[JobRunner] = None,
    content_source: Optional[ContentSource] = None,
    cache: Optional[CacheBackend] = None,
    checks: Sequence[Check] = ALL_CHECKS,
) -> AuditService:
    """Wire an AuditService from configuration; the caller owns the engine behind ``session_maker``."""
    cache = cache or get_cache()
    return AuditService(
        session_maker=session_maker,
        job_runner=job_runner or get_job_runner(),
        content_source=content_source or ShopifyContentSource(cache=cache),
        cache=cache,
        checks=checks,
    )
