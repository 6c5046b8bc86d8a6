"""Durable audit job queue helpers (Redis/RQ) with an in-process fallback."""

from __future__ import annotations

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from redis import Redis
from redis.exceptions import RedisError
from rq import Queue, Retry, get_current_job
from rq.exceptions import NoSuchJobError
from rq.job import Job
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from models.audit import (
    ACTIVE_AUDIT_STATUSES,
    AUDIT_STATUS_FAILED,
    AUDIT_STATUS_PENDING,
    AUDIT_STATUS_RUNNING,
    Audit,
)
from services.errors import AuditNotFoundError, AuditStateError

logger = logging.getLogger(__name__)

AUDIT_QUEUE_NAME = "seo_audits"
AUDIT_JOB_FUNC = "services.audit_queue.run_audit_job"
INLINE_JOB_ID = "sync"
JOB_STATUS_NOT_FOUND = "NOT_FOUND"

ALREADY_RUNNING_REASON = "An audit is already running for this store"
CANCELLED_MESSAGE = "Cancelled by user"
STALLED_MESSAGE = "Audit execution was interrupted. Re-run the audit."

SessionMaker = async_sessionmaker[AsyncSession]


@dataclass(frozen=True)
class AuditJob:
    audit_id: str
    store_id: str
    shop_domain: str


@dataclass(frozen=True)
class AuditEligibility:
    allowed: bool
    reason: Optional[str] = None
    next_allowed_time: Optional[datetime] = None


@dataclass(frozen=True)
class AuditJobStatus:
    audit_id: str
    status: str
    progress: int = 0
    overall_score: Optional[int] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    queue_job_id: Optional[str] = None
    queue_state: Optional[str] = None
    stage: Optional[str] = None


AuditProcessor = Callable[[AuditJob], Awaitable[Any]]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_redis_connection(socket_connect_timeout: Optional[float] = None) -> Redis:
    """Build Redis connection used by RQ."""
    if socket_connect_timeout is None:
        return Redis.from_url(settings.REDIS_URL)
    return Redis.from_url(settings.REDIS_URL, socket_connect_timeout=socket_connect_timeout)


def get_audit_queue(connection: Optional[Redis] = None) -> Queue:
    """Return the configured audit queue."""
    return Queue(
        name=AUDIT_QUEUE_NAME,
        connection=connection or get_redis_connection(),
        default_timeout=settings.AUDIT_JOB_TIMEOUT_SECONDS,
    )


def _cooldown_label(minutes: int) -> str:
    if minutes % 60 == 0:
        hours = minutes // 60
        return "1 hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"


async def can_run_audit(
    session_maker: SessionMaker,
    store_id: str,
    now: Optional[datetime] = None,
    cooldown_minutes: Optional[int] = None,
) -> AuditEligibility:
    """Advisory pre-flight: no active audit, and the latest audit is outside the cooldown."""
    now = as_utc(now) or utcnow()
    minutes = settings.AUDIT_COOLDOWN_MINUTES if cooldown_minutes is None else cooldown_minutes
    async with session_maker() as db:
        active = await db.execute(
            select(Audit.id)
            .where(Audit.store_id == store_id, Audit.status.in_(ACTIVE_AUDIT_STATUSES))
            .limit(1)
        )
        if active.scalar_one_or_none() is not None:
            return AuditEligibility(allowed=False, reason=ALREADY_RUNNING_REASON)

        latest = await db.execute(
            select(Audit.created_at)
            .where(Audit.store_id == store_id)
            .order_by(Audit.created_at.desc())
            .limit(1)
        )
        last_created_at = as_utc(latest.scalar_one_or_none())

    if last_created_at is None or minutes <= 0:
        return AuditEligibility(allowed=True)

    next_allowed_time = last_created_at + timedelta(minutes=minutes)
    if now < next_allowed_time:
        wait_minutes = max(1, math.ceil((next_allowed_time - now).total_seconds() / 60))
        unit = "minute" if wait_minutes == 1 else "minutes"
        return AuditEligibility(
            allowed=False,
            reason=(
                f"Please wait {wait_minutes} {unit} before running another audit "
                f"({_cooldown_label(minutes)} between audits)"
            ),
            next_allowed_time=next_allowed_time,
        )
    return AuditEligibility(allowed=True)


class JobRunner(ABC):
    """Executes queued audit jobs, either on a broker or in-process."""

    name: str

    @abstractmethod
    async def submit(self, job: AuditJob) -> str:
        raise NotImplementedError

    async def cancel(self, job_id: str) -> bool:
        return False

    async def describe(self, job_id: str) -> Optional[Dict[str, Any]]:
        return None

    def bind_processor(self, processor: AuditProcessor) -> None:
        """Hook for runners that execute jobs in this process."""


class RQJobRunner(JobRunner):
    name = "rq"

    def __init__(self, queue: Optional[Queue] = None) -> None:
        self._queue = queue

    @property
    def queue(self) -> Queue:
        if self._queue is None:
            self._queue = get_audit_queue()
        return self._queue

    def _enqueue(self, job: AuditJob) -> Job:
        return self.queue.enqueue(
            AUDIT_JOB_FUNC,
            job.audit_id,
            job.store_id,
            job.shop_domain,
            job_id=f"audit:{job.audit_id}",
            retry=Retry(max=3, interval=[30, 120, 300]),
            job_timeout=settings.AUDIT_JOB_TIMEOUT_SECONDS,
            result_ttl=86400,
            failure_ttl=86400,
        )

    async def submit(self, job: AuditJob) -> str:
        rq_job = await asyncio.to_thread(self._enqueue, job)
        return rq_job.id

    def _fetch(self, job_id: str) -> Optional[Job]:
        try:
            return Job.fetch(job_id, connection=self.queue.connection)
        except NoSuchJobError:
            return None

    async def cancel(self, job_id: str) -> bool:
        def _cancel() -> bool:
            rq_job = self._fetch(job_id)
            if rq_job is None:
                return False
            rq_job.cancel()
            return True

        try:
            return await asyncio.to_thread(_cancel)
        except RedisError as exc:
            logger.warning(f"Could not cancel queued job {job_id}: {exc}")
            return False

    async def describe(self, job_id: str) -> Optional[Dict[str, Any]]:
        def _describe() -> Optional[Dict[str, Any]]:
            rq_job = self._fetch(job_id)
            if rq_job is None:
                return None
            status = rq_job.get_status()
            return {
                "state": getattr(status, "value", status),
                "stage": rq_job.meta.get("stage"),
                "progress": rq_job.meta.get("progress"),
            }

        try:
            return await asyncio.to_thread(_describe)
        except RedisError as exc:
            logger.warning(f"Could not read queued job {job_id}: {exc}")
            return None


class InlineJobRunner(JobRunner):
    """Runs the audit in the caller's event loop; returns once processing has finished."""

    name = "inline"

    def __init__(self, processor: Optional[AuditProcessor] = None) -> None:
        self._processor = processor

    def bind_processor(self, processor: AuditProcessor) -> None:
        self._processor = processor

    async def submit(self, job: AuditJob) -> str:
        if self._processor is None:
            raise RuntimeError("Inline job runner has no audit processor bound")
        try:
            await self._processor(job)
        except Exception as exc:
            # Processing already marked the audit FAILED; callers poll the status.
            logger.error(f"Inline audit {job.audit_id} failed: {exc}")
        return INLINE_JOB_ID


def get_job_runner(mode: Optional[str] = None) -> JobRunner:
    """Job runner selected by ``AUDIT_QUEUE_MODE``; ``auto`` falls back to inline without Redis."""
    selected = (mode or settings.AUDIT_QUEUE_MODE or "auto").strip().lower()
    if selected == "inline":
        return InlineJobRunner()
    if selected == "rq":
        return RQJobRunner()
    if selected == "auto":
        connection = get_redis_connection(socket_connect_timeout=2)
        try:
            connection.ping()
        except RedisError as exc:
            logger.warning(f"Redis unreachable ({exc}); audits will run inline")
            return InlineJobRunner()
        return RQJobRunner(get_audit_queue(connection))
    raise ValueError(f"Unknown audit queue mode: {selected}")


async def queue_audit(session_maker: SessionMaker, job: AuditJob, runner: JobRunner) -> str:
    """Move a PENDING audit to RUNNING and hand it to the runner; returns the job id."""
    async with session_maker() as db:
        result = await db.execute(
            update(Audit)
            .where(Audit.id == job.audit_id, Audit.status == AUDIT_STATUS_PENDING)
            .values(status=AUDIT_STATUS_RUNNING, started_at=utcnow())
        )
        if result.rowcount == 0:
            await db.rollback()
            exists = await db.execute(select(Audit.id).where(Audit.id == job.audit_id))
            if exists.scalar_one_or_none() is None:
                raise AuditNotFoundError(job.audit_id)
            raise AuditStateError(f"Audit {job.audit_id} is not pending and cannot be queued")
        await db.commit()

    try:
        job_id = await runner.submit(job)
    except Exception as exc:
        logger.exception(f"Failed to submit audit {job.audit_id} to {runner.name} runner: {exc}")
        await _fail_if_active(session_maker, job.audit_id, f"Failed to queue audit: {exc}")
        raise

    async with session_maker() as db:
        await db.execute(update(Audit).where(Audit.id == job.audit_id).values(queue_job_id=job_id))
        await db.commit()
    logger.info(f"Audit {job.audit_id} for store {job.store_id} submitted via {runner.name} (job {job_id})")
    return job_id


async def _fail_if_active(session_maker: SessionMaker, audit_id: str, message: str) -> bool:
    async with session_maker() as db:
        result = await db.execute(
            update(Audit)
            .where(Audit.id == audit_id, Audit.status.in_(ACTIVE_AUDIT_STATUSES))
            .values(status=AUDIT_STATUS_FAILED, error_message=message, completed_at=utcnow())
        )
        await db.commit()
        return result.rowcount > 0


async def get_audit_job_status(
    session_maker: SessionMaker,
    audit_id: str,
    runner: Optional[JobRunner] = None,
) -> AuditJobStatus:
    async with session_maker() as db:
        result = await db.execute(select(Audit).where(Audit.id == audit_id))
        audit = result.scalar_one_or_none()
    if audit is None:
        return AuditJobStatus(audit_id=audit_id, status=JOB_STATUS_NOT_FOUND)

    queue_info: Dict[str, Any] = {}
    if runner is not None and audit.queue_job_id and audit.queue_job_id != INLINE_JOB_ID:
        queue_info = await runner.describe(audit.queue_job_id) or {}

    return AuditJobStatus(
        audit_id=audit.id,
        status=audit.status,
        progress=int(audit.progress or 0),
        overall_score=audit.overall_score,
        error_message=audit.error_message,
        started_at=as_utc(audit.started_at),
        completed_at=as_utc(audit.completed_at),
        queue_job_id=audit.queue_job_id,
        queue_state=queue_info.get("state"),
        stage=queue_info.get("stage"),
    )


async def cancel_audit(
    session_maker: SessionMaker,
    audit_id: str,
    runner: Optional[JobRunner] = None,
) -> bool:
    """Fail a PENDING/RUNNING audit. In-flight checks are not interrupted."""
    async with session_maker() as db:
        job_id = (await db.execute(select(Audit.queue_job_id).where(Audit.id == audit_id))).scalar_one_or_none()
        result = await db.execute(
            update(Audit)
            .where(Audit.id == audit_id, Audit.status.in_(ACTIVE_AUDIT_STATUSES))
            .values(status=AUDIT_STATUS_FAILED, error_message=CANCELLED_MESSAGE, completed_at=utcnow())
        )
        await db.commit()
        cancelled = result.rowcount > 0

    if not cancelled:
        return False
    logger.info(f"Audit {audit_id} cancelled")
    if runner is not None and job_id and job_id != INLINE_JOB_ID:
        await runner.cancel(job_id)
    return True


async def recover_stalled_audits(session_maker: SessionMaker, max_age_minutes: Optional[int] = None) -> int:
    """Mark stale in-progress audits as failed after restarts/worker interruptions."""
    minutes = settings.AUDIT_STALLED_AFTER_MINUTES if max_age_minutes is None else max_age_minutes
    cutoff = utcnow() - timedelta(minutes=max(minutes, 1))
    async with session_maker() as db:
        result = await db.execute(
            update(Audit)
            .where(Audit.status.in_(ACTIVE_AUDIT_STATUSES), Audit.created_at < cutoff)
            .values(status=AUDIT_STATUS_FAILED, error_message=STALLED_MESSAGE, completed_at=utcnow())
        )
        await db.commit()
        recovered = result.rowcount
    if recovered:
        logger.warning(f"Marked {recovered} stalled audit(s) as failed")
    return recovered


async def _report_job_progress(progress) -> None:
    rq_job = get_current_job()
    if rq_job is None:
        return
    rq_job.meta["stage"] = progress.stage
    rq_job.meta["progress"] = progress.percent
    await asyncio.to_thread(rq_job.save_meta)


async def _run_audit_job(job: AuditJob) -> Dict[str, Any]:
    from database import create_engine, create_session_maker
    from services.audit import build_audit_service

    rq_job = get_current_job()
    # Earlier attempts leave the audit RUNNING so RQ can retry it.
    final_attempt = rq_job is None or not rq_job.retries_left

    engine = create_engine()
    service = build_audit_service(create_session_maker(engine), job_runner=InlineJobRunner())
    try:
        result = await service.process_audit(
            job.audit_id,
            job.shop_domain,
            on_progress=_report_job_progress,
            mark_failed=final_attempt,
        )
        return asdict(result)
    except (AuditNotFoundError, AuditStateError) as exc:
        # Cancelled or already-failed audits are not retried.
        logger.warning(f"Skipping audit job {job.audit_id}: {exc}")
        return {"audit_id": job.audit_id, "status": "SKIPPED", "reason": str(exc)}
    finally:
        await service.close()
        await engine.dispose()


def run_audit_job(audit_id: str, store_id: str, shop_domain: str) -> Dict[str, Any]:
    """RQ entrypoint (sync wrapper)."""
    return asyncio.run(_run_audit_job(AuditJob(audit_id=audit_id, store_id=store_id, shop_domain=shop_domain)))
