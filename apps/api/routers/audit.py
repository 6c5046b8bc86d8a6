"""
Audit router for starting SEO audits and retrieving their results.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from services.audit import AuditService, IssueFilters
from services.audit_queue import (
    JOB_STATUS_NOT_FOUND,
    as_utc,
    can_run_audit,
    cancel_audit,
    get_audit_job_status,
)
from services.errors import AuditAlreadyRunningError, AuditNotFoundError, StoreNotFoundError
from models.store import Store

router = APIRouter()
logger = logging.getLogger(__name__)


class StartAuditRequest(BaseModel):
    store_id: str


class StartAuditResponse(BaseModel):
    audit_id: str
    status: str


class AuditResponse(BaseModel):
    audit_id: str
    store_id: str
    status: str
    progress: int
    overall_score: Optional[int] = None
    total_urls: int = 0
    total_issues: int = 0
    critical_issues: int = 0
    high_issues: int = 0
    medium_issues: int = 0
    low_issues: int = 0
    error: Optional[str] = None
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class AuditStatusResponse(BaseModel):
    audit_id: str
    status: str
    progress: int
    overall_score: Optional[int] = None
    error: Optional[str] = None
    stage: Optional[str] = None
    queue_state: Optional[str] = None


class AuditHistoryItem(BaseModel):
    audit_id: str
    status: str
    overall_score: Optional[int] = None
    total_issues: int
    critical_issues: int
    high_issues: int
    medium_issues: int
    low_issues: int
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: Optional[int] = None


class AuditIssueItem(BaseModel):
    id: str
    resource_type: str
    resource_id: str
    resource_title: Optional[str] = None
    resource_handle: Optional[str] = None
    url: Optional[str] = None
    issue_type: str
    severity: str
    message: str
    suggestion: Optional[str] = None
    details: Dict[str, Any] = {}
    is_fixed: bool = False


class AuditIssuesResponse(BaseModel):
    audit_id: str
    total: int
    page: int
    page_size: int
    items: List[AuditIssueItem]


class CancelAuditResponse(BaseModel):
    audit_id: str
    cancelled: bool


def get_audit_service(request: Request) -> AuditService:
    return request.app.state.audit_service


@router.post("", response_model=StartAuditResponse, status_code=202)
async def start_audit(
    request: StartAuditRequest,
    service: AuditService = Depends(get_audit_service),
):
    """Start an audit for a store, subject to the one-active-audit and cooldown rules."""
    async with service.session_maker() as db:
        store = await db.get(Store, request.store_id)
    if store is None:
        raise HTTPException(status_code=404, detail=f"Store {request.store_id} not found")

    eligibility = await can_run_audit(service.session_maker, store.id)
    if not eligibility.allowed:
        if eligibility.next_allowed_time is not None:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": eligibility.reason,
                    "next_allowed_time": eligibility.next_allowed_time.isoformat(),
                },
            )
        raise HTTPException(status_code=409, detail=eligibility.reason)

    try:
        audit_id = await service.start_audit(store.id, store.shop_domain)
    except AuditAlreadyRunningError as exc:
        raise HTTPException(status_code=409, detail=str(exc))
    except StoreNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))

    status = await get_audit_job_status(service.session_maker, audit_id)
    return StartAuditResponse(audit_id=audit_id, status=status.status)


@router.get("", response_model=List[AuditHistoryItem])
async def list_audits(
    store_id: str = Query(...),
    days: Optional[int] = Query(default=None, ge=1, le=365),
    service: AuditService = Depends(get_audit_service),
):
    """Audit history for a store, newest first."""
    history = await service.list_audit_history(store_id, days)
    return [
        AuditHistoryItem(
            audit_id=entry.id,
            status=entry.status,
            overall_score=entry.overall_score,
            total_issues=entry.total_issues,
            critical_issues=entry.critical_issues,
            high_issues=entry.high_issues,
            medium_issues=entry.medium_issues,
            low_issues=entry.low_issues,
            created_at=entry.created_at,
            completed_at=entry.completed_at,
            duration_seconds=entry.duration_seconds,
        )
        for entry in history
    ]


@router.get("/{audit_id}", response_model=AuditResponse)
async def get_audit(audit_id: str, service: AuditService = Depends(get_audit_service)):
    try:
        audit = await service.get_audit(audit_id)
    except AuditNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return AuditResponse(
        audit_id=audit.id,
        store_id=audit.store_id,
        status=audit.status,
        progress=int(audit.progress or 0),
        overall_score=audit.overall_score,
        total_urls=audit.total_urls or 0,
        total_issues=audit.total_issues or 0,
        critical_issues=audit.critical_issues or 0,
        high_issues=audit.high_issues or 0,
        medium_issues=audit.medium_issues or 0,
        low_issues=audit.low_issues or 0,
        error=audit.error_message,
        created_at=as_utc(audit.created_at),
        started_at=as_utc(audit.started_at),
        completed_at=as_utc(audit.completed_at),
    )


@router.get("/{audit_id}/status", response_model=AuditStatusResponse)
async def get_audit_status(audit_id: str, service: AuditService = Depends(get_audit_service)):
    status = await get_audit_job_status(service.session_maker, audit_id, service.job_runner)
    if status.status == JOB_STATUS_NOT_FOUND:
        raise HTTPException(status_code=404, detail=f"Audit {audit_id} not found")
    return AuditStatusResponse(
        audit_id=status.audit_id,
        status=status.status,
        progress=status.progress,
        overall_score=status.overall_score,
        error=status.error_message,
        stage=status.stage,
        queue_state=status.queue_state,
    )


@router.post("/{audit_id}/cancel", response_model=CancelAuditResponse)
async def cancel_audit_run(audit_id: str, service: AuditService = Depends(get_audit_service)):
    status = await get_audit_job_status(service.session_maker, audit_id)
    if status.status == JOB_STATUS_NOT_FOUND:
        raise HTTPException(status_code=404, detail=f"Audit {audit_id} not found")
    cancelled = await cancel_audit(service.session_maker, audit_id, service.job_runner)
    return CancelAuditResponse(audit_id=audit_id, cancelled=cancelled)


@router.get("/{audit_id}/issues", response_model=AuditIssuesResponse)
async def list_audit_issues(
    audit_id: str,
    severity: Optional[str] = Query(default=None),
    type: Optional[str] = Query(default=None),
    resource_type: Optional[str] = Query(default=None),
    is_fixed: Optional[bool] = Query(default=None),
    search: Optional[str] = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=50, ge=1, le=200),
    service: AuditService = Depends(get_audit_service),
):
    filters = IssueFilters(
        severity=severity,
        issue_type=type,
        resource_type=resource_type,
        is_fixed=is_fixed,
        search=search,
    )
    try:
        result = await service.list_audit_issues(audit_id, filters, page, page_size)
    except AuditNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc))
    return AuditIssuesResponse(
        audit_id=audit_id,
        total=result.total,
        page=result.page,
        page_size=result.page_size,
        items=[
            AuditIssueItem(
                id=issue.id,
                resource_type=issue.resource_type,
                resource_id=issue.resource_id,
                resource_title=issue.resource_title,
                resource_handle=issue.resource_handle,
                url=issue.url,
                issue_type=issue.issue_type,
                severity=issue.severity,
                message=issue.message,
                suggestion=issue.suggestion,
                details=issue.details or {},
                is_fixed=bool(issue.is_fixed),
            )
            for issue in result.items
        ],
    )
