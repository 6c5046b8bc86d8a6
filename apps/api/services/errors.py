"""Audit domain errors."""

from __future__ import annotations


class AuditError(RuntimeError):
    """Base class for audit failures the HTTP layer knows how to map."""


class AuditNotFoundError(AuditError):
    def __init__(self, audit_id: str):
        super().__init__(f"Audit {audit_id} not found")
        self.audit_id = audit_id


class StoreNotFoundError(AuditError):
    def __init__(self, store_id: str):
        super().__init__(f"Store {store_id} not found")
        self.store_id = store_id


class AuditAlreadyRunningError(AuditError):
    """Raised when the active-audit guard rejects a new audit for a store."""

    def __init__(self, store_id: str):
        super().__init__(f"An audit is already running for store {store_id}")
        self.store_id = store_id


class AuditStateError(AuditError):
    """Raised for a status transition the audit lifecycle does not allow."""


class ContentFetchError(AuditError):
    """Raised when storefront content cannot be fetched from Shopify."""
