from __future__ import annotations

from typing import Optional


class TenantOperatorError(Exception):
    """Base class for every error raised by the tenant operator."""


class NotFoundError(TenantOperatorError):
    """The requested resource does not exist (remote or local)."""


class AlreadyExistsError(TenantOperatorError):
    pass


class PreconditionError(TenantOperatorError):
    """Remote or local state is inconsistent with what reconciliation expects."""


class StoreError(TenantOperatorError):
    pass


class PortaApiError(TenantOperatorError):
    """Admin portal request failed for a reason other than a missing resource."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: Optional[str] = None):
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class ReconcileError(TenantOperatorError):
    """A reconciliation stage failed. The underlying error is chained as ``__cause__``."""

    def __init__(self, tenant: str, stage: str, message: str):
        super().__init__(f"tenant {tenant}: {stage} failed: {message}")
        self.tenant = tenant
        self.stage = stage
