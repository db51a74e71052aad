from __future__ import annotations

import uuid
from dataclasses import dataclass
from typing import Callable, List, Optional

from .audit import JsonAuditLogger
from .config import OperatorConfig
from .errors import NotFoundError, ReconcileError, TenantOperatorError
from .models import TenantStatus
from .porta_client import PortaClient
from .reconciler import TenantReconciler
from .stores import SecretStore, TenantStore, YamlSecretStore, YamlTenantStore


@dataclass
class ReconcileOutcome:
    tenant: str
    correlation_id: str
    status: Optional[TenantStatus] = None
    error: Optional[str] = None
    stage: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def to_dict(self) -> dict:
        return {
            "tenant": self.tenant,
            "correlation_id": self.correlation_id,
            "succeeded": self.succeeded,
            "status": self.status.model_dump(by_alias=True) if self.status else None,
            "error": self.error,
            "stage": self.stage,
        }


class TenantManager:
    """Central orchestrator: loads Tenant records and runs their reconciliation."""

    def __init__(
        self,
        config: OperatorConfig,
        audit_logger: Optional[JsonAuditLogger] = None,
        tenant_store: Optional[TenantStore] = None,
        secret_store: Optional[SecretStore] = None,
        portal_factory: Optional[Callable[[], PortaClient]] = None,
    ):
        self.config = config
        self.audit = audit_logger or JsonAuditLogger()
        self.tenant_store = tenant_store or YamlTenantStore(config.stores.tenants_dir)
        self.secret_store = secret_store or YamlSecretStore(config.stores.secrets_dir)
        self._portal_factory = portal_factory or (
            lambda: PortaClient(self.config.portal, audit_logger=self.audit)
        )

    def reconcile(self, key: str, correlation_id: Optional[str] = None) -> Optional[TenantStatus]:
        """Reconcile one tenant. Returns its status, or ``None`` if the record is gone.

        Raises ``ReconcileError`` when a stage fails. An unreadable record or an
        unusable portal configuration raises the underlying ``TenantOperatorError``.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        audit = self.audit.bind(tenant=key, correlation_id=correlation_id)
        try:
            tenant = self.tenant_store.get(key)
        except NotFoundError:
            # Deleted records are cleaned up by owner-reference garbage collection.
            audit.info("tenant_not_found")
            return None

        audit.info("reconcile_started")
        with self._portal_factory() as portal:
            reconciler = TenantReconciler(
                tenant,
                portal=portal,
                tenant_store=self.tenant_store,
                secret_store=self.secret_store,
                audit_logger=audit,
            )
            try:
                status = reconciler.run()
            except ReconcileError as exc:
                audit.error("reconcile_failed", stage=exc.stage, error=str(exc.__cause__ or exc))
                raise
        audit.info("reconcile_completed", tenant_id=status.tenant_id, admin_id=status.admin_id)
        return status

    def reconcile_all(self) -> List[ReconcileOutcome]:
        outcomes: List[ReconcileOutcome] = []
        for key in self.tenant_store.list_keys():
            correlation_id = str(uuid.uuid4())
            outcome = ReconcileOutcome(tenant=key, correlation_id=correlation_id)
            try:
                outcome.status = self.reconcile(key, correlation_id=correlation_id)
            except ReconcileError as exc:
                outcome.error = str(exc)
                outcome.stage = exc.stage
            except TenantOperatorError as exc:
                # Unreadable manifests and portal setup errors fail only this tenant.
                self.audit.error("reconcile_failed", tenant=key, correlation_id=correlation_id, error=str(exc))
                outcome.error = str(exc)
            outcomes.append(outcome)
        return outcomes
