from __future__ import annotations

import os
import uuid
from pathlib import Path
from typing import Optional

from flask import Flask, jsonify, request

from tenant_operator.audit import InMemoryAuditStore, JsonAuditLogger
from tenant_operator.config import OperatorConfig
from tenant_operator.errors import ReconcileError, TenantOperatorError
from tenant_operator.tenant_manager import TenantManager


def create_app(
    config_path: str | os.PathLike[str] = "config/operator.yaml",
    manager: Optional[TenantManager] = None,
    audit_store: Optional[InMemoryAuditStore] = None,
) -> Flask:
    audit_store = audit_store or InMemoryAuditStore()
    if manager is None:
        config = OperatorConfig.load(Path(config_path))
        manager = TenantManager(config, audit_logger=JsonAuditLogger(store=audit_store))

    app = Flask(__name__)
    app.config["TENANT_MANAGER"] = manager
    app.config["AUDIT_STORE"] = audit_store

    @app.get("/tenants")
    def tenants():
        payload = []
        for key in manager.tenant_store.list_keys():
            try:
                tenant = manager.tenant_store.get(key)
            except TenantOperatorError as exc:
                payload.append({"tenant": key, "error": str(exc)})
                continue
            payload.append(
                {
                    "tenant": tenant.key,
                    "organization_name": tenant.spec.organization_name,
                    "status": tenant.status.model_dump(by_alias=True),
                }
            )
        return jsonify({"tenants": payload, "count": len(payload)})

    @app.post("/tenants/<namespace>/<name>/reconcile")
    def reconcile(namespace: str, name: str):
        key = f"{namespace}/{name}"
        correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        try:
            status = manager.reconcile(key, correlation_id=correlation_id)
        except ReconcileError as exc:
            return (
                jsonify(
                    {
                        "tenant": key,
                        "correlation_id": correlation_id,
                        "stage": exc.stage,
                        "error": str(exc),
                    }
                ),
                502,
            )
        except TenantOperatorError as exc:
            return jsonify({"tenant": key, "correlation_id": correlation_id, "error": str(exc)}), 500

        if status is None:
            return jsonify({"tenant": key, "error": "tenant not found"}), 404
        return jsonify(
            {
                "tenant": key,
                "correlation_id": correlation_id,
                "status": status.model_dump(by_alias=True),
            }
        )

    @app.get("/audit.json")
    def audit_json():
        limit_param = request.args.get("limit")
        try:
            limit = int(limit_param) if limit_param else 100
        except ValueError:
            limit = 100
        events = audit_store.list(limit=limit, tenant=request.args.get("tenant"))
        payload = [event.to_dict() for event in events]
        return jsonify({"events": payload, "count": len(payload)})

    return app


if __name__ == "__main__":
    app = create_app(os.getenv("TENANT_OPERATOR_CONFIG", "config/operator.yaml"))
    app.run(host="0.0.0.0", port=int(os.getenv("PORT", 5000)))
