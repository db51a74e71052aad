from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from tenant_operator.audit import JsonAuditLogger
from tenant_operator.config import OperatorConfig
from tenant_operator.errors import ReconcileError, TenantOperatorError
from tenant_operator.tenant_manager import TenantManager


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile Tenant resources against the admin portal")
    parser.add_argument("--config", required=True, help="Path to operator configuration YAML")
    subparsers = parser.add_subparsers(dest="command", required=True)

    reconcile = subparsers.add_parser("reconcile", help="Reconcile tenants")
    target = reconcile.add_mutually_exclusive_group(required=True)
    target.add_argument("--tenant", help="Tenant key as namespace/name")
    target.add_argument("--all", action="store_true", help="Reconcile every stored tenant")

    subparsers.add_parser("list", help="List stored tenants and their status")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    config = OperatorConfig.load(Path(args.config))
    manager = TenantManager(config, audit_logger=JsonAuditLogger())

    if args.command == "list":
        result = []
        for key in manager.tenant_store.list_keys():
            try:
                tenant = manager.tenant_store.get(key)
            except TenantOperatorError as exc:
                result.append({"tenant": key, "error": str(exc)})
                continue
            result.append({"tenant": tenant.key, "status": tenant.status.model_dump(by_alias=True)})
        print(json.dumps(result, indent=2))
        return 0

    if args.all:
        outcomes = manager.reconcile_all()
        print(json.dumps([outcome.to_dict() for outcome in outcomes], indent=2))
        return 0 if all(outcome.succeeded for outcome in outcomes) else 1

    try:
        status = manager.reconcile(args.tenant)
    except ReconcileError as exc:
        print(json.dumps({"tenant": exc.tenant, "stage": exc.stage, "error": str(exc)}, indent=2))
        return 1
    except TenantOperatorError as exc:
        print(json.dumps({"tenant": args.tenant, "error": str(exc)}, indent=2))
        return 1

    print(json.dumps({"tenant": args.tenant, "status": status.model_dump(by_alias=True) if status else None}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
