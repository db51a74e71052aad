"""Pytest configuration and shared fixtures for tenant operator tests."""

from __future__ import annotations

import itertools
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple

import pytest

from tenant_operator.audit import InMemoryAuditStore, JsonAuditLogger
from tenant_operator.config import OperatorConfig
from tenant_operator.errors import NotFoundError
from tenant_operator.models import (
    Account,
    Application,
    LocalObjectReference,
    ObjectMeta,
    Secret,
    SecretReference,
    Tenant,
    TenantSpec,
    User,
)
from tenant_operator.stores import InMemorySecretStore, InMemoryTenantStore

WRITE_CALLS = {"create_account", "update_account", "activate_user", "update_user"}


class FakePortal:
    """Stateful stand-in for the admin portal that records every call."""

    def __init__(self) -> None:
        self.accounts: Dict[int, Account] = {}
        self.users: Dict[int, List[User]] = {}
        self.applications: Dict[int, List[Application]] = {}
        self.calls: List[Tuple[str, tuple]] = []
        self._ids = itertools.count(100)

    def __enter__(self) -> "FakePortal":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        pass

    @property
    def call_names(self) -> List[str]:
        return [name for name, _ in self.calls]

    @property
    def write_calls(self) -> List[Tuple[str, tuple]]:
        return [call for call in self.calls if call[0] in WRITE_CALLS]

    def add_account(
        self,
        org_name: str,
        username: str,
        email: str,
        admin_state: str = "pending",
        admin_domain: Optional[str] = None,
        applications: int = 1,
    ) -> Tuple[Account, User]:
        account = Account(
            id=next(self._ids),
            org_name=org_name,
            support_email=email,
            admin_domain=admin_domain if admin_domain is not None else f"{username}-admin.example.com",
            state="approved",
        )
        admin = User(
            id=next(self._ids),
            account_id=account.id,
            username=username,
            email=email,
            role="admin",
            state=admin_state,
        )
        self.accounts[account.id] = account
        self.users[account.id] = [admin]
        self.applications[account.id] = [
            Application(id=next(self._ids), state="live", user_key=f"provider-key-{account.id}-{index}")
            for index in range(applications)
        ]
        return account.model_copy(), admin.model_copy()

    def show_account(self, account_id: int) -> Account:
        self.calls.append(("show_account", (account_id,)))
        if account_id not in self.accounts:
            raise NotFoundError(f"account {account_id} not found")
        return self.accounts[account_id].model_copy()

    def create_account(self, org_name: str, username: str, email: str, password: str) -> Account:
        self.calls.append(("create_account", (org_name, username, email, password)))
        account, _ = self.add_account(org_name, username, email)
        return account

    def update_account(self, account_id: int, fields: Mapping[str, Any]) -> Account:
        self.calls.append(("update_account", (account_id, dict(fields))))
        account = self.accounts[account_id]
        for key, value in fields.items():
            setattr(account, key, value)
        return account.model_copy()

    def list_users(self, account_id: int, filters: Optional[Mapping[str, Any]] = None) -> List[User]:
        self.calls.append(("list_users", (account_id, dict(filters or {}))))
        role = (filters or {}).get("role")
        return [
            user.model_copy()
            for user in self.users.get(account_id, [])
            if role is None or user.role == role
        ]

    def read_user(self, account_id: int, user_id: int) -> User:
        self.calls.append(("read_user", (account_id, user_id)))
        return self._user(account_id, user_id).model_copy()

    def update_user(self, account_id: int, user_id: int, fields: Mapping[str, Any]) -> User:
        self.calls.append(("update_user", (account_id, user_id, dict(fields))))
        user = self._user(account_id, user_id)
        for key, value in fields.items():
            setattr(user, key, value)
        return user.model_copy()

    def activate_user(self, account_id: int, user_id: int) -> None:
        self.calls.append(("activate_user", (account_id, user_id)))
        self._user(account_id, user_id).state = "active"

    def list_applications(self, account_id: int) -> List[Application]:
        self.calls.append(("list_applications", (account_id,)))
        return [app.model_copy() for app in self.applications.get(account_id, [])]

    def _user(self, account_id: int, user_id: int) -> User:
        for user in self.users.get(account_id, []):
            if user.id == user_id:
                return user
        raise NotFoundError(f"user {account_id}/{user_id} not found")


def make_tenant(
    name: str = "acme",
    namespace: str = "default",
    organization_name: str = "Acme Corp",
    username: str = "admin",
    email: str = "admin@acme.example.com",
    tenant_id: int = 0,
    admin_id: int = 0,
) -> Tenant:
    tenant = Tenant(
        metadata=ObjectMeta(name=name, namespace=namespace),
        spec=TenantSpec(
            organization_name=organization_name,
            username=username,
            email=email,
            password_credentials_ref=LocalObjectReference(name=f"{name}-admin-password"),
            tenant_secret_ref=SecretReference(namespace=namespace, name=f"{name}-tenant-secret"),
        ),
    )
    tenant.status.tenant_id = tenant_id
    tenant.status.admin_id = admin_id
    return tenant


def make_password_secret(tenant: Tenant, password: str = "s3cret") -> Secret:
    return Secret(
        metadata=ObjectMeta(
            namespace=tenant.metadata.namespace,
            name=tenant.spec.password_credentials_ref.name,
        ),
        string_data={"admin_password": password},
    )


@pytest.fixture
def portal() -> FakePortal:
    return FakePortal()


@pytest.fixture
def tenant() -> Tenant:
    return make_tenant()


@pytest.fixture
def tenant_store(tenant: Tenant) -> InMemoryTenantStore:
    return InMemoryTenantStore([tenant.model_copy(deep=True)])


@pytest.fixture
def secret_store(tenant: Tenant) -> InMemorySecretStore:
    return InMemorySecretStore([make_password_secret(tenant)])


@pytest.fixture
def audit_store() -> InMemoryAuditStore:
    return InMemoryAuditStore()


@pytest.fixture
def audit_logger(audit_store: InMemoryAuditStore) -> JsonAuditLogger:
    return JsonAuditLogger(name="tenant_operator.tests", level=logging.DEBUG, store=audit_store)


@pytest.fixture
def operator_config(tmp_path, monkeypatch) -> OperatorConfig:
    monkeypatch.setenv("PORTAL_MASTER_ACCESS_TOKEN", "master-token")
    return OperatorConfig(
        portal={
            "admin_portal_url": "https://master.example.com",
            "access_token": {"env": "PORTAL_MASTER_ACCESS_TOKEN"},
            "max_retries": 2,
        },
        stores={
            "tenants_dir": tmp_path / "tenants",
            "secrets_dir": tmp_path / "secrets",
        },
    )
