"""Reconciliation of one Tenant record against the admin portal.

Facts to reconcile, in order:

1. the tenant account exists and carries the desired organization name and
   support email
2. the account's admin user is active and carries the desired username and
   email
3. a secret holding the tenant's provider key and admin URL exists
4. the Tenant status records the account and admin user ids
"""
from __future__ import annotations

import re
from typing import Optional, Union

import httpx

from .audit import BoundAuditLogger, JsonAuditLogger
from .errors import PreconditionError, ReconcileError, TenantOperatorError
from .lookup import Failure, Found, Missing, lookup
from .models import (
    ADMIN_PASSWORD_SECRET_FIELD,
    ADMIN_URL_SECRET_FIELD,
    PROVIDER_KEY_SECRET_FIELD,
    SECRET_LABELS,
    Account,
    ObjectMeta,
    Secret,
    Tenant,
    TenantStatus,
    User,
)
from .porta_client import PortaClient
from .stores import SecretStore, TenantStore

ADMIN_ROLE = "admin"
PENDING_STATE = "pending"

_HOSTNAME = re.compile(
    r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$", re.IGNORECASE
)


def admin_url_from_domain(domain: str) -> str:
    """Build the admin portal URL for a bare admin domain.

    ``tenant-admin.example.com`` becomes ``https://tenant-admin.example.com``;
    a domain that already carries an http(s) scheme keeps it. Internationalized
    domains come back in their IDNA (punycode) form.
    """
    candidate = (domain or "").strip()
    if not candidate:
        raise PreconditionError("Admin domain is empty")
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        url = httpx.URL(candidate)
    except httpx.InvalidURL as exc:
        raise PreconditionError(f"Malformed admin domain {domain!r}: {exc}") from exc
    host = url.raw_host.decode("ascii", errors="replace")
    if url.scheme not in ("http", "https") or not _HOSTNAME.match(host):
        raise PreconditionError(f"Malformed admin domain {domain!r}")
    return str(url).rstrip("/")


class TenantReconciler:
    """Converges one Tenant record with the admin portal.

    A reconciler instance addresses exactly one Tenant and is meant to be
    thrown away after ``run``. It keeps no state between runs; every run
    re-reads remote state.
    """

    def __init__(
        self,
        tenant: Tenant,
        portal: PortaClient,
        tenant_store: TenantStore,
        secret_store: SecretStore,
        audit_logger: Union[JsonAuditLogger, BoundAuditLogger],
    ):
        self.tenant = tenant
        self.portal = portal
        self.tenant_store = tenant_store
        self.secret_store = secret_store
        self.audit = audit_logger
        self._account_created = False

    def run(self) -> TenantStatus:
        account = self._stage("reconcile_account", self.resolve_account)
        admin = self._stage("reconcile_admin_user", self.resolve_admin, account)
        self._stage("reconcile_access_token_secret", self.ensure_credential_secret, account)
        self._stage("update_status", self.write_status, account, admin)
        return self.tenant.status

    def _stage(self, name: str, step, *args):
        try:
            return step(*args)
        except TenantOperatorError as exc:
            self.audit.error("reconcile_stage_failed", stage=name, error=str(exc))
            raise ReconcileError(self.tenant.key, name, str(exc)) from exc

    # Tenant account

    def resolve_account(self) -> Account:
        account = self._fetch_account()
        if account is None:
            return self._create_account()

        self.audit.info("tenant_already_exists", tenant_id=account.id)
        self._sync_account(account)
        return account

    def _fetch_account(self) -> Optional[Account]:
        tenant_id = self.tenant.status.tenant_id
        if not tenant_id:
            return None

        result = lookup(lambda: self.portal.show_account(tenant_id))
        if isinstance(result, Found):
            return result.value
        if isinstance(result, Missing):
            self.audit.warning("tenant_id_stale", tenant_id=tenant_id, reason=result.reason)
            return None
        raise result.error

    def _create_account(self) -> Account:
        spec = self.tenant.spec
        password = self._admin_password()
        self.audit.info(
            "creating_tenant",
            organization_name=spec.organization_name,
            username=spec.username,
            email=spec.email,
        )
        account = self.portal.create_account(
            spec.organization_name, spec.username, spec.email, password
        )
        self._account_created = True
        self.audit.info("tenant_created", tenant_id=account.id)
        return account

    def _admin_password(self) -> str:
        namespace = self.tenant.metadata.namespace
        name = self.tenant.spec.password_credentials_ref.name
        secret = self.secret_store.get(namespace, name)
        try:
            password = secret.get_value(ADMIN_PASSWORD_SECRET_FIELD)
        except ValueError as exc:
            raise PreconditionError(
                f"Admin password secret (ns: {namespace}, name: {name}) attribute "
                f"{ADMIN_PASSWORD_SECRET_FIELD} is malformed"
            ) from exc
        if password is None:
            raise PreconditionError(
                f"Not found admin password secret (ns: {namespace}, name: {name}) "
                f"attribute: {ADMIN_PASSWORD_SECRET_FIELD}"
            )
        return password

    def _sync_account(self, account: Account) -> None:
        spec = self.tenant.spec
        if (
            spec.organization_name == account.org_name
            and spec.email == account.support_email
        ):
            return

        self.audit.info("syncing_tenant", tenant_id=account.id)
        self.portal.update_account(
            account.id,
            {"support_email": spec.email, "org_name": spec.organization_name},
        )
        account.org_name = spec.organization_name
        account.support_email = spec.email

    # Admin user

    def resolve_admin(self, account: Account) -> User:
        admin = self._fetch_admin(account)
        self._sync_admin(account, admin)
        return admin

    def _fetch_admin(self, account: Account) -> User:
        admin_id = self.tenant.status.admin_id
        # An admin id recorded for a replaced account is meaningless.
        if not admin_id or self._account_created:
            return self._find_admin(account)
        return self.portal.read_user(account.id, admin_id)

    def _find_admin(self, account: Account) -> User:
        spec = self.tenant.spec
        # Admin users only, any state.
        users = self.portal.list_users(account.id, {"role": ADMIN_ROLE})
        for user in users:
            if user.email == spec.email and user.username == spec.username:
                return user
        raise PreconditionError(
            f"Admin user not found and should be available. TenantId: {account.id}. "
            f"Admin Username: {spec.username}, Admin email: {spec.email}"
        )

    def _sync_admin(self, account: Account, admin: User) -> None:
        spec = self.tenant.spec
        # Pending users do not reliably accept profile updates: activate first.
        if admin.state == PENDING_STATE:
            self.audit.info("activating_admin_user", tenant_id=account.id, user_id=admin.id)
            self.portal.activate_user(account.id, admin.id)
            admin.state = "active"
        else:
            self.audit.info("admin_user_already_active", tenant_id=account.id, user_id=admin.id)

        if spec.username == admin.username and spec.email == admin.email:
            return

        self.audit.info("syncing_admin_user", tenant_id=account.id, user_id=admin.id)
        self.portal.update_user(
            account.id, admin.id, {"username": spec.username, "email": spec.email}
        )
        admin.username = spec.username
        admin.email = spec.email

    # Access token secret

    def ensure_credential_secret(self, account: Account) -> None:
        ref = self.tenant.spec.tenant_secret_ref
        result = lookup(lambda: self.secret_store.get(ref.namespace, ref.name))
        if isinstance(result, Found):
            self.audit.info("access_token_secret_exists", secret_namespace=ref.namespace, secret_name=ref.name)
            return
        if isinstance(result, Failure):
            raise result.error

        self.audit.info("creating_access_token_secret", secret_namespace=ref.namespace, secret_name=ref.name)
        provider_key = self._provider_key(account)
        admin_url = admin_url_from_domain(account.admin_domain)
        secret = Secret(
            metadata=ObjectMeta(
                namespace=ref.namespace,
                name=ref.name,
                labels=dict(SECRET_LABELS),
                owner_references=[self.tenant.as_owner()],
            ),
            string_data={
                PROVIDER_KEY_SECRET_FIELD: provider_key,
                ADMIN_URL_SECRET_FIELD: admin_url,
            },
        )
        self.secret_store.create(secret)

    def _provider_key(self, account: Account) -> str:
        # The provider key is the user key of the account's only application.
        applications = self.portal.list_applications(account.id)
        if len(applications) != 1:
            raise PreconditionError(
                f"Unexpected application list. TenantId: {account.id}, "
                f"applications: {len(applications)}"
            )
        return applications[0].user_key

    # Status

    def write_status(self, account: Account, admin: User) -> None:
        status = TenantStatus(tenant_id=account.id, admin_id=admin.id)
        if status == self.tenant.status:
            return

        self.audit.info("updating_tenant_status", tenant_id=status.tenant_id, admin_id=status.admin_id)
        self.tenant.status = status
        self.tenant_store.update_status(self.tenant)
