"""Resource models for the tenant operator.

Two families live here: the Kubernetes-shaped local resources (``Tenant`` and
``Secret``) that are loaded from and written back to the stores, and the
admin portal entities (``Account``, ``User``, ``Application``) parsed from the
portal's JSON payloads.
"""
from __future__ import annotations

import base64
import binascii
import uuid
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator

TENANT_API_VERSION = "capabilities.3scale.net/v1alpha1"
TENANT_KIND = "Tenant"

ADMIN_PASSWORD_SECRET_FIELD = "admin_password"
PROVIDER_KEY_SECRET_FIELD = "token"
ADMIN_URL_SECRET_FIELD = "adminURL"
SECRET_LABELS = {"app": "tenant-operator"}


def parse_key(key: str) -> Tuple[str, str]:
    """Split a ``namespace/name`` key. A bare name maps to the ``default`` namespace."""
    namespace, _, name = key.rpartition("/")
    if not name:
        raise ValueError(f"Invalid resource key: {key!r}")
    return namespace or "default", name


class _Resource(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class OwnerReference(_Resource):
    api_version: str = Field(alias="apiVersion")
    kind: str
    name: str
    uid: str
    controller: bool = True
    block_owner_deletion: bool = Field(default=True, alias="blockOwnerDeletion")


class ObjectMeta(_Resource):
    name: str
    namespace: str = "default"
    uid: str = ""
    labels: Dict[str, str] = Field(default_factory=dict)
    owner_references: List[OwnerReference] = Field(default_factory=list, alias="ownerReferences")

    @model_validator(mode="after")
    def default_uid(self) -> "ObjectMeta":
        # Manifests written by hand carry no uid; derive a stable one from the key.
        if not self.uid:
            self.uid = str(uuid.uuid5(uuid.NAMESPACE_URL, self.key))
        return self

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"


class LocalObjectReference(_Resource):
    name: str


class SecretReference(_Resource):
    name: str
    namespace: str


class TenantSpec(_Resource):
    organization_name: str = Field(alias="organizationName")
    username: str
    email: str
    password_credentials_ref: LocalObjectReference = Field(alias="passwordCredentialsRef")
    tenant_secret_ref: SecretReference = Field(alias="tenantSecretRef")


class TenantStatus(_Resource):
    """Observed identifiers. Zero means the remote object is not known yet."""

    tenant_id: int = Field(default=0, alias="tenantId")
    admin_id: int = Field(default=0, alias="adminId")


class Tenant(_Resource):
    api_version: str = Field(default=TENANT_API_VERSION, alias="apiVersion")
    kind: str = TENANT_KIND
    metadata: ObjectMeta
    spec: TenantSpec
    status: TenantStatus = Field(default_factory=TenantStatus)

    @property
    def key(self) -> str:
        return self.metadata.key

    def as_owner(self) -> OwnerReference:
        return OwnerReference(
            api_version=self.api_version,
            kind=self.kind,
            name=self.metadata.name,
            uid=self.metadata.uid,
        )


class Secret(_Resource):
    api_version: str = Field(default="v1", alias="apiVersion")
    kind: str = "Secret"
    metadata: ObjectMeta
    type: str = "Opaque"
    data: Dict[str, str] = Field(default_factory=dict)
    string_data: Dict[str, str] = Field(default_factory=dict, alias="stringData")

    def get_value(self, field: str) -> Optional[str]:
        """Return a field value, preferring ``stringData`` over base64 ``data``.

        Raises ``ValueError`` when the ``data`` entry is not valid base64 text.
        """
        if field in self.string_data:
            return self.string_data[field]
        encoded = self.data.get(field)
        if encoded is None:
            return None
        try:
            return base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as exc:
            raise ValueError(f"Secret field {field} is not valid base64 text") from exc


class Account(_Resource):
    id: int
    org_name: str = ""
    support_email: str = ""
    admin_domain: str = ""
    state: str = ""


class User(_Resource):
    id: int
    account_id: Optional[int] = None
    username: str = ""
    email: str = ""
    role: str = ""
    state: str = ""


class Application(_Resource):
    id: int
    state: str = ""
    user_key: str = ""
