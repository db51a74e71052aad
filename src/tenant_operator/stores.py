"""Local resource stores for Tenant records and Secrets.

The reconciler only depends on the ``TenantStore`` and ``SecretStore``
protocols. Two implementations are provided: in-memory stores (tests, web app
demos) and YAML-directory stores that keep one manifest per resource under
``<root>/<namespace>/<name>.yaml``.
"""
from __future__ import annotations

from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Protocol, Tuple

import yaml
from pydantic import BaseModel, ValidationError

from .errors import AlreadyExistsError, NotFoundError, StoreError
from .models import Secret, Tenant, parse_key


class TenantStore(Protocol):
    def get(self, key: str) -> Tenant: ...

    def list(self) -> List[Tenant]: ...

    def list_keys(self) -> List[str]: ...

    def update_status(self, tenant: Tenant) -> None: ...


class SecretStore(Protocol):
    def get(self, namespace: str, name: str) -> Secret: ...

    def create(self, secret: Secret) -> None: ...


class InMemoryTenantStore:
    def __init__(self, tenants: Iterable[Tenant] = ()):
        self._lock = Lock()
        self._tenants: Dict[str, Tenant] = {
            tenant.key: tenant.model_copy(deep=True) for tenant in tenants
        }

    def get(self, key: str) -> Tenant:
        namespace, name = parse_key(key)
        with self._lock:
            tenant = self._tenants.get(f"{namespace}/{name}")
            if tenant is None:
                raise NotFoundError(f"Tenant {namespace}/{name} not found")
            return tenant.model_copy(deep=True)

    def list(self) -> List[Tenant]:
        with self._lock:
            return [self._tenants[key].model_copy(deep=True) for key in sorted(self._tenants)]

    def list_keys(self) -> List[str]:
        with self._lock:
            return sorted(self._tenants)

    def update_status(self, tenant: Tenant) -> None:
        with self._lock:
            stored = self._tenants.get(tenant.key)
            if stored is None:
                raise NotFoundError(f"Tenant {tenant.key} not found")
            stored.status = tenant.status.model_copy()


class InMemorySecretStore:
    def __init__(self, secrets: Iterable[Secret] = ()):
        self._lock = Lock()
        self._secrets: Dict[Tuple[str, str], Secret] = {
            (secret.metadata.namespace, secret.metadata.name): secret.model_copy(deep=True)
            for secret in secrets
        }

    def get(self, namespace: str, name: str) -> Secret:
        with self._lock:
            secret = self._secrets.get((namespace, name))
            if secret is None:
                raise NotFoundError(f"Secret {namespace}/{name} not found")
            return secret.model_copy(deep=True)

    def create(self, secret: Secret) -> None:
        key = (secret.metadata.namespace, secret.metadata.name)
        with self._lock:
            if key in self._secrets:
                raise AlreadyExistsError(f"Secret {key[0]}/{key[1]} already exists")
            self._secrets[key] = secret.model_copy(deep=True)


class _YamlDirectory:
    def __init__(self, root: Path, model: type):
        self.root = Path(root)
        self.model = model

    def path_for(self, namespace: str, name: str) -> Path:
        return self.root / namespace / f"{name}.yaml"

    def read(self, path: Path):
        try:
            with path.open("r", encoding="utf-8") as handle:
                raw = yaml.safe_load(handle) or {}
        except FileNotFoundError as exc:
            raise NotFoundError(f"{self.model.__name__} manifest {path} not found") from exc
        except (OSError, yaml.YAMLError) as exc:
            raise StoreError(f"Failed to read {path}: {exc}") from exc

        if not isinstance(raw, dict):
            raise StoreError(f"Manifest {path} is not a mapping")

        # The directory layout is authoritative for identity.
        metadata = raw.setdefault("metadata", {})
        if not isinstance(metadata, dict):
            raise StoreError(f"Manifest {path} metadata is not a mapping")
        for field, expected in (("namespace", path.parent.name), ("name", path.stem)):
            declared = metadata.setdefault(field, expected)
            if declared != expected:
                raise StoreError(
                    f"Manifest {path} declares {field} {declared!r}, expected {expected!r}"
                )
        try:
            return self.model.model_validate(raw)
        except ValidationError as exc:
            raise StoreError(f"Invalid {self.model.__name__} manifest {path}: {exc}") from exc

    def write(self, path: Path, resource: BaseModel) -> None:
        payload = resource.model_dump(by_alias=True, mode="json")
        tmp_path = path.with_suffix(".yaml.tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with tmp_path.open("w", encoding="utf-8") as handle:
                yaml.safe_dump(payload, handle, sort_keys=False)
            tmp_path.replace(path)
        except OSError as exc:
            raise StoreError(f"Failed to write {path}: {exc}") from exc

    def manifests(self) -> List[Path]:
        if not self.root.exists():
            return []
        return sorted(self.root.glob("*/*.yaml"))


class YamlTenantStore:
    """Tenant records stored as custom resource manifests."""

    def __init__(self, root: Path):
        self._dir = _YamlDirectory(root, Tenant)

    def get(self, key: str) -> Tenant:
        namespace, name = parse_key(key)
        return self._dir.read(self._dir.path_for(namespace, name))

    def list(self) -> List[Tenant]:
        return [self._dir.read(path) for path in self._dir.manifests()]

    def list_keys(self) -> List[str]:
        return [f"{path.parent.name}/{path.stem}" for path in self._dir.manifests()]

    def update_status(self, tenant: Tenant) -> None:
        # Status subresource semantics: only the status block is replaced.
        path = self._dir.path_for(tenant.metadata.namespace, tenant.metadata.name)
        stored = self._dir.read(path)
        stored.status = tenant.status.model_copy()
        self._dir.write(path, stored)


class YamlSecretStore:
    def __init__(self, root: Path):
        self._dir = _YamlDirectory(root, Secret)

    def get(self, namespace: str, name: str) -> Secret:
        return self._dir.read(self._dir.path_for(namespace, name))

    def create(self, secret: Secret) -> None:
        path = self._dir.path_for(secret.metadata.namespace, secret.metadata.name)
        if path.exists():
            raise AlreadyExistsError(f"Secret {secret.metadata.key} already exists")
        self._dir.write(path, secret)
