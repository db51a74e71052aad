from __future__ import annotations

import time
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .audit import JsonAuditLogger
from .config import PortalConfig
from .errors import NotFoundError, PortaApiError, PreconditionError
from .models import Account, Application, User

THROTTLE_STATUS_CODES = (429, 503, 504)
MAX_BACKOFF_SECONDS = 30.0

ModelT = TypeVar("ModelT", bound=BaseModel)


class PortaClient:
    """Admin portal API client with throttling retry and audit logging.

    Authenticates with the master provider access token, passed as the
    ``access_token`` parameter on every request.
    """

    def __init__(
        self,
        portal_config: PortalConfig,
        audit_logger: JsonAuditLogger,
        transport: Optional[httpx.BaseTransport] = None,
        sleep=time.sleep,
    ):
        self.portal_config = portal_config
        self.audit = audit_logger
        self.max_retries = portal_config.max_retries
        try:
            self._access_token = portal_config.access_token.resolve()
        except ValueError as exc:
            raise PreconditionError(f"Admin portal access token is unavailable: {exc}") from exc
        self._sleep = sleep
        self.session = httpx.Client(
            base_url=portal_config.admin_portal_url,
            timeout=portal_config.timeout,
            verify=portal_config.verify_tls,
            transport=transport,
            headers={"Accept": "application/json"},
        )

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "PortaClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Mapping[str, Any]] = None,
        data: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        query = dict(params or {})
        query["access_token"] = self._access_token
        backoff = 1.0

        for attempt in range(1, self.max_retries + 2):
            try:
                response = self.session.request(method, path, params=query, data=data)
            except httpx.HTTPError as exc:
                self.audit.error("portal_request_error", method=method, path=path, error=str(exc))
                raise PortaApiError(f"{method} {path} failed: {exc}") from exc

            if response.status_code in THROTTLE_STATUS_CODES and attempt <= self.max_retries:
                retry_after = self._get_retry_after_seconds(response) or backoff
                self.audit.warning(
                    "portal_throttled",
                    method=method,
                    path=path,
                    status=response.status_code,
                    retry_after=retry_after,
                    attempt=attempt,
                )
                self._sleep(retry_after)
                backoff = min(backoff * 2, MAX_BACKOFF_SECONDS)
                continue

            if response.status_code == 404:
                self.audit.info("portal_resource_not_found", method=method, path=path)
                raise NotFoundError(f"{method} {path}: not found")

            if response.status_code >= 400:
                self.audit.error(
                    "portal_request_failed",
                    method=method,
                    path=path,
                    status=response.status_code,
                    body=response.text,
                )
                raise PortaApiError(
                    f"{method} {path} returned {response.status_code}",
                    status_code=response.status_code,
                    body=response.text,
                )

            self.audit.debug(
                "portal_request_succeeded",
                method=method,
                path=path,
                status=response.status_code,
            )
            if not response.content:
                return {}
            try:
                return response.json()
            except ValueError as exc:
                raise PortaApiError(
                    f"{method} {path} returned a non-JSON body",
                    status_code=response.status_code,
                    body=response.text,
                ) from exc

        raise PortaApiError(f"Maximum retry attempts exceeded for {method} {path}")

    def _get_retry_after_seconds(self, response: httpx.Response) -> Optional[float]:
        retry_after = response.headers.get("Retry-After")
        if retry_after is None:
            return None
        try:
            return float(retry_after)
        except ValueError:
            return None

    # Provider accounts (tenants) live under the master API.

    def show_account(self, account_id: int) -> Account:
        payload = self.request("GET", f"/master/api/providers/{account_id}.json")
        return _unwrap(payload.get("signup"), "account", Account)

    def create_account(self, org_name: str, username: str, email: str, password: str) -> Account:
        payload = self.request(
            "POST",
            "/master/api/providers.json",
            data={"org_name": org_name, "username": username, "email": email, "password": password},
        )
        return _unwrap(payload.get("signup"), "account", Account)

    def update_account(self, account_id: int, fields: Mapping[str, Any]) -> Account:
        payload = self.request("PUT", f"/master/api/providers/{account_id}.json", data=fields)
        return _unwrap(payload.get("signup"), "account", Account)

    def list_users(self, account_id: int, filters: Optional[Mapping[str, Any]] = None) -> List[User]:
        payload = self.request("GET", f"/admin/api/accounts/{account_id}/users.json", params=filters)
        return [_unwrap(item, "user", User) for item in payload.get("users", [])]

    def read_user(self, account_id: int, user_id: int) -> User:
        payload = self.request("GET", f"/admin/api/accounts/{account_id}/users/{user_id}.json")
        return _unwrap(payload, "user", User)

    def update_user(self, account_id: int, user_id: int, fields: Mapping[str, Any]) -> User:
        payload = self.request(
            "PUT", f"/admin/api/accounts/{account_id}/users/{user_id}.json", data=fields
        )
        return _unwrap(payload, "user", User)

    def activate_user(self, account_id: int, user_id: int) -> None:
        self.request("PUT", f"/admin/api/accounts/{account_id}/users/{user_id}/activate.json")

    def list_applications(self, account_id: int) -> List[Application]:
        payload = self.request("GET", f"/admin/api/accounts/{account_id}/applications.json")
        return [_unwrap(item, "application", Application) for item in payload.get("applications", [])]


def _unwrap(payload: Any, key: str, model: Type[ModelT]) -> ModelT:
    """Validate a portal entity wrapped as ``{key: {...}}``."""
    try:
        return model.model_validate(payload[key])
    except (KeyError, TypeError, ValidationError) as exc:
        raise PortaApiError(f"Unexpected {key} payload from admin portal: {exc}") from exc
