from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


class SecretRef(BaseModel):
    """Reference to a secret source without storing the secret in code.

    The admin portal access token should be injected through an environment
    variable at runtime. Inline values are accepted for local development only.
    """

    env: Optional[str] = Field(
        default=None, description="Environment variable name containing the secret"
    )
    value: Optional[str] = Field(
        default=None,
        description="Inline value (use only for local development; avoid in production)",
    )

    model_config = ConfigDict(extra="forbid")

    def resolve(self) -> str:
        if self.env:
            env_value = os.getenv(self.env)
            if env_value:
                return env_value
            raise ValueError(f"Environment variable {self.env} is not set")
        if self.value:
            return self.value
        raise ValueError("No secret reference provided for resolution")


class PortalConfig(BaseModel):
    admin_portal_url: str = Field(description="Base URL of the master admin portal")
    access_token: SecretRef
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=3, ge=0)
    verify_tls: bool = True

    model_config = ConfigDict(extra="forbid")

    @field_validator("admin_portal_url")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        value = value.strip().rstrip("/")
        if not value.startswith(("http://", "https://")):
            raise ValueError("admin_portal_url must be an http(s) URL")
        return value


class StoreConfig(BaseModel):
    tenants_dir: Path = Field(default=Path("resources/tenants"))
    secrets_dir: Path = Field(default=Path("resources/secrets"))

    model_config = ConfigDict(extra="forbid")


class OperatorConfig(BaseModel):
    portal: PortalConfig
    stores: StoreConfig = Field(default_factory=StoreConfig)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "OperatorConfig":
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}

        config = cls(**raw)
        # Relative store paths are resolved against the config file location.
        stores = config.stores
        base = config_path.parent
        config.stores = StoreConfig(
            tenants_dir=stores.tenants_dir if stores.tenants_dir.is_absolute() else base / stores.tenants_dir,
            secrets_dir=stores.secrets_dir if stores.secrets_dir.is_absolute() else base / stores.secrets_dir,
        )
        return config
