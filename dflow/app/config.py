"""
Configuration Module for dflow
==============================

This module defines the configuration settings shared by the dflow entry points.

It uses Pydantic's `BaseSettings` to layer configuration values, in increasing precedence:

    1. Built-in field defaults.
    2. `.env` style files (`KEY=VALUE` per line, `#` comments ignored). When several
       files are given, later files override earlier ones.
    3. Process environment variables for the declared fields.
    4. `KEY=VALUE` tokens given on the command line.

Keys that do not match a declared field are kept as extras, so that values such as
per-agent host/port bindings still reach docker-compose or oc.

The resulting `Settings` object is frozen. It is never written back into `os.environ`;
`build_environment()` computes the explicit environment handed to each external tool.

Usage:
    .. code-block:: python
        from dflow.app.config import resolve_settings

        settings = resolve_settings(env_files=(".env",), overrides={"LOG_LEVEL": "DEBUG"})
        print(settings.ledger_url)

Environment Variables:
    - `PROJECT_NAME`: Compose project name (default: "dflow")
    - `LEDGER_URL`: Ledger endpoint (default: "http://localhost:9000")
    - `APPLICATION_URL`: Public URL of the web app (default: "http://localhost:5000")
    - `LOG_LEVEL`: Logging level (default: "INFO")
    - `WEB_HTTP_PORT`: Port the web app is published on (default: 5000)
    - `POSTGRESQL_DATABASE`, `POSTGRESQL_USER`, `POSTGRESQL_PASSWORD`: Application database
    - `POSTGRESQL_ADMIN_USER`, `POSTGRESQL_ADMIN_PASSWORD`: Wallet database admin credentials
    - `WALLET_TYPE`, `WALLET_ENCRYPTION_KEY`: Agent wallet storage settings
    - `LIFECYCLE_PLATFORM`: Platform driven by the lifecycle commands, "openshift" or "compose" (default: "openshift")
    - `PROJECT_NAMESPACE`, `DEPLOYMENT_ENV`: OpenShift namespace is `<PROJECT_NAMESPACE>-<DEPLOYMENT_ENV>`
    - `WALLET_NAME_ENV_VAR`: Variable read from a running agent to find its wallet (default: "WALLET_NAME")
    - `INTERACTIVE`: Ask the operator for confirmation at lifecycle checkpoints (default: true)
    - `BARRIER_TIMEOUT`, `BARRIER_POLL_INTERVAL`: Scale-down wait limits in seconds
"""

import logging
import os
from typing import Any, Dict, Iterable, Mapping, Optional, Sequence
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from dflow.app.core.controller.service_registry import Service

DEPLOYMENT_ENVIRONMENTS = ("dev", "test", "prod", "tools")
PLATFORMS = ("openshift", "compose")


class Settings(BaseSettings):
    """
    Effective configuration of a dflow management run.

    Attributes:
        project_name (str): Compose project name used to group the demo containers.
        ledger_url (str): Ledger the agents register with.
        application_url (str): Public URL of the dflow web app.
        log_level (str): Logging verbosity, upper-cased.
        web_http_port (int): Host port of the web app.
        deployment_env (Optional[str]): OpenShift environment selected with `-e`.
        interactive (bool): Whether lifecycle checkpoints wait for the operator.
        barrier_timeout (float): Maximum seconds to wait for a scale-down to complete.
    """

    # Demo
    project_name: str = Field(default="dflow")
    ledger_url: str = Field(default="http://localhost:9000")
    application_url: str = Field(default="http://localhost:5000")
    log_level: str = Field(default="INFO")
    web_http_port: int = Field(default=5000)

    # Wallet database
    postgresql_database: str = Field(default="dflow")
    postgresql_user: str = Field(default="DB_USER")
    postgresql_password: str = Field(default="DB_PASSWORD")
    postgresql_admin_user: str = Field(default="postgres")
    postgresql_admin_password: str = Field(default="mysecretpassword")
    wallet_type: str = Field(default="postgres_storage")
    wallet_encryption_key: str = Field(default="key")

    # External tools
    compose_command: str = Field(default="docker-compose")
    docker_command: str = Field(default="docker")
    s2i_command: str = Field(default="s2i")
    oc_command: str = Field(default="oc")

    # Lifecycle
    lifecycle_platform: str = Field(default="openshift")
    project_namespace: str = Field(default="dflow")
    deployment_env: Optional[str] = Field(default=None)
    wallet_name_env_var: str = Field(default="WALLET_NAME")
    wallet_db_service: str = Field(default="wallet-db")
    scale_up_replicas: int = Field(default=1, ge=1)
    interactive: bool = Field(default=True)
    barrier_timeout: float = Field(default=600.0, gt=0)
    barrier_poll_interval: float = Field(default=2.0, gt=0)
    health_path: str = Field(default="/health")

    # Image builds
    build_root: str = Field(default=".")
    proxy_base_context: str = Field(default="proxy/base")
    proxy_base_image: str = Field(default="dflow-proxy-base")
    proxy_runtime_context: str = Field(default="proxy/runtime")
    proxy_runtime_image: str = Field(default="dflow-proxy-runtime")
    builder_context: str = Field(default="frontend/builder")
    builder_image: str = Field(default="dflow-angular-builder")
    frontend_source: str = Field(default="frontend")
    app_image: str = Field(default="dflow")
    app_dev_image: str = Field(default="dflow-dev")
    runtime_artifact: str = Field(default="/opt/app-root/src/dist/:app")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="allow",
        frozen=True,
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        level = v.upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"log_level must be one of {sorted(logging.getLevelNamesMapping())}")
        return level

    @field_validator("lifecycle_platform")
    @classmethod
    def validate_platform(cls, v):
        if v.lower() not in PLATFORMS:
            raise ValueError(f"lifecycle_platform must be one of {PLATFORMS}")
        return v.lower()

    @field_validator("deployment_env")
    @classmethod
    def validate_deployment_env(cls, v):
        if v is None:
            return v
        if v.lower() not in DEPLOYMENT_ENVIRONMENTS:
            raise ValueError(f"deployment_env must be one of {DEPLOYMENT_ENVIRONMENTS}")
        return v.lower()

    @property
    def namespace(self) -> str:
        """ OpenShift namespace of the selected deployment environment. """
        return f"{self.project_namespace}-{self.deployment_env}"

    def binding(self, key: str, default: Any = None) -> Any:
        """
        Look up a configuration value by its environment-style key.

        Args:
            key (str): Key such as "WEB_HTTP_PORT" or "BCREG_AGENT_PORT".
            default (Any): Value returned when the key is not configured.
        """
        name = key.lower()
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name, default)

    def service_url(self, service: Service) -> str:
        """ HTTP base URL of a service from its host/port bindings. """
        host = self.binding(service.host_env_var, service.default_host) if service.host_env_var \
            else service.default_host
        port = self.binding(service.port_env_var, service.default_port) if service.port_env_var \
            else service.default_port
        return f"http://{host}:{port}"

    def exported(self) -> Dict[str, str]:
        """ Resolved values as an environment mapping with upper-case keys. """
        env = {}
        for name in type(self).model_fields:
            value = getattr(self, name)
            if value is not None:
                env[name.upper()] = _env_value(value)
        for name, value in (self.model_extra or {}).items():
            if value is not None:
                env[name.upper()] = _env_value(value)
        return env


def _env_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def resolve_settings(env_files: Sequence[str] = (),
                     overrides: Optional[Mapping[str, str]] = None) -> Settings:
    """
    Build the effective configuration.

    Args:
        env_files (Sequence[str]): `.env` style files, lowest precedence first. Missing files are skipped.
        overrides (Optional[Mapping[str, str]]): `KEY=VALUE` pairs from the command line.

    Returns:
        Settings: Frozen configuration object.

    Raises:
        pydantic.ValidationError: If a value fails validation.
    """
    kwargs = {key.lower(): value for key, value in (overrides or {}).items()}
    return Settings(_env_file=tuple(env_files) or None, **kwargs)


def build_environment(settings: Settings,
                      services: Iterable[Service] = (),
                      base: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
    """
    Compute the environment handed to an external tool.

    Service host/port defaults come first, then the inherited environment, then the
    resolved settings.

    Args:
        settings (Settings): Effective configuration.
        services (Iterable[Service]): Services whose host/port bindings are exported.
        base (Optional[Mapping[str, str]]): Inherited environment, defaults to `os.environ`.

    Returns:
        Dict[str, str]: Environment for a child process.
    """
    env = {}
    for service in services:
        if service.host_env_var and service.default_host is not None:
            env[service.host_env_var] = service.default_host
        if service.port_env_var and service.default_port is not None:
            env[service.port_env_var] = str(service.default_port)
    env.update(os.environ if base is None else base)
    env.update(settings.exported())
    return env
