"""Configuration management for cdediag."""

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from cdediag.core.exceptions import ConfigurationError
from cdediag.core.models import OutputFormat

DEFAULT_SYSTEM_NAMESPACES = [
    "dex",
    "dex-base",
    "shared-services",
    "yunikorn",
    "monitoring",
]

DEFAULT_RESOURCE_KINDS = [
    "pods",
    "services",
    "endpoints",
    "deployments",
    "statefulsets",
    "daemonsets",
    "replicasets",
    "jobs",
    "cronjobs",
    "configmaps",
    "persistentvolumeclaims",
    "ingresses",
    "serviceaccounts",
    "events",
]

DEFAULT_TENANT_RESOURCE_KINDS = [
    "pods",
    "services",
    "deployments",
    "statefulsets",
    "jobs",
    "persistentvolumeclaims",
    "ingresses",
]


class AWSConfig(BaseModel):
    """AWS configuration."""

    region: str = "us-west-2"
    profile: str | None = None
    role_arn: str | None = None
    session_name: str = "cdediag-session"
    session_duration_seconds: int = 3600
    cache_path: str = "~/.cdediag/session.json"


class KubernetesConfig(BaseModel):
    """Kubernetes connection configuration."""

    kubeconfig: str | None = None
    context: str | None = None
    in_cluster: bool = False

    @property
    def has_target(self) -> bool:
        """Whether a connection target has been supplied."""
        return bool(self.kubeconfig) or self.in_cluster


class CollectionConfig(BaseModel):
    """What to collect and how to render it."""

    system_namespaces: list[str] = Field(default_factory=lambda: list(DEFAULT_SYSTEM_NAMESPACES))
    resource_kinds: list[str] = Field(default_factory=lambda: list(DEFAULT_RESOURCE_KINDS))
    tenant_resource_kinds: list[str] = Field(
        default_factory=lambda: list(DEFAULT_TENANT_RESOURCE_KINDS)
    )
    tenant_pattern: str = r"^dex-app-[a-z0-9]+$"
    tenant_instance_label: str = "app.kubernetes.io/instance"
    tenant_airflow_label: str = "release"
    request_timeout: float = 60.0
    output_format: OutputFormat = OutputFormat.WIDE


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"
    format: str = "console"
    output: str = "stderr"


class CollectorConfig(BaseModel):
    """Main cdediag configuration."""

    aws: AWSConfig = Field(default_factory=AWSConfig)
    kubernetes: KubernetesConfig = Field(default_factory=KubernetesConfig)
    collection: CollectionConfig = Field(default_factory=CollectionConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: str | Path) -> "CollectorConfig":
        """Load configuration from YAML file.

        Args:
            path: Path to configuration file

        Returns:
            CollectorConfig instance

        Raises:
            ConfigurationError: If file cannot be loaded or parsed
        """
        config_path = Path(path).expanduser()

        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with config_path.open() as f:
                data = yaml.safe_load(f) or {}
        except Exception as e:
            raise ConfigurationError(f"Failed to load configuration: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Invalid configuration: expected a mapping in {config_path}")

        try:
            return cls(**data)
        except Exception as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary.

        Returns:
            Dictionary representation
        """
        return self.model_dump()
