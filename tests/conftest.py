"""Pytest configuration and shared fixtures."""

import json
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest
import structlog

from cdediag.core.config import CollectionConfig, CollectorConfig, KubernetesConfig
from cdediag.core.exceptions import QueryError
from cdediag.interfaces.cloud_provider import CloudQueryClient
from cdediag.interfaces.cluster_provider import ClusterQueryClient
from cdediag.interfaces.query_types import Err, Listing, Ok, PodContainers, Result


@pytest.fixture(autouse=True)
def quiet_structlog():
    """Keep structured log lines out of captured command output."""
    structlog.configure(
        processors=[],
        wrapper_class=structlog.make_filtering_bound_logger(logging.CRITICAL),
        logger_factory=structlog.ReturnLoggerFactory(),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()


class FakeClusterClient(ClusterQueryClient):
    """In-memory ClusterQueryClient recording every call."""

    def __init__(
        self,
        namespaces: list[str] | None = None,
        items: dict[tuple[str, str, str | None], list[dict[str, Any]]] | None = None,
        pods: dict[str, list[PodContainers]] | None = None,
        logs: dict[tuple[str, str, str], str] | None = None,
        failing_logs: set[tuple[str, str, str]] | None = None,
        failing_queries: set[tuple[str, str]] | None = None,
        namespaces_error: bool = False,
    ):
        self.namespaces = namespaces or []
        self.items = items or {}
        self.pods = pods or {}
        self.logs = logs or {}
        self.failing_logs = failing_logs or set()
        self.failing_queries = failing_queries or set()
        self.namespaces_error = namespaces_error
        self.calls: list[tuple[Any, ...]] = []

    def query_cluster_resource(
        self, scope: str, kind: str, selector: str | None = None
    ) -> Result[Listing]:
        self.calls.append(("query", scope, kind, selector))
        if (scope, kind) in self.failing_queries:
            return Err(QueryError("403 Forbidden", operation=f"list {kind} {scope}"))
        return Ok(
            Listing(
                scope=scope,
                kind=kind,
                selector=selector,
                items=self.items.get((scope, kind, selector), []),
            )
        )

    def list_namespaces(self) -> Result[list[str]]:
        self.calls.append(("namespaces",))
        if self.namespaces_error:
            return Err(QueryError("connection refused", operation="list_namespace"))
        return Ok(list(self.namespaces))

    def list_pods(self, scope: str, selector: str | None = None) -> Result[list[PodContainers]]:
        self.calls.append(("pods", scope, selector))
        return Ok(self.pods.get(scope, []))

    def read_container_log(self, scope: str, pod: str, container: str) -> Result[str]:
        self.calls.append(("log", scope, pod, container))
        if (scope, pod, container) in self.failing_logs:
            return Err(
                QueryError(
                    "400 Bad Request",
                    operation=f"read_namespaced_pod_log {scope}/{pod}/{container}",
                )
            )
        return Ok(self.logs.get((scope, pod, container), f"log of {container}\n"))

    def list_helm_releases(self) -> Result[Listing]:
        self.calls.append(("helm",))
        return Ok(
            Listing(
                scope="",
                kind="helmreleases",
                items=[
                    {"name": "dex-base", "namespace": "dex", "revision": "3", "status": "deployed"}
                ],
            )
        )


class FakeCloudClient(CloudQueryClient):
    """In-memory CloudQueryClient answering from a response table."""

    def __init__(self, responses: dict[tuple[str, str], Any] | None = None):
        self.responses = responses or {}
        self.calls: list[tuple[str, str, dict[str, Any]]] = []

    def query_cloud_resource(
        self, service: str, operation: str, params: dict[str, Any] | None = None
    ) -> Result[dict[str, Any]]:
        self.calls.append((service, operation, dict(params or {})))
        response = self.responses.get((service, operation), {})
        if isinstance(response, QueryError):
            return Err(response)
        return Ok(response)


@pytest.fixture
def cluster_client_class() -> type[FakeClusterClient]:
    """Expose the fake cluster client for tests building custom clusters."""
    return FakeClusterClient


@pytest.fixture
def cloud_client_class() -> type[FakeCloudClient]:
    """Expose the fake cloud client for tests building custom responses."""
    return FakeCloudClient


@pytest.fixture
def collector_config() -> CollectorConfig:
    """Configuration with a connection target and a short collection plan."""
    return CollectorConfig(
        kubernetes=KubernetesConfig(kubeconfig="/tmp/kubeconfig"),
        collection=CollectionConfig(
            system_namespaces=["dex", "monitoring"],
            resource_kinds=["pods", "services"],
            tenant_resource_kinds=["pods"],
        ),
    )


@pytest.fixture
def fake_cluster() -> FakeClusterClient:
    """Cluster with two tenants and a few pods."""
    return FakeClusterClient(
        namespaces=["dex", "dex-app-1a2b", "dex-app-3c4d", "monitoring", "kube-system"],
        pods={
            "dex": [
                PodContainers(name="dex-api-0", init_containers=("init-db",), containers=("api",))
            ],
            "dex-app-1a2b": [PodContainers(name="livy-0", containers=("worker", "sidecar"))],
        },
    )


@pytest.fixture
def fake_cloud() -> FakeCloudClient:
    """Cloud client with canned describe responses."""
    return FakeCloudClient(
        {
            ("eks", "describe_cluster"): {"cluster": {"name": "liftie-abc", "status": "ACTIVE"}},
            ("rds", "describe_db_instances"): {"DBInstances": [{"DBInstanceStatus": "available"}]},
            ("efs", "describe_file_systems"): {"FileSystems": [{"LifeCycleState": "available"}]},
            ("elbv2", "describe_load_balancers"): {
                "LoadBalancers": [
                    {"LoadBalancerArn": "arn:lb/1", "DNSName": "one.elb.amazonaws.com"},
                    {"LoadBalancerArn": "arn:lb/2", "DNSName": "two.elb.amazonaws.com"},
                ]
            },
            ("elbv2", "describe_tags"): {
                "TagDescriptions": [
                    {
                        "ResourceArn": "arn:lb/1",
                        "Tags": [{"Key": "kubernetes.io/cluster/liftie-abc", "Value": "owned"}],
                    },
                    {"ResourceArn": "arn:lb/2", "Tags": [{"Key": "team", "Value": "other"}]},
                ]
            },
        }
    )


@pytest.fixture
def mock_credential_cache() -> MagicMock:
    """Credential cache for runs without a role."""
    cache = MagicMock()
    cache.ensure_valid_session.return_value = None
    return cache


@pytest.fixture
def descriptor_file(tmp_path: Path) -> Path:
    """Service descriptor as returned by the describe call."""
    path = tmp_path / "service.json"
    path.write_text(
        json.dumps(
            {
                "service": {
                    "clusterId": "cluster-abc",
                    "provisionerId": "liftie-abc",
                    "cloudPlatform": "AWS",
                    "logLocation": "s3a://logs-bucket/dex/cluster-abc",
                }
            }
        )
    )
    return path


@pytest.fixture
def make_sts_response() -> Callable[[datetime], dict[str, Any]]:
    """Build an AssumeRole response expiring at the given time."""

    def _make(expiration: datetime) -> dict[str, Any]:
        return {
            "Credentials": {
                "AccessKeyId": "ASIAEXAMPLE",
                "SecretAccessKey": "wJalrXUtnFEMI/K7MDENG/bPxRfiCYEXAMPLEKEY",
                "SessionToken": "FwoGZXIvYXdzEBYaD...",
                "Expiration": expiration,
            },
            "AssumedRoleUser": {
                "Arn": "arn:aws:sts::123456789:assumed-role/Diag/cdediag-session"
            },
        }

    return _make


@pytest.fixture
def future_expiration() -> datetime:
    return datetime.now(timezone.utc) + timedelta(hours=1)


@pytest.fixture
def past_expiration() -> datetime:
    return datetime.now(timezone.utc) - timedelta(minutes=5)
