"""Collection orchestrator: status snapshot and per-container logs."""

from __future__ import annotations

import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, TextIO
from urllib.parse import urlparse

from cdediag.collection.context import load_context
from cdediag.collection.discovery import discover_tenants
from cdediag.collection.formatting import render_document, render_listing
from cdediag.collection.report import CollectionReport
from cdediag.core.exceptions import ConfigurationError
from cdediag.core.models import LogsSummary, SectionKind
from cdediag.interfaces.cloud_provider import CloudQueryClient
from cdediag.interfaces.cloud_types import ClusterContext, CredentialSet
from cdediag.interfaces.cluster_provider import ClusterQueryClient
from cdediag.interfaces.query_types import Err, Listing, Ok, Result
from cdediag.utils.logging import get_logger

if TYPE_CHECKING:
    from cdediag.core.config import CollectorConfig
    from cdediag.utils.credential_cache import CredentialCache

logger = get_logger(__name__)

CloudClientFactory = Callable[[CredentialSet | None], CloudQueryClient]

# elbv2 DescribeTags accepts at most 20 ARNs per call
ELB_TAG_BATCH = 20


class Collector:
    """Compose credentials, context, discovery and queries into status and logs runs.

    Execution is strictly sequential. A failed query never aborts a run: it is
    recorded as an error section (status) or as the unit content (logs).
    """

    def __init__(
        self,
        config: CollectorConfig,
        cluster_client: ClusterQueryClient,
        cloud_client_factory: CloudClientFactory,
        credential_cache: CredentialCache,
    ):
        """Initialize collector.

        Args:
            config: Collector configuration
            cluster_client: Kubernetes query client
            cloud_client_factory: Builds a cloud client from optional temporary credentials
            credential_cache: Session cache used before every run
        """
        self.config = config
        self.cluster_client = cluster_client
        self.cloud_client_factory = cloud_client_factory
        self.credential_cache = credential_cache
        self.credentials: CredentialSet | None = None

        self._cloud_routines: dict[
            str, Callable[[CloudQueryClient, ClusterContext, CollectionReport], None]
        ] = {
            "aws": self._aws_status,
        }

    @classmethod
    def from_config(cls, config: CollectorConfig) -> Collector:
        """Wire the default Kubernetes and AWS implementations.

        Raises:
            ConfigurationError: If no connection target is configured
        """
        from cdediag.adapters.aws_adapter import AWSAdapter
        from cdediag.adapters.k8s_adapter import KubernetesAdapter
        from cdediag.utils.credential_cache import CredentialCache

        if not config.kubernetes.has_target:
            raise ConfigurationError("No connection target: pass --kubeconfig or set KUBECONFIG")

        return cls(
            config=config,
            cluster_client=KubernetesAdapter.from_config(config),
            cloud_client_factory=lambda credentials: AWSAdapter.from_config(config, credentials),
            credential_cache=CredentialCache.from_config(config),
        )

    def _require_target(self) -> None:
        if not self.config.kubernetes.has_target:
            raise ConfigurationError("No connection target: pass --kubeconfig or set KUBECONFIG")

    def ensure_session(self) -> CredentialSet | None:
        """Ensure temporary credentials for the configured role, if any.

        Raises:
            AuthError: If the credential exchange fails
        """
        self.credentials = self.credential_cache.ensure_valid_session(self.config.aws.role_arn)
        return self.credentials

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def _add_listing(self, report: CollectionReport, label: str, result: Result[Listing]) -> None:
        if isinstance(result, Err):
            logger.warning("section_failed", label=label, error=result.message)
            report.add(label, SectionKind.ERROR, result.message)
            return
        report.add(
            label,
            SectionKind.LISTING,
            render_listing(result.value, self.config.collection.output_format),
        )

    def _add_document(
        self, report: CollectionReport, label: str, result: Result[dict[str, Any]]
    ) -> None:
        if isinstance(result, Err):
            logger.warning("section_failed", label=label, error=result.message)
            report.add(label, SectionKind.ERROR, result.message)
            return
        report.add(
            label,
            SectionKind.CLOUD,
            render_document(result.value, self.config.collection.output_format),
        )

    def status(self, descriptor_path: str | Path | None = None) -> CollectionReport:
        """Collect a single structured snapshot.

        Args:
            descriptor_path: Optional cluster descriptor; without it cloud sections are skipped

        Returns:
            CollectionReport in collection order

        Raises:
            ConfigurationError: If no connection target is configured or the descriptor is unreadable
            AuthError: If the credential exchange fails
        """
        self._require_target()
        collection = self.config.collection

        credentials = self.ensure_session()
        context = load_context(descriptor_path)
        report = CollectionReport()

        logger.info("status_collection_started", cluster_id=context.cluster_id)

        if not context.is_empty:
            platform = context.cloud_platform.lower()
            routine = self._cloud_routines.get(platform)
            if routine is None:
                report.add(
                    f"cloud::{platform or 'unknown'}",
                    SectionKind.INFO,
                    f"Cloud platform '{context.cloud_platform}' is not supported; "
                    "cloud resources were not collected.",
                )
            else:
                try:
                    cloud = self.cloud_client_factory(credentials)
                except ConfigurationError as e:
                    logger.warning("cloud_client_unavailable", platform=platform, error=str(e))
                    report.add(f"cloud::{platform}", SectionKind.ERROR, str(e))
                else:
                    routine(cloud, context, report)

        self._add_listing(report, "helm::releases", self.cluster_client.list_helm_releases())

        for namespace in collection.system_namespaces:
            for kind in collection.resource_kinds:
                self._add_listing(
                    report,
                    f"{namespace}::{kind}",
                    self.cluster_client.query_cluster_resource(namespace, kind),
                )

        for tenant in discover_tenants(self.cluster_client, collection.tenant_pattern):
            for kind in collection.tenant_resource_kinds:
                for selector_name, selector in self.tenant_selectors(tenant):
                    self._add_listing(
                        report,
                        f"{tenant}::{kind}::{selector_name}",
                        self.cluster_client.query_cluster_resource(tenant, kind, selector),
                    )

        logger.info(
            "status_collection_completed",
            sections=len(report),
            errors=len(report.by_kind(SectionKind.ERROR)),
        )
        return report

    def tenant_selectors(self, tenant: str) -> list[tuple[str, str]]:
        """Label selectors identifying a tenant's workloads.

        The generic instance label comes first, then the Airflow chart's release label.
        """
        collection = self.config.collection
        return [
            ("instance", f"{collection.tenant_instance_label}={tenant}"),
            ("airflow", f"{collection.tenant_airflow_label}={tenant}"),
        ]

    def _aws_status(
        self, cloud: CloudQueryClient, context: ClusterContext, report: CollectionReport
    ) -> None:
        """Describe the AWS resources backing the service cluster."""
        eks_name = context.provisioner_id or context.cluster_id
        self._add_document(
            report,
            "cloud::eks",
            cloud.query_cloud_resource("eks", "describe_cluster", {"name": eks_name}),
        )
        self._add_document(
            report,
            "cloud::rds",
            cloud.query_cloud_resource(
                "rds", "describe_db_instances", {"DBInstanceIdentifier": context.cluster_id}
            ),
        )
        self._add_document(
            report,
            "cloud::efs",
            cloud.query_cloud_resource(
                "efs", "describe_file_systems", {"CreationToken": context.cluster_id}
            ),
        )
        self._add_document(report, "cloud::elb", self._find_load_balancers(cloud, eks_name))

        bucket, prefix = _parse_log_location(context.log_location)
        if bucket:
            self._add_document(
                report,
                "cloud::log-location",
                cloud.query_cloud_resource(
                    "s3", "list_objects_v2", {"Bucket": bucket, "Prefix": prefix, "MaxKeys": 100}
                ),
            )

    def _find_load_balancers(
        self, cloud: CloudQueryClient, provisioner_id: str
    ) -> Result[dict[str, Any]]:
        """Resolve the cluster's load balancers by their Kubernetes cluster tag."""
        balancers: list[dict[str, Any]] = []
        params: dict[str, Any] = {}
        while True:
            page = cloud.query_cloud_resource("elbv2", "describe_load_balancers", params)
            if isinstance(page, Err):
                return page
            balancers.extend(page.value.get("LoadBalancers", []))
            marker = page.value.get("NextMarker")
            if not marker:
                break
            params = {"Marker": marker}

        cluster_tag = f"kubernetes.io/cluster/{provisioner_id}"
        arns = [lb["LoadBalancerArn"] for lb in balancers]
        matched: set[str] = set()
        for start in range(0, len(arns), ELB_TAG_BATCH):
            tags = cloud.query_cloud_resource(
                "elbv2", "describe_tags", {"ResourceArns": arns[start : start + ELB_TAG_BATCH]}
            )
            if isinstance(tags, Err):
                return tags
            for description in tags.value.get("TagDescriptions", []):
                for tag in description.get("Tags", []):
                    if tag.get("Key") == cluster_tag or tag.get("Value") == provisioner_id:
                        matched.add(description["ResourceArn"])

        logger.info("load_balancers_resolved", total=len(balancers), matched=len(matched))
        return Ok({"LoadBalancers": [lb for lb in balancers if lb["LoadBalancerArn"] in matched]})

    # ------------------------------------------------------------------
    # Logs
    # ------------------------------------------------------------------

    def log_scopes(self) -> list[tuple[str, str | None]]:
        """System namespaces (all pods), then tenants with their instance selector."""
        collection = self.config.collection
        scopes: list[tuple[str, str | None]] = [(ns, None) for ns in collection.system_namespaces]
        for tenant in discover_tenants(self.cluster_client, collection.tenant_pattern):
            scopes.append((tenant, self.tenant_selectors(tenant)[0][1]))
        return scopes

    def logs(self, output_dir: str | Path | None = None, stream: TextIO | None = None) -> LogsSummary:
        """Retrieve the log of every container in every collected scope.

        Each (scope, pod, container) is an independent unit; a failed unit's
        content is the failure text. A unit whose file cannot be written is
        counted as failed and the run continues.

        Args:
            output_dir: Write ``<scope>/<pod>_<container>.log`` files here; stream when None
            stream: Destination for streamed logs (defaults to stdout)

        Returns:
            LogsSummary

        Raises:
            ConfigurationError: If no connection target is configured
            AuthError: If the credential exchange fails
        """
        self._require_target()
        self.ensure_session()

        stream = stream or sys.stdout
        base = Path(output_dir) if output_dir is not None else None
        summary = LogsSummary()

        for scope, selector in self.log_scopes():
            pods = self.cluster_client.list_pods(scope, selector)
            if isinstance(pods, Err):
                logger.warning("pod_listing_failed", scope=scope, error=pods.message)
                summary.failures += 1
                summary.failed_units.append(scope)
                self._emit(base, stream, scope, "_pods", scope, f"ERROR: {pods.message}", summary)
                continue

            for pod in pods.value:
                for container in pod.all_containers:
                    unit = f"{scope}/{pod.name}/{container}"
                    summary.units += 1
                    result = self.cluster_client.read_container_log(scope, pod.name, container)
                    if isinstance(result, Err):
                        logger.warning("container_log_failed", unit=unit, error=result.message)
                        summary.failures += 1
                        summary.failed_units.append(unit)
                        content = f"ERROR: {result.message}"
                    else:
                        content = result.value
                    self._emit(
                        base, stream, scope, f"{pod.name}_{container}", unit, content, summary
                    )

        logger.info(
            "logs_collection_completed",
            units=summary.units,
            failures=summary.failures,
            output_dir=str(base) if base else None,
        )
        return summary

    @staticmethod
    def _emit(
        base: Path | None,
        stream: TextIO,
        scope: str,
        name: str,
        header: str,
        content: str,
        summary: LogsSummary,
    ) -> None:
        if base is None:
            stream.write(f"==> {header} <==\n")
            stream.write(content)
            if content and not content.endswith("\n"):
                stream.write("\n")
            return

        path = base / scope / f"{name}.log"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")
        except OSError as e:
            logger.warning("log_write_failed", unit=header, path=str(path), error=str(e))
            if header not in summary.failed_units:
                summary.failures += 1
                summary.failed_units.append(header)
            return
        summary.written.append(str(path))


def _parse_log_location(location: str) -> tuple[str, str]:
    """Split an s3/s3a log location into bucket and key prefix."""
    parsed = urlparse(location)
    if parsed.scheme not in ("s3", "s3a") or not parsed.netloc:
        return "", ""
    return parsed.netloc, parsed.path.lstrip("/")
