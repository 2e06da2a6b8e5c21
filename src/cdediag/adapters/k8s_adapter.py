"""Kubernetes adapter implementing ClusterQueryClient interface."""

from cdediag.clients.kubernetes_client import KubernetesClient, normalize_kind
from cdediag.core.config import CollectorConfig
from cdediag.core.exceptions import QueryError
from cdediag.interfaces.cluster_provider import ClusterQueryClient
from cdediag.interfaces.query_types import Err, Listing, Ok, PodContainers, Result
from cdediag.utils.logging import get_logger

logger = get_logger(__name__)


class KubernetesAdapter(ClusterQueryClient):
    """Adapter wrapping KubernetesClient to implement ClusterQueryClient interface.

    This adapter converts client exceptions into tagged results and normalizes
    pods into PodContainers, hiding kubernetes Python client details.
    """

    def __init__(self, client: KubernetesClient):
        """Initialize Kubernetes adapter.

        Args:
            client: Configured Kubernetes client
        """
        self.client = client
        logger.debug("k8s_adapter_initialized")

    @classmethod
    def from_config(cls, config: CollectorConfig) -> "KubernetesAdapter":
        """Build an adapter from the collector configuration.

        Raises:
            ConfigurationError: If no connection target is configured or it cannot be loaded
        """
        return cls(
            KubernetesClient(
                kubeconfig_path=config.kubernetes.kubeconfig,
                context=config.kubernetes.context,
                in_cluster=config.kubernetes.in_cluster,
                request_timeout=config.collection.request_timeout,
            )
        )

    def query_cluster_resource(
        self, scope: str, kind: str, selector: str | None = None
    ) -> Result[Listing]:
        kind = normalize_kind(kind)
        try:
            items = self.client.list_resources(scope, kind, label_selector=selector)
        except QueryError as e:
            return Err(e)
        return Ok(Listing(scope=scope, kind=kind, selector=selector, items=items))

    def list_namespaces(self) -> Result[list[str]]:
        try:
            return Ok(self.client.get_namespaces())
        except QueryError as e:
            return Err(e)

    def list_pods(self, scope: str, selector: str | None = None) -> Result[list[PodContainers]]:
        """List pods with container names.

        Init containers keep their declaration order and precede main containers.
        """
        try:
            pods = self.client.get_pods(scope, label_selector=selector)
        except QueryError as e:
            return Err(e)

        result = []
        for pod in pods:
            spec = pod.spec
            init_containers = tuple(c.name for c in (spec.init_containers or [])) if spec else ()
            containers = tuple(c.name for c in (spec.containers or [])) if spec else ()
            result.append(
                PodContainers(
                    name=pod.metadata.name,
                    init_containers=init_containers,
                    containers=containers,
                )
            )
        return Ok(result)

    def read_container_log(self, scope: str, pod: str, container: str) -> Result[str]:
        try:
            return Ok(self.client.read_pod_log(scope, pod, container))
        except QueryError as e:
            return Err(e)

    def list_helm_releases(self) -> Result[Listing]:
        try:
            releases = self.client.get_helm_releases()
        except QueryError as e:
            return Err(e)
        return Ok(Listing(scope="", kind="helmreleases", items=releases))
