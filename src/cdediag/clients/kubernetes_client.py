"""Kubernetes client for read-only collection queries."""

from collections.abc import Callable
from typing import Any, TypeVar

import urllib3
from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from kubernetes.client.models import V1Pod

from cdediag.core.exceptions import ConfigurationError, QueryError, QueryTimeoutError
from cdediag.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

# kind -> (api attribute, namespaced list method)
RESOURCE_KINDS: dict[str, tuple[str, str]] = {
    "pods": ("core_v1", "list_namespaced_pod"),
    "services": ("core_v1", "list_namespaced_service"),
    "endpoints": ("core_v1", "list_namespaced_endpoints"),
    "configmaps": ("core_v1", "list_namespaced_config_map"),
    "persistentvolumeclaims": ("core_v1", "list_namespaced_persistent_volume_claim"),
    "serviceaccounts": ("core_v1", "list_namespaced_service_account"),
    "events": ("core_v1", "list_namespaced_event"),
    "deployments": ("apps_v1", "list_namespaced_deployment"),
    "statefulsets": ("apps_v1", "list_namespaced_stateful_set"),
    "daemonsets": ("apps_v1", "list_namespaced_daemon_set"),
    "replicasets": ("apps_v1", "list_namespaced_replica_set"),
    "jobs": ("batch_v1", "list_namespaced_job"),
    "cronjobs": ("batch_v1", "list_namespaced_cron_job"),
    "ingresses": ("networking_v1", "list_namespaced_ingress"),
}

KIND_ALIASES: dict[str, str] = {
    "po": "pods",
    "pod": "pods",
    "svc": "services",
    "service": "services",
    "ep": "endpoints",
    "cm": "configmaps",
    "configmap": "configmaps",
    "pvc": "persistentvolumeclaims",
    "sa": "serviceaccounts",
    "ev": "events",
    "deploy": "deployments",
    "deployment": "deployments",
    "sts": "statefulsets",
    "statefulset": "statefulsets",
    "ds": "daemonsets",
    "daemonset": "daemonsets",
    "rs": "replicasets",
    "job": "jobs",
    "cj": "cronjobs",
    "cronjob": "cronjobs",
    "ing": "ingresses",
    "ingress": "ingresses",
}

HELM_RELEASE_SELECTOR = "owner=helm"


def normalize_kind(kind: str) -> str:
    """Resolve short names and singular forms to the canonical plural kind."""
    kind = kind.lower()
    return KIND_ALIASES.get(kind, kind)


class KubernetesClient:
    """Kubernetes client wrapper.

    Each instance owns its own ApiClient; nothing is loaded into the
    process-wide kubernetes default configuration.
    """

    def __init__(
        self,
        kubeconfig_path: str | None = None,
        context: str | None = None,
        in_cluster: bool = False,
        request_timeout: float = 60.0,
    ):
        """Initialize Kubernetes client.

        Args:
            kubeconfig_path: Path to kubeconfig file
            context: Kubernetes context to use (optional)
            in_cluster: Use the pod service account instead of a kubeconfig
            request_timeout: Timeout applied to every API request (seconds)

        Raises:
            ConfigurationError: If no connection target is given or it cannot be loaded
        """
        if not kubeconfig_path and not in_cluster:
            raise ConfigurationError("No connection target: a kubeconfig path is required")

        self.request_timeout = request_timeout

        try:
            if kubeconfig_path:
                self.api_client = config.new_client_from_config(
                    config_file=kubeconfig_path, context=context
                )
            else:
                configuration = client.Configuration()
                config.load_incluster_config(client_configuration=configuration)
                self.api_client = client.ApiClient(configuration=configuration)

            self.core_v1 = client.CoreV1Api(self.api_client)
            self.apps_v1 = client.AppsV1Api(self.api_client)
            self.batch_v1 = client.BatchV1Api(self.api_client)
            self.networking_v1 = client.NetworkingV1Api(self.api_client)

            logger.debug("k8s_client_initialized", kubeconfig=kubeconfig_path, context=context)

        except Exception as e:
            logger.error("k8s_client_initialization_failed", error=str(e))
            raise ConfigurationError(f"Failed to load Kubernetes configuration: {e}") from e

    def _call(self, operation: str, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run one API request, mapping transport failures to QueryError."""
        try:
            return func(*args, _request_timeout=self.request_timeout, **kwargs)
        except ApiException as e:
            logger.error("k8s_request_failed", operation=operation, status=e.status, reason=e.reason)
            raise QueryError(f"{e.status} {e.reason}", operation=operation) from e
        except urllib3.exceptions.NewConnectionError as e:
            logger.error("k8s_request_failed", operation=operation, error=str(e))
            raise QueryError(str(e), operation=operation) from e
        except urllib3.exceptions.TimeoutError as e:
            logger.error("k8s_request_timed_out", operation=operation, error=str(e))
            raise QueryTimeoutError(f"Timed out: {e}", operation=operation) from e
        except urllib3.exceptions.MaxRetryError as e:
            logger.error("k8s_request_failed", operation=operation, error=str(e))
            # NewConnectionError subclasses ConnectTimeoutError but means refused
            if isinstance(e.reason, urllib3.exceptions.TimeoutError) and not isinstance(
                e.reason, urllib3.exceptions.NewConnectionError
            ):
                raise QueryTimeoutError(f"Timed out: {e.reason}", operation=operation) from e
            raise QueryError(str(e.reason), operation=operation) from e
        except urllib3.exceptions.HTTPError as e:
            logger.error("k8s_request_failed", operation=operation, error=str(e))
            raise QueryError(str(e), operation=operation) from e
        except ValueError as e:
            # includes UnicodeDecodeError from response deserialization
            logger.error("k8s_response_undecodable", operation=operation, error=str(e))
            raise QueryError(f"Undecodable response: {e}", operation=operation) from e

    def list_resources(
        self, namespace: str, kind: str, label_selector: str | None = None
    ) -> list[dict[str, Any]]:
        """List resources of one kind in a namespace.

        Unknown kinds and missing namespaces yield an empty list.

        Args:
            namespace: Namespace to query
            kind: Resource kind (plural, short name or singular)
            label_selector: Label selector (e.g., "app.kubernetes.io/instance=dex-app-1a2b")

        Returns:
            Serialized resource objects

        Raises:
            QueryError: If the request fails
        """
        kind = normalize_kind(kind)
        if kind not in RESOURCE_KINDS:
            logger.warning("unsupported_resource_kind", kind=kind, namespace=namespace)
            return []

        api_name, method_name = RESOURCE_KINDS[kind]
        method = getattr(getattr(self, api_name), method_name)
        operation = f"{method_name} {namespace}"
        if label_selector:
            operation = f"{operation} -l {label_selector}"

        logger.debug("listing_resources", namespace=namespace, kind=kind, selector=label_selector)
        try:
            response = self._call(
                operation, method, namespace=namespace, label_selector=label_selector
            )
        except QueryError as e:
            if isinstance(e.__cause__, ApiException) and e.__cause__.status == 404:
                logger.info("resource_scope_not_found", namespace=namespace, kind=kind)
                return []
            raise

        items = [self.api_client.sanitize_for_serialization(item) for item in response.items]
        logger.info("resources_listed", namespace=namespace, kind=kind, count=len(items))
        return items

    def get_namespaces(self) -> list[str]:
        """Get all namespace names visible to the current credentials.

        Raises:
            QueryError: If namespaces cannot be retrieved
        """
        logger.debug("getting_namespaces")
        response = self._call("list_namespace", self.core_v1.list_namespace)
        names = [ns.metadata.name for ns in response.items]

        logger.info("namespaces_retrieved", count=len(names))
        return names

    def get_pods(self, namespace: str, label_selector: str | None = None) -> list[V1Pod]:
        """Get pods in a namespace.

        Args:
            namespace: Namespace to query
            label_selector: Label selector

        Returns:
            List of V1Pod objects

        Raises:
            QueryError: If pods cannot be retrieved
        """
        logger.debug("getting_pods", namespace=namespace, selector=label_selector)
        response = self._call(
            f"list_namespaced_pod {namespace}",
            self.core_v1.list_namespaced_pod,
            namespace=namespace,
            label_selector=label_selector,
        )
        pods = response.items

        logger.info("pods_retrieved", namespace=namespace, count=len(pods))
        return pods

    def read_pod_log(self, namespace: str, pod_name: str, container: str) -> str:
        """Read the current log of one container.

        The raw body is decoded here rather than by the API client, so
        bytes that are not valid UTF-8 are replaced instead of failing the read.

        Raises:
            QueryError: If the log cannot be retrieved
        """

        def fetch(**kwargs: Any) -> bytes:
            response = self.core_v1.read_namespaced_pod_log(_preload_content=False, **kwargs)
            try:
                return response.data or b""
            finally:
                response.release_conn()

        logger.debug("reading_pod_log", namespace=namespace, pod=pod_name, container=container)
        data = self._call(
            f"read_namespaced_pod_log {namespace}/{pod_name}/{container}",
            fetch,
            name=pod_name,
            namespace=namespace,
            container=container,
        )
        log = data.decode("utf-8", errors="replace")

        logger.info(
            "pod_log_read",
            namespace=namespace,
            pod=pod_name,
            container=container,
            length=len(log),
        )
        return log

    def get_helm_releases(self) -> list[dict[str, Any]]:
        """Summarize Helm v3 releases from their release secrets.

        Only labels are read; secret payloads are never returned.

        Raises:
            QueryError: If the secrets cannot be listed
        """
        logger.debug("getting_helm_releases")
        response = self._call(
            "list_secret_for_all_namespaces -l owner=helm",
            self.core_v1.list_secret_for_all_namespaces,
            label_selector=HELM_RELEASE_SELECTOR,
        )

        releases = []
        for secret in response.items:
            labels = secret.metadata.labels or {}
            releases.append(
                {
                    "name": labels.get("name", secret.metadata.name),
                    "namespace": secret.metadata.namespace,
                    "revision": labels.get("version", ""),
                    "status": labels.get("status", ""),
                    "modifiedAt": labels.get("modifiedAt", ""),
                }
            )

        logger.info("helm_releases_retrieved", count=len(releases))
        return releases
