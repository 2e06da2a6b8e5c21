"""Cluster query interface."""

from abc import ABC, abstractmethod

from cdediag.interfaces.query_types import Listing, PodContainers, Result


class ClusterQueryClient(ABC):
    """Abstract interface for read-only Kubernetes queries.

    Implementations never raise for a failed query. Every method returns
    ``Ok`` with the value or ``Err`` carrying a QueryError, and callers decide
    whether a failure is fatal.
    """

    @abstractmethod
    def query_cluster_resource(
        self, scope: str, kind: str, selector: str | None = None
    ) -> Result[Listing]:
        """List one resource kind in a namespace.

        Args:
            scope: Namespace to query
            kind: Resource kind (e.g., "pods")
            selector: Optional label selector

        Returns:
            Ok(Listing), empty for unknown kinds or namespaces, or Err
        """

    @abstractmethod
    def list_namespaces(self) -> Result[list[str]]:
        """List namespace names visible to the current credentials."""

    @abstractmethod
    def list_pods(self, scope: str, selector: str | None = None) -> Result[list[PodContainers]]:
        """List pods with their init and main container names."""

    @abstractmethod
    def read_container_log(self, scope: str, pod: str, container: str) -> Result[str]:
        """Read the log of a single container of a pod."""

    @abstractmethod
    def list_helm_releases(self) -> Result[Listing]:
        """List Helm releases across all namespaces."""
