"""Cloud provider query interface."""

from abc import ABC, abstractmethod
from typing import Any

from cdediag.interfaces.query_types import Result


class CloudQueryClient(ABC):
    """Abstract interface for describe-style cloud API queries.

    Implementation Note:
    Concrete implementations should hide provider-specific details
    (boto3 exceptions, response metadata, etc.) behind this interface.
    """

    @abstractmethod
    def query_cloud_resource(
        self, service: str, operation: str, params: dict[str, Any] | None = None
    ) -> Result[dict[str, Any]]:
        """Invoke one read-only cloud API operation.

        Args:
            service: Service name (e.g., "eks")
            operation: Operation name (e.g., "describe_cluster")
            params: Operation parameters

        Returns:
            Ok(response document) or Err(QueryError)
        """
