"""AWS adapter implementing CloudQueryClient interface."""

from typing import Any

from cdediag.clients.aws_client import AWSClient
from cdediag.core.config import CollectorConfig
from cdediag.core.exceptions import QueryError
from cdediag.interfaces.cloud_provider import CloudQueryClient
from cdediag.interfaces.cloud_types import CredentialSet
from cdediag.interfaces.query_types import Err, Ok, Result
from cdediag.utils.logging import get_logger

logger = get_logger(__name__)


class AWSAdapter(CloudQueryClient):
    """Adapter wrapping AWSClient to implement CloudQueryClient interface.

    This adapter hides AWS-specific implementation details (boto3, ClientError)
    behind the CloudQueryClient interface.
    """

    def __init__(self, client: AWSClient):
        """Initialize AWS adapter.

        Args:
            client: AWS client, using ambient or temporary credentials
        """
        self.client = client
        logger.debug("aws_adapter_initialized", region=client.region)

    @classmethod
    def from_config(
        cls, config: CollectorConfig, credentials: CredentialSet | None = None
    ) -> "AWSAdapter":
        """Build an adapter for the configured region.

        Args:
            config: Collector configuration
            credentials: Temporary credentials; the ambient profile is used when None

        Returns:
            AWSAdapter

        Raises:
            ConfigurationError: If the AWS session cannot be created
        """
        timeout = config.collection.request_timeout
        if credentials is not None:
            client = AWSClient.from_credentials(
                credentials, region=config.aws.region, request_timeout=timeout
            )
        else:
            client = AWSClient(
                region=config.aws.region, profile=config.aws.profile, request_timeout=timeout
            )
        return cls(client)

    def query_cloud_resource(
        self, service: str, operation: str, params: dict[str, Any] | None = None
    ) -> Result[dict[str, Any]]:
        try:
            return Ok(self.client.call(service, operation, params))
        except QueryError as e:
            return Err(e)
